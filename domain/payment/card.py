"""
卡品牌识别 - 基于 BIN/IIN 前缀的纯函数
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CardBrand(str, Enum):
    """卡组织"""
    VISA = "Visa"
    MASTERCARD = "Mastercard"
    AMEX = "Amex"
    DISCOVER = "Discover"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class CardInfo:
    brand: CardBrand
    last4: str


def normalize_card_number(card_number: str) -> str:
    return (card_number or "").replace(" ", "").replace("-", "")


def _prefix_int(number: str, length: int) -> int | None:
    head = number[:length]
    if len(head) != length or not head.isdigit():
        return None
    return int(head)


def detect_brand(card_number: str) -> CardBrand:
    """根据卡号前缀识别卡组织。

    - 4                      -> Visa
    - 51-55, 2221-2720       -> Mastercard
    - 34, 37                 -> Amex
    - 6011, 65               -> Discover
    """
    number = normalize_card_number(card_number)
    if not number:
        return CardBrand.UNKNOWN

    if number.startswith("4"):
        return CardBrand.VISA

    two = _prefix_int(number, 2)
    if two is not None and 51 <= two <= 55:
        return CardBrand.MASTERCARD
    four = _prefix_int(number, 4)
    if four is not None and 2221 <= four <= 2720:
        return CardBrand.MASTERCARD

    if two in (34, 37):
        return CardBrand.AMEX
    if four == 6011 or two == 65:
        return CardBrand.DISCOVER

    return CardBrand.UNKNOWN


def classify_card(card_number: str) -> CardInfo:
    """返回卡品牌与末四位（不足四位时返回全部）。"""
    number = normalize_card_number(card_number)
    return CardInfo(brand=detect_brand(number), last4=number[-4:])
