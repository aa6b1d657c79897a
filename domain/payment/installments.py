"""
分期计算

舍入规则：每期金额按货币最小单位（2 位小数）向下截断，余数计入最后一期，
保证各期之和严格等于总金额。
"""
from __future__ import annotations

from decimal import Decimal, ROUND_DOWN
from typing import List, Optional

from domain.common.exceptions import DomainValidationException
from domain.payment.money import MINOR_UNIT, is_minor_unit_amount


def _validate(amount: Decimal, count: int) -> None:
    if count < 1:
        raise DomainValidationException(f"Installment count must be >= 1: {count}", field="installment_count")
    if not is_minor_unit_amount(amount):
        raise DomainValidationException(f"Amount must have at most 2 decimal places: {amount}", field="amount")
    if amount <= 0:
        raise DomainValidationException(f"Amount must be greater than 0: {amount}", field="amount")
    if count > amount / MINOR_UNIT:
        raise DomainValidationException(
            f"Installment count {count} exceeds the number of minor units in {amount}",
            field="installment_count",
        )


def calculate_installment_amount(amount: Decimal, count: int) -> Optional[Decimal]:
    """单期金额；count == 1 视为不分期，返回 None。"""
    _validate(amount, count)
    if count == 1:
        return None
    return (amount / Decimal(count)).quantize(MINOR_UNIT, rounding=ROUND_DOWN)


def installment_schedule(amount: Decimal, count: int) -> List[Decimal]:
    """完整分期计划，最后一期承担舍入余数。"""
    _validate(amount, count)
    if count == 1:
        return [amount]
    regular = (amount / Decimal(count)).quantize(MINOR_UNIT, rounding=ROUND_DOWN)
    last = amount - regular * (count - 1)
    return [regular] * (count - 1) + [last]
