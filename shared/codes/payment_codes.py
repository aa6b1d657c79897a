"""
Payment specific business codes (201xx range).
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    INTENT_ALREADY_EXISTS = 20100
    INTENT_NOT_FOUND = 20101
    INVALID_REFUND_AMOUNT = 20102
    INVALID_TRANSITION = 20103
    ORDER_NOT_FOUND = 20104
    UNSUPPORTED_CALLBACK = 20105


# Codes surfaced to callers as "not found" (HTTP 404); the rest are bad requests.
NOT_FOUND_CODES = frozenset({PaymentCode.INTENT_NOT_FOUND, PaymentCode.ORDER_NOT_FOUND})
