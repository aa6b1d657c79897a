"""
支付状态机 - 声明式迁移表

(当前状态, 操作) -> 目标状态。表中不存在的组合即为非法迁移。
退款的目标状态由退款账本决定，表中以 PARTIALLY_REFUNDED 作为占位，
实际结果见 domain.payment.refund_ledger。
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Tuple

from domain.payment.exceptions import InvalidPaymentTransitionException


class PaymentStatus(str, Enum):
    """支付意图状态"""
    CREATED = "created"
    PENDING = "pending"                        # 等待 3-D Secure 验证
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentOperation(str, Enum):
    AUTHORIZE = "authorize"
    CAPTURE = "capture"
    CANCEL = "cancel"
    FAIL = "fail"
    REFUND = "refund"
    CONFIRM_3DS_SUCCESS = "confirm_3ds_success"
    CONFIRM_3DS_FAILURE = "confirm_3ds_failure"


TRANSITIONS: Dict[Tuple[PaymentStatus, PaymentOperation], PaymentStatus] = {
    (PaymentStatus.CREATED, PaymentOperation.AUTHORIZE): PaymentStatus.AUTHORIZED,
    (PaymentStatus.CREATED, PaymentOperation.CAPTURE): PaymentStatus.CAPTURED,
    (PaymentStatus.AUTHORIZED, PaymentOperation.CAPTURE): PaymentStatus.CAPTURED,
    (PaymentStatus.CREATED, PaymentOperation.CANCEL): PaymentStatus.CANCELLED,
    (PaymentStatus.AUTHORIZED, PaymentOperation.CANCEL): PaymentStatus.CANCELLED,
    (PaymentStatus.CREATED, PaymentOperation.FAIL): PaymentStatus.FAILED,
    (PaymentStatus.AUTHORIZED, PaymentOperation.FAIL): PaymentStatus.FAILED,
    (PaymentStatus.CAPTURED, PaymentOperation.REFUND): PaymentStatus.PARTIALLY_REFUNDED,
    (PaymentStatus.PARTIALLY_REFUNDED, PaymentOperation.REFUND): PaymentStatus.PARTIALLY_REFUNDED,
    (PaymentStatus.PENDING, PaymentOperation.CONFIRM_3DS_SUCCESS): PaymentStatus.CAPTURED,
    (PaymentStatus.PENDING, PaymentOperation.CONFIRM_3DS_FAILURE): PaymentStatus.FAILED,
}

TERMINAL_STATUSES: FrozenSet[PaymentStatus] = frozenset(
    {PaymentStatus.REFUNDED, PaymentStatus.FAILED, PaymentStatus.CANCELLED}
)


def allowed_sources(operation: PaymentOperation) -> FrozenSet[PaymentStatus]:
    return frozenset(src for (src, op) in TRANSITIONS if op == operation)


def can_apply(status: PaymentStatus, operation: PaymentOperation) -> bool:
    return (status, operation) in TRANSITIONS


def next_status(status: PaymentStatus, operation: PaymentOperation) -> PaymentStatus:
    """查表得到目标状态；非法迁移抛出 InvalidPaymentTransitionException。"""
    target = TRANSITIONS.get((status, operation))
    if target is None:
        raise InvalidPaymentTransitionException(
            f"Cannot {operation.value} a payment in status {status.value}",
            status=status.value,
            operation=operation.value,
        )
    return target
