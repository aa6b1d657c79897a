"""
退款账本 - 累计退款金额不可超过已捕获金额

不变量：0 <= refunded_amount <= amount
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import (
    InvalidPaymentTransitionException,
    InvalidRefundAmountException,
)
from domain.payment.money import is_minor_unit_amount
from domain.payment.state_machine import PaymentOperation, PaymentStatus, can_apply


@dataclass(frozen=True)
class RefundOutcome:
    """单次退款结果"""
    refunded_amount: Decimal        # 本次退款
    total_refunded_amount: Decimal  # 累计退款
    remaining_amount: Decimal
    status: PaymentStatus


class RefundLedger:
    """针对单个支付意图的退款账本（值对象，不持有状态引用）"""

    def __init__(self, amount: Decimal, refunded_amount: Decimal = Decimal("0")) -> None:
        if refunded_amount < 0 or refunded_amount > amount:
            raise DomainValidationException(
                f"Refunded amount {refunded_amount} out of range [0, {amount}]",
                field="refunded_amount",
            )
        self.amount = amount
        self.refunded_amount = refunded_amount

    @property
    def remaining(self) -> Decimal:
        return self.amount - self.refunded_amount

    def apply(self, status: PaymentStatus, requested: Optional[Decimal] = None) -> RefundOutcome:
        """
        计算一次退款的结果

        业务规则：
        1. 只有 captured / partially_refunded 的支付可以退款
        2. 未指定金额时退还全部剩余金额
        3. 0 < 退款金额 <= 剩余可退金额，且精度不超过 0.01
        """
        if not can_apply(status, PaymentOperation.REFUND):
            raise InvalidPaymentTransitionException(
                "Only captured payments may be refunded",
                status=status.value,
                operation=PaymentOperation.REFUND.value,
            )

        remaining = self.remaining
        amount = remaining if requested is None else Decimal(requested)
        if not is_minor_unit_amount(amount) or amount <= 0 or amount > remaining:
            raise InvalidRefundAmountException(amount, remaining)

        total = self.refunded_amount + amount
        new_status = PaymentStatus.REFUNDED if total == self.amount else PaymentStatus.PARTIALLY_REFUNDED
        return RefundOutcome(
            refunded_amount=amount,
            total_refunded_amount=total,
            remaining_amount=self.amount - total,
            status=new_status,
        )
