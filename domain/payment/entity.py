"""
支付领域实体 - 支付意图聚合根
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import InvalidPaymentTransitionException
from domain.payment.refund_ledger import RefundLedger, RefundOutcome
from domain.payment.state_machine import (
    PaymentOperation,
    PaymentStatus,
    TERMINAL_STATUSES,
    next_status,
)


class PaymentMethod(str, Enum):
    """支付方式"""
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    WALLET = "wallet"
    INSTALLMENT = "installment"
    BUY_NOW_PAY_LATER = "buy_now_pay_later"
    CASH_ON_DELIVERY = "cash_on_delivery"

    @property
    def is_card(self) -> bool:
        return self in (PaymentMethod.CREDIT_CARD, PaymentMethod.DEBIT_CARD)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class PaymentIntent:
    """
    支付意图聚合根 - 管理一次订单收款的生命周期

    业务规则：
    1. 每个订单至多一个支付意图（order_id 唯一）
    2. amount / currency 创建时取自订单，之后不可变
    3. 所有状态变更必须经过状态机迁移表
    4. 0 <= refunded_amount <= amount
    5. requires_three_d_secure 为真时，必须先经过 pending 才能被捕获
    """

    id: Optional[int]
    order_id: int
    amount: Decimal
    currency: str  # ISO-4217
    method: PaymentMethod
    status: PaymentStatus
    provider: str

    external_reference: Optional[str] = None
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    requires_three_d_secure: bool = False
    installment_count: Optional[int] = None
    installment_amount: Optional[Decimal] = None
    refunded_amount: Decimal = field(default_factory=lambda: Decimal("0"))
    failure_reason: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    # 时间戳
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    authorized_at: Optional[datetime] = None
    captured_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def __post_init__(self):
        self._validate_amount()
        self._validate_currency()
        self._normalize_timestamps()
        if self.metadata is None:
            self.metadata = {}

    def _validate_amount(self) -> None:
        if self.amount <= 0:
            raise DomainValidationException(f"支付金额必须大于0: {self.amount}", field="amount")
        if self.refunded_amount < 0 or self.refunded_amount > self.amount:
            raise DomainValidationException(
                f"退款金额越界: {self.refunded_amount}",
                field="refunded_amount",
            )

    def _validate_currency(self) -> None:
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")

    def _normalize_timestamps(self) -> None:
        for name in (
            "created_at", "updated_at", "authorized_at", "captured_at",
            "failed_at", "cancelled_at", "refunded_at", "expires_at",
        ):
            setattr(self, name, _ensure_utc(getattr(self, name)))

    @property
    def remaining_amount(self) -> Decimal:
        return self.amount - self.refunded_amount

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    # ------------------------------------------------------------------
    # 状态迁移：先查表，通过后才修改字段
    # ------------------------------------------------------------------
    def authorize(self, external_reference: str, now: datetime) -> None:
        self.status = next_status(self.status, PaymentOperation.AUTHORIZE)
        self.external_reference = external_reference
        self.authorized_at = now
        self.updated_at = now

    def capture(self, external_reference: str, now: datetime) -> None:
        self.status = next_status(self.status, PaymentOperation.CAPTURE)
        self._mark_captured(external_reference, now)

    def cancel(self, reason: Optional[str], now: datetime) -> None:
        self.status = next_status(self.status, PaymentOperation.CANCEL)
        self.failure_reason = reason
        self.cancelled_at = now
        self.updated_at = now

    def fail(self, reason: Optional[str], now: datetime) -> None:
        self.status = next_status(self.status, PaymentOperation.FAIL)
        self._mark_failed(reason, now)

    def confirm_three_d_secure(self, success: bool, external_reference: str, now: datetime) -> None:
        """3-D Secure 验证结果：成功则授权+捕获合并为一步，失败则进入 failed。"""
        operation = PaymentOperation.CONFIRM_3DS_SUCCESS if success else PaymentOperation.CONFIRM_3DS_FAILURE
        if not self.requires_three_d_secure:
            raise InvalidPaymentTransitionException(
                "This payment does not require 3D Secure",
                status=self.status.value,
                operation=operation.value,
            )
        target = next_status(self.status, operation)
        self.status = target
        if success:
            self.authorized_at = now
            self._mark_captured(external_reference, now)
        else:
            self._mark_failed("3D Secure authentication failed", now)

    def apply_refund(self, requested: Optional[Decimal], now: datetime) -> RefundOutcome:
        outcome = RefundLedger(self.amount, self.refunded_amount).apply(self.status, requested)
        self.refunded_amount = outcome.total_refunded_amount
        self.status = outcome.status
        self.refunded_at = now
        self.updated_at = now
        return outcome

    def _mark_captured(self, external_reference: str, now: datetime) -> None:
        if not self.external_reference:
            self.external_reference = external_reference
        self.captured_at = now
        self.failure_reason = None
        self.updated_at = now

    def _mark_failed(self, reason: Optional[str], now: datetime) -> None:
        self.failure_reason = reason
        self.failed_at = now
        self.updated_at = now
