"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.types import condecimal

from core.config import settings
from domain.payment.entity import PaymentIntent, PaymentMethod
from domain.payment.event_log import PaymentEvent
from domain.payment.refund_ledger import RefundOutcome
from domain.payment.state_machine import PaymentStatus

# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "TRY", "USD", "EUR", "GBP", "CNY", "JPY", "KRW", "HKD", "AUD", "CAD",
    "SGD", "CHF", "SEK", "NOK", "DKK", "PLN", "AED", "SAR",
}


def _money(value: Optional[Decimal]) -> Optional[str]:
    return f"{value:.2f}" if value is not None else None


class CardDetails(BaseModel):
    number: str = Field(min_length=12, max_length=23)
    holder_name: Optional[str] = None
    expiry_month: Optional[int] = Field(default=None, ge=1, le=12)
    expiry_year: Optional[int] = None

    @field_validator("number")
    @classmethod
    def _digits_only(cls, v: str) -> str:
        digits = v.replace(" ", "").replace("-", "")
        if not digits.isdigit():
            raise ValueError("card number must contain digits only")
        return digits


class CreatePaymentIntent(BaseModel):
    order_id: int = Field(gt=0)
    method: PaymentMethod
    currency: Optional[str] = None
    card: Optional[CardDetails] = None
    installment_count: Optional[int] = Field(default=None, ge=1, le=36)
    metadata: Optional[dict[str, Any]] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        u = v.strip().upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        if u not in ISO_4217:
            raise ValueError("unsupported currency")
        return u


class CancelPayment(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class FailPayment(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class RefundPayment(BaseModel):
    amount: Optional[condecimal(max_digits=15, decimal_places=2)] = None  # type: ignore[valid-type]
    reason: Optional[str] = Field(default=None, max_length=500)


class ConfirmThreeDSecure(BaseModel):
    outcome: Literal["success", "failure"]


class MarkReceived(BaseModel):
    note: Optional[str] = Field(default=None, max_length=500)


class ProviderCallback(BaseModel):
    """Simulated provider webhook body."""

    event_type: str
    external_reference: str
    amount: Optional[condecimal(gt=0, max_digits=15, decimal_places=2)] = None  # type: ignore[valid-type]
    message: Optional[str] = None


class PaymentIntentView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    amount: Decimal
    currency: str
    method: str
    status: str
    provider: str
    external_reference: Optional[str] = None
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    requires_three_d_secure: bool
    installment_count: Optional[int] = None
    installment_amount: Optional[Decimal] = None
    refunded_amount: Decimal
    remaining_amount: Decimal
    failure_reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    authorized_at: Optional[datetime] = None
    captured_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_serializer("amount", "installment_amount", "refunded_amount", "remaining_amount")
    def _serialize_money(self, value: Optional[Decimal]) -> Optional[str]:
        return _money(value)

    @classmethod
    def from_entity(cls, intent: PaymentIntent) -> "PaymentIntentView":
        return cls(
            id=intent.id,
            order_id=intent.order_id,
            amount=intent.amount,
            currency=intent.currency,
            method=intent.method.value,
            status=intent.status.value,
            provider=intent.provider,
            external_reference=intent.external_reference,
            card_brand=intent.card_brand,
            card_last4=intent.card_last4,
            requires_three_d_secure=intent.requires_three_d_secure,
            installment_count=intent.installment_count,
            installment_amount=intent.installment_amount,
            refunded_amount=intent.refunded_amount,
            remaining_amount=intent.remaining_amount,
            failure_reason=intent.failure_reason,
            metadata=dict(intent.metadata or {}),
            created_at=intent.created_at,
            updated_at=intent.updated_at,
            authorized_at=intent.authorized_at,
            captured_at=intent.captured_at,
            failed_at=intent.failed_at,
            cancelled_at=intent.cancelled_at,
            refunded_at=intent.refunded_at,
            expires_at=intent.expires_at,
        )


class RefundView(BaseModel):
    payment_intent_id: int
    refunded_amount: Decimal
    total_refunded_amount: Decimal
    remaining_amount: Decimal
    status: str
    external_reference: Optional[str] = None
    refunded_at: Optional[datetime] = None

    @field_serializer("refunded_amount", "total_refunded_amount", "remaining_amount")
    def _serialize_money(self, value: Decimal) -> str:
        return _money(value)

    @classmethod
    def from_outcome(cls, intent: PaymentIntent, outcome: RefundOutcome) -> "RefundView":
        return cls(
            payment_intent_id=intent.id,
            refunded_amount=outcome.refunded_amount,
            total_refunded_amount=outcome.total_refunded_amount,
            remaining_amount=outcome.remaining_amount,
            status=outcome.status.value,
            external_reference=intent.external_reference,
            refunded_at=intent.refunded_at,
        )


class PaymentEventView(BaseModel):
    id: int
    intent_id: int
    event_type: str
    status: str
    source: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_event(cls, event: PaymentEvent) -> "PaymentEventView":
        return cls(
            id=event.id,
            intent_id=event.intent_id,
            event_type=event.event_type.value,
            status=event.status.value,
            source=event.source.value,
            payload=dict(event.payload),
            created_at=event.created_at,
        )


class ProviderCallbackResult(BaseModel):
    processed: bool
    event_type: str
    external_reference: str
    intent: Optional[PaymentIntentView] = None


class PaginationParams(BaseModel):
    """分页参数（页码/每页大小），自动派生 skip/limit"""
    page: int = Field(1, ge=1, description="页码，从1开始")
    size: int = Field(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="每页大小")

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size


class PaymentIntentQuery(BaseModel):
    """后台支付意图列表筛选条件"""
    status: Optional[PaymentStatus] = None
    order_id: Optional[int] = None
    user_id: Optional[int] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None


class PaymentStatisticsView(BaseModel):
    """区间统计：成功指状态为 captured 的支付"""
    period_from: datetime
    period_to: datetime
    total: int
    successful: int
    failed: int
    pending: int
    captured_amount: Decimal
    failed_amount: Decimal
    success_rate: float

    @field_serializer("captured_amount", "failed_amount")
    def _serialize_money(self, value: Decimal) -> str:
        return _money(value)
