"""
Payment domain events.

Dataclass events record lifecycle facts that require side effects on
collaborators (order status, buyer notification). They are collected by the
domain service and dispatched by the application layer after commit.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
import uuid


@dataclass
class PaymentDomainEvent:
    intent_id: int
    order_id: int
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentCaptured(PaymentDomainEvent):
    amount: Decimal = Decimal("0")
    currency: str = ""
    captured_at: Optional[datetime] = None


@dataclass
class PaymentFailed(PaymentDomainEvent):
    reason: Optional[str] = None


@dataclass
class PaymentRefunded(PaymentDomainEvent):
    amount: Decimal = Decimal("0")
    currency: str = ""
    total_refunded_amount: Decimal = Decimal("0")
    remaining_amount: Decimal = Decimal("0")
