"""Pytest bootstrap configuration.

Settings are read at import time, so the database URL and lock backend are
pinned before any application module is imported.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT__LOCK_BACKEND", "memory")

from datetime import datetime, timezone
from decimal import Decimal
from functools import partial
from typing import Dict, List, Optional

import pytest

from application.ports.orders import OrderSnapshot, OrderStatus
from application.services.payment_intent_service import PaymentIntentApplicationService
from application.services.payment_query_service import PaymentQueryService
from core.config import PaymentSettings
from infrastructure.clock import FixedClock
from infrastructure.external.payments.simulated import SimulatedPaymentProvider
from infrastructure.locking import InMemoryLockProvider
from infrastructure.repositories.memory_payment_repository import InMemoryPaymentStore
from infrastructure.unit_of_work import InMemoryUnitOfWork


class StubOrderGateway:
    """In-memory order collaborator recording status writes."""

    def __init__(self) -> None:
        self.orders: Dict[int, OrderSnapshot] = {}
        self.status_updates: List[tuple] = []

    def add(self, order_id: int, total_amount: str, currency: str = "TRY", buyer_id: int = 7) -> OrderSnapshot:
        order = OrderSnapshot(
            id=order_id,
            buyer_id=buyer_id,
            total_amount=Decimal(total_amount),
            currency=currency,
            status=OrderStatus.PENDING.value,
        )
        self.orders[order_id] = order
        return order

    async def get_by_id(self, order_id: int) -> Optional[OrderSnapshot]:
        return self.orders.get(order_id)

    async def list_ids_by_buyer(self, buyer_id: int) -> List[int]:
        return [o.id for o in self.orders.values() if o.buyer_id == buyer_id]

    async def update_status(self, order_id: int, status: OrderStatus, paid_at: Optional[datetime] = None) -> None:
        self.status_updates.append((order_id, status, paid_at))


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: List[dict] = []

    async def send_payment_update(self, *, order_id, user_id, title, message, channel="in_app") -> None:
        self.sent.append(
            {"order_id": order_id, "user_id": user_id, "title": title, "message": message, "channel": channel}
        )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def store() -> InMemoryPaymentStore:
    return InMemoryPaymentStore()


@pytest.fixture
def orders() -> StubOrderGateway:
    gateway = StubOrderGateway()
    gateway.add(1, "100.00")
    gateway.add(2, "600.00")
    gateway.add(3, "500.00")
    gateway.add(4, "1200.00")
    return gateway


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def payment_settings() -> PaymentSettings:
    return PaymentSettings()


@pytest.fixture
def service(store, orders, notifier, clock, payment_settings) -> PaymentIntentApplicationService:
    return PaymentIntentApplicationService(
        uow_factory=partial(InMemoryUnitOfWork, store),
        orders=orders,
        notifications=notifier,
        provider=SimulatedPaymentProvider(clock),
        lock_provider=InMemoryLockProvider(),
        clock=clock,
        settings=payment_settings,
    )


@pytest.fixture
def query_service(store, orders, clock, payment_settings) -> PaymentQueryService:
    return PaymentQueryService(
        uow_factory=partial(InMemoryUnitOfWork, store),
        orders=orders,
        clock=clock,
        settings=payment_settings,
    )
