from datetime import datetime, timezone
from decimal import Decimal
from functools import partial

import pytest
import pytest_asyncio

from application.dtos.payments import CreatePaymentIntent
from application.services.payment_intent_service import PaymentIntentApplicationService
from core.config import PaymentSettings
from domain.common.exceptions import DomainValidationException
from domain.payment.entity import PaymentIntent, PaymentMethod
from domain.payment.event_log import PaymentEvent, PaymentEventType
from domain.payment.exceptions import (
    InvalidRefundAmountException,
    PaymentIntentAlreadyExistsException,
    PaymentIntentNotFoundException,
)
from domain.payment.repository import PaymentIntentFilter
from domain.payment.state_machine import PaymentStatus
from infrastructure.database import build_engine, build_session_factory, create_tables
from infrastructure.external.payments.simulated import SimulatedPaymentProvider
from infrastructure.locking import InMemoryLockProvider
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}")
    await create_tables(engine)
    try:
        yield build_session_factory(engine)
    finally:
        await engine.dispose()


def _intent(
    order_id: int,
    status: PaymentStatus = PaymentStatus.CREATED,
    amount: str = "250.00",
    hour: int = 9,
) -> PaymentIntent:
    now = datetime(2026, 3, 14, hour, 30, tzinfo=timezone.utc)
    return PaymentIntent(
        id=None,
        order_id=order_id,
        amount=Decimal(amount),
        currency="TRY",
        method=PaymentMethod.CREDIT_CARD,
        status=status,
        provider="STRIPE",
        card_brand="Visa",
        card_last4="1111",
        metadata={"channel": "web"},
        created_at=now,
        updated_at=now,
    )


@pytest.mark.asyncio
async def test_repository_round_trip(session_factory):
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        created = await uow.payment_intent_repository.create(_intent(10))

    async with SQLAlchemyUnitOfWork(session_factory, readonly=True) as uow:
        loaded = await uow.payment_intent_repository.get_by_order_id(10)

    assert loaded.id == created.id
    assert loaded.amount == Decimal("250.00")
    assert loaded.method == PaymentMethod.CREDIT_CARD
    assert loaded.status == PaymentStatus.CREATED
    assert loaded.metadata == {"channel": "web"}
    assert loaded.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_duplicate_order_raises_already_exists(session_factory):
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        await uow.payment_intent_repository.create(_intent(11))

    with pytest.raises(PaymentIntentAlreadyExistsException):
        async with SQLAlchemyUnitOfWork(session_factory) as uow:
            await uow.payment_intent_repository.create(_intent(11))


@pytest.mark.asyncio
async def test_failed_unit_of_work_leaves_no_writes(session_factory):
    with pytest.raises(RuntimeError):
        async with SQLAlchemyUnitOfWork(session_factory) as uow:
            await uow.payment_intent_repository.create(_intent(12))
            raise RuntimeError("abort")

    async with SQLAlchemyUnitOfWork(session_factory, readonly=True) as uow:
        assert await uow.payment_intent_repository.get_by_order_id(12) is None


@pytest.fixture
def sql_service(session_factory, orders, notifier, clock) -> PaymentIntentApplicationService:
    return PaymentIntentApplicationService(
        uow_factory=partial(SQLAlchemyUnitOfWork, session_factory),
        orders=orders,
        notifications=notifier,
        provider=SimulatedPaymentProvider(clock),
        lock_provider=InMemoryLockProvider(),
        clock=clock,
        settings=PaymentSettings(),
    )


@pytest.mark.asyncio
async def test_service_lifecycle_on_sqlalchemy(sql_service, notifier):
    service = sql_service
    intent = await service.create_intent(CreatePaymentIntent(order_id=3, method=PaymentMethod.WALLET))
    authorized = await service.authorize(intent.id)
    await service.capture(intent.id)
    refund = await service.refund(intent.id, Decimal("125.25"), "partial")

    assert refund.status == "partially_refunded"
    assert refund.remaining_amount == Decimal("374.75")

    by_reference = await service.get_intent_by_reference(authorized.external_reference)
    assert by_reference.id == intent.id
    assert by_reference.refunded_amount == Decimal("125.25")
    assert by_reference.amount == Decimal("500.00")

    events = await service.list_events(intent.id)
    assert [e.event_type for e in events] == [
        "payment.created",
        "payment.authorized",
        "payment.captured",
        "payment.refunded",
    ]
    assert [n["title"] for n in notifier.sent] == ["Payment Successful", "Refund Processed"]


@pytest.mark.asyncio
async def test_sub_cent_refund_rejected_and_full_refund_still_possible(sql_service, notifier):
    intent = await sql_service.create_intent(CreatePaymentIntent(order_id=3, method=PaymentMethod.WALLET))
    await sql_service.capture(intent.id)

    with pytest.raises(InvalidRefundAmountException):
        await sql_service.refund(intent.id, Decimal("499.999"))

    stored = await sql_service.get_intent(intent.id)
    assert stored.status == "captured"
    assert stored.refunded_amount == Decimal("0.00")

    refund = await sql_service.refund(intent.id)
    assert refund.status == "refunded"
    assert refund.remaining_amount == Decimal("0.00")
    assert (await sql_service.get_intent(intent.id)).refunded_amount == Decimal("500.00")
    assert [n["title"] for n in notifier.sent] == ["Payment Successful", "Refund Processed"]


@pytest.mark.asyncio
async def test_order_total_with_sub_cent_precision_is_rejected(sql_service, orders):
    orders.add(9, "10.005")

    with pytest.raises(DomainValidationException):
        await sql_service.create_intent(CreatePaymentIntent(order_id=9, method=PaymentMethod.WALLET))

    with pytest.raises(PaymentIntentNotFoundException):
        await sql_service.get_intent_by_order(9)


@pytest.mark.asyncio
async def test_list_count_and_summary_queries(session_factory):
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        repo = uow.payment_intent_repository
        await repo.create(_intent(20, PaymentStatus.CAPTURED, "100.00", hour=9))
        await repo.create(_intent(21, PaymentStatus.FAILED, "40.50", hour=10))
        await repo.create(_intent(22, PaymentStatus.CAPTURED, "60.25", hour=11))
        await repo.create(_intent(23, PaymentStatus.CANCELLED, "10.00", hour=12))

    async with SQLAlchemyUnitOfWork(session_factory, readonly=True) as uow:
        repo = uow.payment_intent_repository
        everything = await repo.get_all(PaymentIntentFilter())
        page = await repo.get_all(PaymentIntentFilter(), skip=1, limit=2)
        failed = PaymentIntentFilter(statuses=[PaymentStatus.FAILED, PaymentStatus.CANCELLED])
        failed_items = await repo.get_all(failed)
        failed_total = await repo.count_all(failed)
        by_orders = await repo.count_all(PaymentIntentFilter(order_ids=[20, 23]))
        no_orders = await repo.count_all(PaymentIntentFilter(order_ids=[]))
        window = PaymentIntentFilter(
            created_from=datetime(2026, 3, 14, 10, 30, tzinfo=timezone.utc),
            created_to=datetime(2026, 3, 14, 11, 30, tzinfo=timezone.utc),
        )
        in_window = await repo.get_all(window)
        summary = {s.status: (s.count, s.amount) for s in await repo.summarize_by_status(PaymentIntentFilter())}

    assert [i.order_id for i in everything] == [23, 22, 21, 20]
    assert [i.order_id for i in page] == [22, 21]
    assert [i.order_id for i in failed_items] == [23, 21]
    assert failed_total == 2
    assert by_orders == 2
    assert no_orders == 0
    assert [i.order_id for i in in_window] == [22, 21]
    assert summary[PaymentStatus.CAPTURED] == (2, Decimal("160.25"))
    assert summary[PaymentStatus.FAILED] == (1, Decimal("40.50"))
    assert PaymentStatus.PENDING not in summary


@pytest.mark.asyncio
async def test_event_search_matches_type_substring(session_factory):
    at = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        intent = await uow.payment_intent_repository.create(_intent(30))
        for event_type, status in [
            (PaymentEventType.CREATED, PaymentStatus.CREATED),
            (PaymentEventType.CAPTURED, PaymentStatus.CAPTURED),
            (PaymentEventType.REFUNDED, PaymentStatus.REFUNDED),
        ]:
            await uow.payment_event_repository.append(
                PaymentEvent(intent_id=intent.id, event_type=event_type, status=status, created_at=at)
            )

    async with SQLAlchemyUnitOfWork(session_factory, readonly=True) as uow:
        events = uow.payment_event_repository
        refunds = await events.search(event_type="refund")
        newest_first = await events.search(intent_id=intent.id)
        total = await events.count(intent_id=intent.id)
        other_intent = await events.count(intent_id=intent.id + 1)

    assert [e.event_type for e in refunds] == [PaymentEventType.REFUNDED]
    assert [e.event_type for e in newest_first] == [
        PaymentEventType.REFUNDED,
        PaymentEventType.CAPTURED,
        PaymentEventType.CREATED,
    ]
    assert total == 3
    assert other_intent == 0
