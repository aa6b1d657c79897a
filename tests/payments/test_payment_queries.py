from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from application.dtos.payments import CardDetails, CreatePaymentIntent, PaymentIntentQuery
from domain.common.exceptions import DomainValidationException
from domain.payment.entity import PaymentMethod
from domain.payment.state_machine import PaymentStatus


async def _seed(service, orders, clock):
    """五笔支付，每笔间隔一小时：captured / failed / cancelled / pending / created"""
    orders.add(5, "80.00", buyer_id=8)
    ids = {}

    ids[1] = (await service.create_intent(CreatePaymentIntent(order_id=1, method=PaymentMethod.WALLET))).id
    await service.capture(ids[1])

    clock.advance(hours=1)
    ids[2] = (await service.create_intent(CreatePaymentIntent(order_id=2, method=PaymentMethod.WALLET))).id
    await service.fail(ids[2], "insufficient funds")

    clock.advance(hours=1)
    ids[3] = (await service.create_intent(CreatePaymentIntent(order_id=3, method=PaymentMethod.BANK_TRANSFER))).id
    await service.cancel(ids[3], "changed mind")

    clock.advance(hours=1)
    ids[4] = (
        await service.create_intent(
            CreatePaymentIntent(
                order_id=4,
                method=PaymentMethod.CREDIT_CARD,
                card=CardDetails(number="4111111111111111"),
            )
        )
    ).id

    clock.advance(hours=1)
    ids[5] = (await service.create_intent(CreatePaymentIntent(order_id=5, method=PaymentMethod.WALLET))).id
    return ids


@pytest.mark.asyncio
async def test_list_intents_newest_first_with_pagination(service, query_service, orders, clock):
    await _seed(service, orders, clock)

    items, total = await query_service.list_intents(PaymentIntentQuery())
    assert total == 5
    assert [i.order_id for i in items] == [5, 4, 3, 2, 1]

    page, total = await query_service.list_intents(PaymentIntentQuery(), skip=2, limit=2)
    assert total == 5
    assert [i.order_id for i in page] == [3, 2]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "query, expected",
    [
        (PaymentIntentQuery(status=PaymentStatus.FAILED), [2]),
        (PaymentIntentQuery(status=PaymentStatus.PENDING), [4]),
        (PaymentIntentQuery(order_id=3), [3]),
        (PaymentIntentQuery(user_id=8), [5]),
        (PaymentIntentQuery(user_id=99), []),
        (PaymentIntentQuery(user_id=7, status=PaymentStatus.CAPTURED), [1]),
    ],
)
async def test_list_intents_filters(service, query_service, orders, clock, query, expected):
    await _seed(service, orders, clock)

    items, total = await query_service.list_intents(query)
    assert [i.order_id for i in items] == expected
    assert total == len(expected)


@pytest.mark.asyncio
async def test_list_intents_date_range_is_inclusive(service, query_service, orders, clock):
    start = clock.now()
    await _seed(service, orders, clock)

    query = PaymentIntentQuery(from_date=start + timedelta(hours=1), to_date=start + timedelta(hours=2))
    items, total = await query_service.list_intents(query)

    assert [i.order_id for i in items] == [3, 2]
    assert total == 2


@pytest.mark.asyncio
async def test_naive_dates_are_read_as_utc(service, query_service, orders, clock):
    start = clock.now()
    await _seed(service, orders, clock)

    naive = (start + timedelta(hours=3)).replace(tzinfo=None)
    items, _ = await query_service.list_intents(PaymentIntentQuery(from_date=naive))

    assert [i.order_id for i in items] == [5, 4]


@pytest.mark.asyncio
async def test_inverted_date_range_is_rejected(query_service):
    with pytest.raises(DomainValidationException):
        await query_service.list_intents(
            PaymentIntentQuery(from_date=datetime(2026, 3, 15), to_date=datetime(2026, 3, 14))
        )


@pytest.mark.asyncio
async def test_list_failed_includes_cancelled(service, query_service, orders, clock):
    await _seed(service, orders, clock)

    items, total = await query_service.list_failed()

    assert total == 2
    assert [(i.order_id, i.status) for i in items] == [(3, "cancelled"), (2, "failed")]
    assert items[1].failure_reason == "insufficient funds"


@pytest.mark.asyncio
async def test_search_events_by_type_and_intent(service, query_service, orders, clock):
    ids = await _seed(service, orders, clock)

    captured, total = await query_service.search_events(event_type="captured")
    assert total == 1
    assert captured[0].intent_id == ids[1]

    for_intent, total = await query_service.search_events(intent_id=ids[1])
    assert total == 2
    assert [e.event_type for e in for_intent] == ["payment.captured", "payment.created"]

    everything, total = await query_service.search_events(limit=3)
    assert total == 8
    assert len(everything) == 3
    assert everything[0].intent_id == ids[5]


@pytest.mark.asyncio
async def test_statistics_default_window(service, query_service, orders, clock):
    await _seed(service, orders, clock)

    stats = await query_service.statistics()

    assert stats.period_to == clock.now()
    assert stats.period_from == clock.now() - timedelta(days=30)
    assert stats.total == 5
    assert stats.successful == 1
    assert stats.failed == 1
    assert stats.pending == 1
    assert stats.captured_amount == Decimal("100.00")
    assert stats.failed_amount == Decimal("600.00")
    assert stats.success_rate == 20.0


@pytest.mark.asyncio
async def test_statistics_for_explicit_period(service, query_service, orders, clock):
    start = clock.now()
    await _seed(service, orders, clock)

    stats = await query_service.statistics(from_date=start + timedelta(hours=3))

    assert stats.total == 2
    assert stats.pending == 1
    assert stats.successful == 0
    assert stats.captured_amount == Decimal("0")
    assert stats.success_rate == 0.0


@pytest.mark.asyncio
async def test_statistics_without_payments(query_service):
    stats = await query_service.statistics()

    assert stats.total == 0
    assert stats.success_rate == 0.0
