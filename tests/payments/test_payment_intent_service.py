import re
from datetime import timedelta
from decimal import Decimal

import pytest

from application.dtos.payments import CardDetails, CreatePaymentIntent, ProviderCallback
from application.ports.orders import OrderStatus
from domain.common.exceptions import DomainValidationException
from domain.payment.entity import PaymentMethod
from domain.payment.exceptions import (
    InvalidPaymentTransitionException,
    InvalidRefundAmountException,
    OrderNotFoundException,
    PaymentIntentNotFoundException,
    UnsupportedProviderCallbackException,
)


VISA = "4111111111111111"
MASTERCARD = "5111111111111118"


def _card_intent(order_id: int, number: str = VISA, **kwargs) -> CreatePaymentIntent:
    return CreatePaymentIntent(
        order_id=order_id,
        method=PaymentMethod.CREDIT_CARD,
        card=CardDetails(number=number),
        **kwargs,
    )


async def _captured(service, order_id: int = 3):
    intent = await service.create_intent(CreatePaymentIntent(order_id=order_id, method=PaymentMethod.WALLET))
    return await service.capture(intent.id)


# ---------------------------------------------------------------------------
# 创建
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_intent_takes_amount_from_order(service, clock):
    intent = await service.create_intent(_card_intent(1))

    assert intent.amount == Decimal("100.00")
    assert intent.currency == "TRY"
    assert intent.status == "created"
    assert intent.provider == "STRIPE"
    assert intent.card_brand == "Visa"
    assert intent.card_last4 == "1111"
    assert intent.requires_three_d_secure is False
    assert intent.external_reference is None
    assert intent.expires_at == clock.now() + timedelta(hours=24)


@pytest.mark.asyncio
async def test_create_intent_is_idempotent_per_order(service, store):
    first = await service.create_intent(_card_intent(1))
    replay = await service.create_intent(
        CreatePaymentIntent(order_id=1, method=PaymentMethod.WALLET, currency="USD")
    )

    assert replay.id == first.id
    assert replay.method == "credit_card"
    assert replay.currency == "TRY"
    events = await service.list_events(first.id)
    assert [e.event_type for e in events] == ["payment.created"]
    assert len(store.intents) == 1


@pytest.mark.asyncio
async def test_create_intent_for_missing_order(service, store):
    with pytest.raises(OrderNotFoundException):
        await service.create_intent(_card_intent(999))
    assert store.intents == {}


@pytest.mark.asyncio
async def test_currency_override_is_used(service):
    intent = await service.create_intent(
        CreatePaymentIntent(order_id=1, method=PaymentMethod.BANK_TRANSFER, currency="eur")
    )
    assert intent.currency == "EUR"
    assert intent.amount == Decimal("100.00")
    assert intent.provider == "BANK"


@pytest.mark.asyncio
async def test_three_d_secure_required_above_threshold(service):
    intent = await service.create_intent(_card_intent(2, MASTERCARD))

    assert intent.requires_three_d_secure is True
    assert intent.status == "pending"
    assert intent.card_brand == "Mastercard"


@pytest.mark.asyncio
async def test_threshold_amount_itself_does_not_require_three_d_secure(service):
    intent = await service.create_intent(_card_intent(3))
    assert intent.requires_three_d_secure is False
    assert intent.status == "created"


@pytest.mark.asyncio
async def test_non_card_method_ignores_card_details(service):
    intent = await service.create_intent(
        CreatePaymentIntent(order_id=2, method=PaymentMethod.WALLET, card=CardDetails(number=VISA))
    )
    assert intent.requires_three_d_secure is False
    assert intent.card_brand is None
    assert intent.provider == "PAYPAL"


@pytest.mark.asyncio
async def test_installment_plan_recorded(service):
    intent = await service.create_intent(
        CreatePaymentIntent(order_id=4, method=PaymentMethod.INSTALLMENT, installment_count=6)
    )
    assert intent.installment_count == 6
    assert intent.installment_amount == Decimal("200.00")


# ---------------------------------------------------------------------------
# 状态迁移与副作用
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_authorize_assigns_reference_without_side_effects(service, orders, notifier):
    intent = await service.create_intent(_card_intent(1))
    authorized = await service.authorize(intent.id)

    assert authorized.status == "authorized"
    assert re.fullmatch(r"PAY-20260314-[0-9A-F]{8}", authorized.external_reference)
    assert orders.status_updates == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_capture_updates_order_and_notifies_once(service, orders, notifier, clock):
    intent = await service.create_intent(_card_intent(1))
    authorized = await service.authorize(intent.id)
    captured = await service.capture(intent.id)

    assert captured.status == "captured"
    assert captured.external_reference == authorized.external_reference
    assert orders.status_updates == [(1, OrderStatus.PROCESSING, clock.now())]
    assert len(notifier.sent) == 1
    assert notifier.sent[0]["title"] == "Payment Successful"
    assert notifier.sent[0]["user_id"] == 7
    assert notifier.sent[0]["channel"] == "in_app"


@pytest.mark.asyncio
async def test_capture_without_authorize_assigns_reference(service):
    intent = await service.create_intent(_card_intent(1))
    captured = await service.capture(intent.id)
    assert captured.external_reference.startswith("PAY-")


@pytest.mark.asyncio
async def test_cancel_sets_reason_without_side_effects(service, orders, notifier):
    intent = await service.create_intent(_card_intent(1))
    cancelled = await service.cancel(intent.id, "customer changed mind")

    assert cancelled.status == "cancelled"
    assert cancelled.failure_reason == "customer changed mind"
    assert orders.status_updates == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_fail_from_authorized_marks_order_failed(service, orders, notifier):
    intent = await service.create_intent(_card_intent(1))
    await service.authorize(intent.id)
    failed = await service.fail(intent.id, "insufficient funds")

    assert failed.status == "failed"
    assert failed.failure_reason == "insufficient funds"
    assert orders.status_updates == [(1, OrderStatus.FAILED, None)]
    assert [n["title"] for n in notifier.sent] == ["Payment Failed"]


@pytest.mark.asyncio
@pytest.mark.parametrize("terminal", ["fail", "cancel", "refund"])
async def test_capture_from_terminal_state_is_rejected(service, store, terminal):
    intent = await service.create_intent(_card_intent(1))
    if terminal == "fail":
        await service.fail(intent.id, "declined")
    elif terminal == "cancel":
        await service.cancel(intent.id)
    else:
        await service.capture(intent.id)
        await service.refund(intent.id)

    before = await service.get_intent(intent.id)
    events_before = len(store.events)

    with pytest.raises(InvalidPaymentTransitionException):
        await service.capture(intent.id)

    assert await service.get_intent(intent.id) == before
    assert len(store.events) == events_before


@pytest.mark.asyncio
async def test_pending_intent_cannot_be_authorized(service):
    intent = await service.create_intent(_card_intent(2))
    with pytest.raises(InvalidPaymentTransitionException):
        await service.authorize(intent.id)


@pytest.mark.asyncio
async def test_unknown_intent_raises_not_found(service):
    with pytest.raises(PaymentIntentNotFoundException):
        await service.capture(12345)
    with pytest.raises(PaymentIntentNotFoundException):
        await service.get_intent_by_order(12345)
    with pytest.raises(PaymentIntentNotFoundException):
        await service.get_intent_by_reference("PAY-00000000-DEADBEEF")


# ---------------------------------------------------------------------------
# 3-D Secure
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_three_d_secure_success_captures(service, orders, notifier):
    intent = await service.create_intent(_card_intent(2))
    confirmed = await service.confirm_three_d_secure(intent.id, "success")

    assert confirmed.status == "captured"
    assert confirmed.external_reference is not None
    assert confirmed.authorized_at is not None
    assert orders.status_updates[0][1] == OrderStatus.PROCESSING
    assert [n["title"] for n in notifier.sent] == ["Payment Successful"]
    events = await service.list_events(intent.id)
    assert [(e.event_type, e.source) for e in events] == [
        ("payment.created", "api"),
        ("payment.3ds.confirmed", "3ds"),
    ]


@pytest.mark.asyncio
async def test_three_d_secure_failure_fails(service, orders, notifier):
    intent = await service.create_intent(_card_intent(2))
    failed = await service.confirm_three_d_secure(intent.id, "failure")

    assert failed.status == "failed"
    assert "3D Secure" in failed.failure_reason
    assert orders.status_updates == [(2, OrderStatus.FAILED, None)]
    assert [n["title"] for n in notifier.sent] == ["Payment Failed"]
    events = await service.list_events(intent.id)
    assert events[-1].event_type == "payment.failed"
    assert events[-1].source == "3ds"


@pytest.mark.asyncio
async def test_three_d_secure_on_intent_that_does_not_require_it(service):
    intent = await service.create_intent(_card_intent(1))
    with pytest.raises(InvalidPaymentTransitionException) as exc_info:
        await service.confirm_three_d_secure(intent.id, "success")
    assert "does not require 3D Secure" in exc_info.value.message


# ---------------------------------------------------------------------------
# 退款
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_partial_refunds_accumulate(service, notifier):
    intent = await _captured(service)

    first = await service.refund(intent.id, Decimal("200"), "damaged item")
    assert first.status == "partially_refunded"
    assert first.refunded_amount == Decimal("200")
    assert first.total_refunded_amount == Decimal("200")
    assert first.remaining_amount == Decimal("300")

    second = await service.refund(intent.id, Decimal("300"))
    assert second.status == "refunded"
    assert second.total_refunded_amount == Decimal("500")
    assert second.remaining_amount == Decimal("0")

    titles = [n["title"] for n in notifier.sent]
    assert titles == ["Payment Successful", "Refund Processed", "Refund Processed"]
    assert "refund" in notifier.sent[-1]["message"].lower()


@pytest.mark.asyncio
async def test_refund_defaults_to_remaining_balance(service):
    intent = await _captured(service)
    await service.refund(intent.id, Decimal("120.50"))
    result = await service.refund(intent.id)
    assert result.refunded_amount == Decimal("379.50")
    assert result.status == "refunded"


@pytest.mark.asyncio
async def test_over_refund_rejected_without_mutation(service, store, notifier):
    intent = await _captured(service)
    events_before = len(store.events)

    with pytest.raises(InvalidRefundAmountException):
        await service.refund(intent.id, Decimal("600"))

    current = await service.get_intent(intent.id)
    assert current.refunded_amount == Decimal("0")
    assert current.status == "captured"
    assert len(store.events) == events_before
    assert [n["title"] for n in notifier.sent] == ["Payment Successful"]


@pytest.mark.asyncio
async def test_refund_requires_captured_payment(service):
    intent = await service.create_intent(_card_intent(1))
    with pytest.raises(InvalidPaymentTransitionException) as exc_info:
        await service.refund(intent.id, Decimal("10"))
    assert exc_info.value.message == "Only captured payments may be refunded"


@pytest.mark.asyncio
async def test_refunded_intent_is_terminal(service):
    intent = await _captured(service)
    await service.refund(intent.id)
    for operation in (service.refund, service.capture, service.cancel):
        with pytest.raises(InvalidPaymentTransitionException):
            await operation(intent.id)


# ---------------------------------------------------------------------------
# 事件日志
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_events_are_ordered_by_time(service, clock):
    intent = await service.create_intent(_card_intent(1))
    clock.advance(minutes=1)
    await service.authorize(intent.id)
    clock.advance(minutes=1)
    await service.capture(intent.id)
    await service.refund(intent.id, Decimal("10"), "partial")

    events = await service.list_events(intent.id)
    assert [e.event_type for e in events] == [
        "payment.created",
        "payment.authorized",
        "payment.captured",
        "payment.refunded",
    ]
    assert [e.status for e in events] == ["created", "authorized", "captured", "partially_refunded"]
    assert events[-1].payload == {"amount": "10", "reason": "partial"}
    assert events[2].id < events[3].id


# ---------------------------------------------------------------------------
# 模拟与人工确认
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_simulate_success_and_failure(service, orders):
    ok = await service.create_intent(_card_intent(1))
    captured = await service.simulate_success(ok.id)
    assert captured.status == "captured"

    ko = await service.create_intent(CreatePaymentIntent(order_id=3, method=PaymentMethod.WALLET))
    failed = await service.simulate_failure(ko.id)
    assert failed.status == "failed"
    assert failed.failure_reason == "Simulated payment failure"

    events = await service.list_events(ko.id)
    assert events[-1].source == "simulator"


@pytest.mark.asyncio
async def test_mark_received_captures_with_admin_source(service):
    intent = await service.create_intent(
        CreatePaymentIntent(order_id=1, method=PaymentMethod.CASH_ON_DELIVERY)
    )
    assert intent.provider == "MANUAL"
    received = await service.mark_received(intent.id, "cash collected")
    assert received.status == "captured"

    events = await service.list_events(intent.id)
    assert events[-1].source == "admin"
    assert events[-1].payload == {"note": "cash collected"}


# ---------------------------------------------------------------------------
# 渠道回调
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_provider_callback_captures_by_reference(service):
    intent = await service.create_intent(_card_intent(1))
    authorized = await service.authorize(intent.id)

    result = await service.process_provider_callback(
        "stripe",
        ProviderCallback(event_type="payment.captured", external_reference=authorized.external_reference),
    )

    assert result.processed is True
    assert result.intent.status == "captured"
    events = await service.list_events(intent.id)
    assert events[-1].source == "webhook"


@pytest.mark.asyncio
async def test_provider_callback_partial_refund(service):
    intent = await service.create_intent(_card_intent(1))
    captured = await service.capture(intent.id)

    result = await service.process_provider_callback(
        "STRIPE",
        ProviderCallback(
            event_type="payment.refunded",
            external_reference=captured.external_reference,
            amount=Decimal("40"),
        ),
    )
    assert result.intent.status == "partially_refunded"
    assert result.intent.remaining_amount == Decimal("60.00")


@pytest.mark.asyncio
async def test_provider_callback_unknown_reference_is_ignored(service, notifier):
    result = await service.process_provider_callback(
        "stripe",
        ProviderCallback(event_type="payment.failed", external_reference="PAY-20260314-00000000"),
    )
    assert result.processed is False
    assert result.intent is None
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_provider_callback_unknown_event_type(service):
    with pytest.raises(UnsupportedProviderCallbackException):
        await service.process_provider_callback(
            "stripe",
            ProviderCallback(event_type="payment.disputed", external_reference="PAY-20260314-00000000"),
        )


@pytest.mark.asyncio
async def test_installment_count_beyond_minor_units_is_rejected(service, orders, store):
    orders.add(6, "0.05")

    with pytest.raises(DomainValidationException):
        await service.create_intent(
            CreatePaymentIntent(order_id=6, method=PaymentMethod.INSTALLMENT, installment_count=6)
        )
    assert store.intents == {}


@pytest.mark.asyncio
async def test_sub_cent_refund_leaves_ledger_untouched(service, store):
    intent = await _captured(service)

    with pytest.raises(InvalidRefundAmountException):
        await service.refund(intent.id, Decimal("0.005"))

    assert store.intents[intent.id].refunded_amount == Decimal("0")
    assert store.intents[intent.id].status.value == "captured"
