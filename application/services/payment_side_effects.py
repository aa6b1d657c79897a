"""
Post-commit side effects for payment domain events.

Each collected event is applied to the order collaborator and/or the
notification collaborator exactly once. Failures are logged per event and do
not affect the committed payment state.
"""
from __future__ import annotations

from typing import Iterable

from application.ports.notifications import NotificationPort
from application.ports.orders import OrderPort, OrderStatus
from core.logging_config import get_logger
from domain.payment.events import (
    PaymentCaptured,
    PaymentDomainEvent,
    PaymentFailed,
    PaymentRefunded,
)


logger = get_logger(__name__)

NOTIFICATION_CHANNEL = "in_app"


class PaymentSideEffectDispatcher:
    def __init__(self, orders: OrderPort, notifications: NotificationPort) -> None:
        self._orders = orders
        self._notifications = notifications

    async def dispatch(self, events: Iterable[PaymentDomainEvent]) -> None:
        for event in events:
            try:
                await self._handle(event)
            except Exception as e:
                logger.error(
                    "payment_side_effect_failed",
                    event=type(event).__name__,
                    intent_id=event.intent_id,
                    order_id=event.order_id,
                    error=str(e),
                    exc_info=True,
                )

    async def _handle(self, event: PaymentDomainEvent) -> None:
        if isinstance(event, PaymentCaptured):
            await self._orders.update_status(event.order_id, OrderStatus.PROCESSING, paid_at=event.captured_at)
            await self._notify(
                event,
                "Payment Successful",
                f"Your payment of {event.amount:.2f} {event.currency} for order #{event.order_id} was successful.",
            )
        elif isinstance(event, PaymentFailed):
            await self._orders.update_status(event.order_id, OrderStatus.FAILED)
            reason = f": {event.reason}" if event.reason else "."
            await self._notify(
                event,
                "Payment Failed",
                f"Your payment for order #{event.order_id} failed{reason}",
            )
        elif isinstance(event, PaymentRefunded):
            await self._notify(
                event,
                "Refund Processed",
                f"A refund of {event.amount:.2f} {event.currency} for order #{event.order_id} has been processed.",
            )
        else:
            logger.debug("payment_event_ignored", event=type(event).__name__)

    async def _notify(self, event: PaymentDomainEvent, title: str, message: str) -> None:
        order = await self._orders.get_by_id(event.order_id)
        if order is None:
            logger.warning("payment_notification_skipped", order_id=event.order_id, reason="order_missing")
            return
        await self._notifications.send_payment_update(
            order_id=event.order_id,
            user_id=order.buyer_id,
            title=title,
            message=message,
            channel=NOTIFICATION_CHANNEL,
        )
