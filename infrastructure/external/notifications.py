"""
Notification sender that records payment updates through structured logs.
"""
from __future__ import annotations

from application.ports.notifications import NotificationPort
from core.logging_config import get_logger


logger = get_logger(__name__)


class LoggingNotificationSender(NotificationPort):
    async def send_payment_update(
        self,
        *,
        order_id: int,
        user_id: int,
        title: str,
        message: str,
        channel: str = "in_app",
    ) -> None:
        logger.info(
            "notification_sent",
            order_id=order_id,
            user_id=user_id,
            title=title,
            message=message,
            channel=channel,
        )
