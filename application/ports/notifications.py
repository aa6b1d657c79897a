"""
Notification port (application/ports).

Delivery is best-effort: callers log and continue when sending fails.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class NotificationPort(Protocol):
    async def send_payment_update(
        self,
        *,
        order_id: int,
        user_id: int,
        title: str,
        message: str,
        channel: str = "in_app",
    ) -> None: ...
