"""
Lock provider port (application/ports).

acquire() serializes work on one resource key and always releases on exit,
including when the critical section raises. Different keys may proceed
concurrently.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager

from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


class LockTimeoutError(BusinessException):
    """The lock could not be acquired within the configured wait."""

    def __init__(self, key: str):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Payment is busy, please retry",
            error_type="LockTimeout",
            details={"key": key},
        )
        self.key = key


class LockProvider(ABC):
    @abstractmethod
    def acquire(self, key: str) -> AbstractAsyncContextManager[None]:
        """Return an async context manager holding the lock for ``key``."""


def intent_lock_key(intent_id: int) -> str:
    return f"payment_intent:{intent_id}"


def order_lock_key(order_id: int) -> str:
    return f"payment_order:{order_id}"
