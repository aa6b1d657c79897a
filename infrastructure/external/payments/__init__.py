"""
Factory for payment providers.
"""
from __future__ import annotations

from application.ports.payment_provider import PaymentProvider
from core.config import settings
from domain.common.clock import Clock


def get_payment_provider(clock: Clock) -> PaymentProvider:
    from .simulated import SimulatedPaymentProvider
    return SimulatedPaymentProvider(clock, prefix=settings.payment.reference_prefix)
