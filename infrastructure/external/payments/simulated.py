"""
Simulated payment provider.

Maps payment methods to processors and issues references of the form
``PAY-YYYYMMDD-XXXXXXXX`` without calling any external service.
"""
from __future__ import annotations

import uuid

from application.ports.payment_provider import PaymentProvider
from domain.common.clock import Clock
from domain.payment.entity import PaymentMethod


class Provider:
    STRIPE = "STRIPE"
    PAYPAL = "PAYPAL"
    BANK = "BANK"
    KLARNA = "KLARNA"
    MANUAL = "MANUAL"


_METHOD_PROVIDERS = {
    PaymentMethod.CREDIT_CARD: Provider.STRIPE,
    PaymentMethod.DEBIT_CARD: Provider.STRIPE,
    PaymentMethod.INSTALLMENT: Provider.STRIPE,
    PaymentMethod.WALLET: Provider.PAYPAL,
    PaymentMethod.BANK_TRANSFER: Provider.BANK,
    PaymentMethod.BUY_NOW_PAY_LATER: Provider.KLARNA,
}


class SimulatedPaymentProvider(PaymentProvider):
    def __init__(self, clock: Clock, *, prefix: str = "PAY"):
        self._clock = clock
        self._prefix = prefix

    def provider_for(self, method: PaymentMethod) -> str:
        return _METHOD_PROVIDERS.get(method, Provider.MANUAL)

    def new_reference(self) -> str:
        day = self._clock.now().strftime("%Y%m%d")
        return f"{self._prefix}-{day}-{uuid.uuid4().hex[:8].upper()}"
