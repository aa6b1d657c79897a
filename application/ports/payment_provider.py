"""
Payment provider port (application/ports).

The provider decides which processor handles a method and issues the
external reference recorded on authorize/capture.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from domain.payment.entity import PaymentMethod


@runtime_checkable
class PaymentProvider(Protocol):
    def provider_for(self, method: PaymentMethod) -> str: ...

    def new_reference(self) -> str: ...
