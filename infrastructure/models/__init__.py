"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel
from .payment import PaymentEventModel, PaymentIntentModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "PaymentEventModel",
    "PaymentIntentModel",
]
