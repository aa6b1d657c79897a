"""
Order port (application/ports).

The payment flow reads an order's amount/currency/buyer and writes its
status after capture or failure. The order context owns the data.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Protocol, runtime_checkable


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    FAILED = "failed"


@dataclass(frozen=True)
class OrderSnapshot:
    id: int
    buyer_id: int
    total_amount: Decimal
    currency: str
    status: str


@runtime_checkable
class OrderPort(Protocol):
    async def get_by_id(self, order_id: int) -> Optional[OrderSnapshot]: ...

    async def list_ids_by_buyer(self, buyer_id: int) -> List[int]: ...

    async def update_status(
        self,
        order_id: int,
        status: OrderStatus,
        paid_at: Optional[datetime] = None,
    ) -> None: ...
