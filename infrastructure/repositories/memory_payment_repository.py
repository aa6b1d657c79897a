"""
内存版支付仓储 - 用于本地开发与测试

所有仓储实例共享同一个 InMemoryPaymentStore，工作单元通过快照实现回滚。
"""
from __future__ import annotations

import copy
import itertools
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from domain.payment.entity import PaymentIntent
from domain.payment.event_log import PaymentEvent
from domain.payment.exceptions import PaymentIntentAlreadyExistsException
from domain.payment.repository import (
    PaymentEventRepository,
    PaymentIntentFilter,
    PaymentIntentRepository,
    StatusSummary,
)


@dataclass
class InMemoryPaymentStore:
    intents: Dict[int, PaymentIntent] = field(default_factory=dict)
    events: List[PaymentEvent] = field(default_factory=list)
    intent_ids: itertools.count = field(default_factory=lambda: itertools.count(1))
    event_ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def snapshot(self) -> tuple[Dict[int, PaymentIntent], List[PaymentEvent]]:
        return copy.deepcopy(self.intents), list(self.events)

    def restore(self, snapshot: tuple[Dict[int, PaymentIntent], List[PaymentEvent]]) -> None:
        intents, events = snapshot
        self.intents = intents
        self.events = events


def _matches(intent: PaymentIntent, filters: PaymentIntentFilter) -> bool:
    if filters.statuses is not None and intent.status not in filters.statuses:
        return False
    if filters.order_id is not None and intent.order_id != filters.order_id:
        return False
    if filters.order_ids is not None and intent.order_id not in filters.order_ids:
        return False
    if filters.created_from is not None and intent.created_at < filters.created_from:
        return False
    if filters.created_to is not None and intent.created_at > filters.created_to:
        return False
    return True


class InMemoryPaymentIntentRepository(PaymentIntentRepository):
    def __init__(self, store: InMemoryPaymentStore):
        self.store = store

    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        if any(i.order_id == intent.order_id for i in self.store.intents.values()):
            raise PaymentIntentAlreadyExistsException(intent.order_id)
        stored = copy.deepcopy(intent)
        stored.id = next(self.store.intent_ids)
        self.store.intents[stored.id] = stored
        return copy.deepcopy(stored)

    async def get_by_id(self, intent_id: int, *, for_update: bool = False) -> Optional[PaymentIntent]:
        intent = self.store.intents.get(intent_id)
        return copy.deepcopy(intent) if intent else None

    async def get_by_order_id(self, order_id: int) -> Optional[PaymentIntent]:
        for intent in self.store.intents.values():
            if intent.order_id == order_id:
                return copy.deepcopy(intent)
        return None

    async def get_by_external_reference(self, external_reference: str) -> Optional[PaymentIntent]:
        for intent in self.store.intents.values():
            if intent.external_reference == external_reference:
                return copy.deepcopy(intent)
        return None

    async def update(self, intent: PaymentIntent) -> PaymentIntent:
        stored = self.store.intents.get(intent.id)
        if stored is None:
            raise ValueError(f"PaymentIntent with id {intent.id} not found")
        updated = copy.deepcopy(intent)
        # 金额与币种不可变
        updated.amount = stored.amount
        updated.currency = stored.currency
        self.store.intents[intent.id] = updated
        return copy.deepcopy(updated)

    def _filtered(self, filters: PaymentIntentFilter) -> List[PaymentIntent]:
        return [i for i in self.store.intents.values() if _matches(i, filters)]

    async def get_all(self, filters: PaymentIntentFilter, skip: int = 0, limit: int = 20) -> List[PaymentIntent]:
        intents = sorted(self._filtered(filters), key=lambda i: (i.created_at, i.id), reverse=True)
        return [copy.deepcopy(i) for i in intents[skip:skip + limit]]

    async def count_all(self, filters: PaymentIntentFilter) -> int:
        return len(self._filtered(filters))

    async def summarize_by_status(self, filters: PaymentIntentFilter) -> List[StatusSummary]:
        totals: Dict = {}
        for intent in self._filtered(filters):
            count, amount = totals.get(intent.status, (0, Decimal("0")))
            totals[intent.status] = (count + 1, amount + intent.amount)
        return [StatusSummary(status=s, count=c, amount=a) for s, (c, a) in totals.items()]


class InMemoryPaymentEventRepository(PaymentEventRepository):
    def __init__(self, store: InMemoryPaymentStore):
        self.store = store

    async def append(self, event: PaymentEvent) -> PaymentEvent:
        stored = event.with_id(next(self.store.event_ids))
        self.store.events.append(stored)
        return stored

    async def list_by_intent(self, intent_id: int) -> List[PaymentEvent]:
        events = [e for e in self.store.events if e.intent_id == intent_id]
        return sorted(events, key=lambda e: (e.created_at, e.id))

    def _search(self, intent_id: Optional[int], event_type: Optional[str]) -> List[PaymentEvent]:
        return [
            e for e in self.store.events
            if (intent_id is None or e.intent_id == intent_id)
            and (not event_type or event_type in e.event_type.value)
        ]

    async def search(
        self,
        intent_id: Optional[int] = None,
        event_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[PaymentEvent]:
        events = sorted(self._search(intent_id, event_type), key=lambda e: (e.created_at, e.id), reverse=True)
        return events[skip:skip + limit]

    async def count(self, intent_id: Optional[int] = None, event_type: Optional[str] = None) -> int:
        return len(self._search(intent_id, event_type))
