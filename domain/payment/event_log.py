"""
支付审计事件 - 只追加、不可变

每一次成功的状态迁移恰好追加一条 PaymentEvent，排序按 created_at，
同一时间戳按插入顺序（id）排序。仓储接口只提供追加与查询。
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional
from types import MappingProxyType

from domain.payment.state_machine import PaymentStatus


class PaymentEventType(str, Enum):
    CREATED = "payment.created"
    AUTHORIZED = "payment.authorized"
    CAPTURED = "payment.captured"
    FAILED = "payment.failed"
    CANCELLED = "payment.cancelled"
    REFUNDED = "payment.refunded"
    THREE_DS_CONFIRMED = "payment.3ds.confirmed"


class EventSource(str, Enum):
    API = "api"
    THREE_DS = "3ds"
    WEBHOOK = "webhook"
    SIMULATOR = "simulator"
    ADMIN = "admin"


def _freeze(payload: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(payload or {}))


@dataclass(frozen=True)
class PaymentEvent:
    intent_id: int
    event_type: PaymentEventType
    status: PaymentStatus
    created_at: datetime
    source: EventSource = EventSource.API
    payload: Mapping[str, Any] = field(default_factory=dict)
    id: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", _freeze(self.payload))

    def with_id(self, event_id: int) -> "PaymentEvent":
        """持久化后由仓储赋予 id，返回新实例而非原地修改。"""
        return replace(self, id=event_id)
