"""
支付仓储接口 - 定义支付意图与审计事件的抽象数据访问
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from .entity import PaymentIntent
from .event_log import PaymentEvent
from .state_machine import PaymentStatus


@dataclass(frozen=True)
class PaymentIntentFilter:
    """支付意图查询条件；未设置的字段不参与过滤，created_from/created_to 为闭区间"""
    statuses: Optional[Sequence[PaymentStatus]] = None
    order_id: Optional[int] = None
    order_ids: Optional[Sequence[int]] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


@dataclass(frozen=True)
class StatusSummary:
    """按状态聚合的笔数与金额"""
    status: PaymentStatus
    count: int
    amount: Decimal


class PaymentIntentRepository(ABC):
    """支付意图仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        """创建支付意图；order_id 冲突时抛出 PaymentIntentAlreadyExistsException"""
        pass

    @abstractmethod
    async def get_by_id(self, intent_id: int, *, for_update: bool = False) -> Optional[PaymentIntent]:
        """根据ID获取支付意图；for_update 为真时加行锁"""
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: int) -> Optional[PaymentIntent]:
        """根据订单ID获取支付意图（一个订单至多一个）"""
        pass

    @abstractmethod
    async def get_by_external_reference(self, external_reference: str) -> Optional[PaymentIntent]:
        """根据渠道参考号获取支付意图"""
        pass

    @abstractmethod
    async def update(self, intent: PaymentIntent) -> PaymentIntent:
        """更新可变字段（状态、参考号、退款金额、时间戳等）；金额与币种不会被写回"""
        pass

    @abstractmethod
    async def get_all(
        self,
        filters: PaymentIntentFilter,
        skip: int = 0,
        limit: int = 20,
    ) -> List[PaymentIntent]:
        """按创建时间倒序（同时间按 id 倒序）分页查询"""
        pass

    @abstractmethod
    async def count_all(self, filters: PaymentIntentFilter) -> int:
        pass

    @abstractmethod
    async def summarize_by_status(self, filters: PaymentIntentFilter) -> List[StatusSummary]:
        """按状态汇总笔数与金额，没有记录的状态不返回"""
        pass


class PaymentEventRepository(ABC):
    """审计事件仓储 - 只追加，不提供修改与删除"""

    @abstractmethod
    async def append(self, event: PaymentEvent) -> PaymentEvent:
        """追加事件，返回带 id 的事件"""
        pass

    @abstractmethod
    async def list_by_intent(self, intent_id: int) -> List[PaymentEvent]:
        """按 created_at 升序（同时间按 id）返回事件"""
        pass

    @abstractmethod
    async def search(
        self,
        intent_id: Optional[int] = None,
        event_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[PaymentEvent]:
        """event_type 按子串匹配；按 created_at 倒序（同时间按 id 倒序）"""
        pass

    @abstractmethod
    async def count(self, intent_id: Optional[int] = None, event_type: Optional[str] = None) -> int:
        pass
