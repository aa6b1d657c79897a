"""
支付后台查询服务 - 只读的列表、审计事件检索与区间统计

所有查询使用只读工作单元，不加锁、不产生副作用。
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from application.dtos.payments import (
    PaymentEventView,
    PaymentIntentQuery,
    PaymentIntentView,
    PaymentStatisticsView,
)
from application.ports.orders import OrderPort
from core.config import PaymentSettings
from core.logging_config import get_logger
from domain.common.clock import Clock
from domain.common.exceptions import DomainValidationException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.repository import PaymentIntentFilter
from domain.payment.state_machine import PaymentStatus


logger = get_logger(__name__)

FAILED_STATUSES = (PaymentStatus.FAILED, PaymentStatus.CANCELLED)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # 未带时区的查询参数按 UTC 解释
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _check_period(created_from: Optional[datetime], created_to: Optional[datetime]) -> None:
    if created_from is not None and created_to is not None and created_from > created_to:
        raise DomainValidationException("from_date must not be after to_date", field="from_date")


class PaymentQueryService:
    """支付后台查询"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        orders: OrderPort,
        clock: Clock,
        settings: PaymentSettings,
    ):
        self._uow_factory = uow_factory
        self._orders = orders
        self._clock = clock
        self._settings = settings

    async def list_intents(
        self,
        query: PaymentIntentQuery,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[PaymentIntentView], int]:
        """
        分页查询支付意图

        user_id 通过订单上下文解析为该买家的订单集合后再过滤。
        """
        created_from, created_to = _as_utc(query.from_date), _as_utc(query.to_date)
        _check_period(created_from, created_to)

        order_ids = None
        if query.user_id is not None:
            order_ids = await self._orders.list_ids_by_buyer(query.user_id)

        filters = PaymentIntentFilter(
            statuses=[query.status] if query.status is not None else None,
            order_id=query.order_id,
            order_ids=order_ids,
            created_from=created_from,
            created_to=created_to,
        )
        return await self._page(filters, skip, limit)

    async def list_failed(self, skip: int = 0, limit: int = 20) -> Tuple[List[PaymentIntentView], int]:
        """失败与已取消的支付"""
        return await self._page(PaymentIntentFilter(statuses=FAILED_STATUSES), skip, limit)

    async def _page(
        self,
        filters: PaymentIntentFilter,
        skip: int,
        limit: int,
    ) -> Tuple[List[PaymentIntentView], int]:
        async with self._uow_factory(readonly=True) as uow:
            intents = await uow.payment_intent_repository.get_all(filters, skip, limit)
            total = await uow.payment_intent_repository.count_all(filters)
        return [PaymentIntentView.from_entity(i) for i in intents], total

    async def search_events(
        self,
        intent_id: Optional[int] = None,
        event_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[PaymentEventView], int]:
        """审计事件检索，event_type 为子串匹配，最新事件在前"""
        async with self._uow_factory(readonly=True) as uow:
            events = await uow.payment_event_repository.search(intent_id, event_type, skip, limit)
            total = await uow.payment_event_repository.count(intent_id, event_type)
        return [PaymentEventView.from_event(e) for e in events], total

    async def statistics(
        self,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> PaymentStatisticsView:
        """
        区间统计（按创建时间）

        未指定区间时统计最近 statistics_window_days 天。
        成功率 = captured 笔数 / 总笔数 * 100，保留两位小数。
        """
        now = self._clock.now()
        created_to = _as_utc(to_date) or now
        created_from = _as_utc(from_date) or created_to - timedelta(days=self._settings.statistics_window_days)
        _check_period(created_from, created_to)

        async with self._uow_factory(readonly=True) as uow:
            summaries = await uow.payment_intent_repository.summarize_by_status(
                PaymentIntentFilter(created_from=created_from, created_to=created_to)
            )

        by_status = {s.status: s for s in summaries}
        total = sum(s.count for s in summaries)
        captured = by_status.get(PaymentStatus.CAPTURED)
        failed = by_status.get(PaymentStatus.FAILED)
        pending = by_status.get(PaymentStatus.PENDING)
        successful = captured.count if captured else 0

        view = PaymentStatisticsView(
            period_from=created_from,
            period_to=created_to,
            total=total,
            successful=successful,
            failed=failed.count if failed else 0,
            pending=pending.count if pending else 0,
            captured_amount=captured.amount if captured else Decimal("0"),
            failed_amount=failed.amount if failed else Decimal("0"),
            success_rate=round(successful / total * 100, 2) if total else 0.0,
        )
        logger.info(
            "payment_statistics_computed",
            period_from=created_from.isoformat(),
            period_to=created_to.isoformat(),
            total=total,
        )
        return view
