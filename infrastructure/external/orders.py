"""
订单网关 - 通过订单表读取订单快照并回写支付结果
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from application.ports.orders import OrderPort, OrderSnapshot, OrderStatus
from core.logging_config import get_logger
from infrastructure.models.order import OrderModel


logger = get_logger(__name__)


class SQLAlchemyOrderGateway(OrderPort):
    """每次调用使用独立会话，订单状态回写不参与支付意图的事务"""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def get_by_id(self, order_id: int) -> Optional[OrderSnapshot]:
        async with self._session_factory() as session:
            result = await session.execute(select(OrderModel).where(OrderModel.id == order_id))
            order = result.scalar_one_or_none()
        if order is None:
            return None
        return OrderSnapshot(
            id=order.id,
            buyer_id=order.buyer_id,
            total_amount=Decimal(str(order.total_amount)),
            currency=order.currency,
            status=order.status,
        )

    async def list_ids_by_buyer(self, buyer_id: int) -> List[int]:
        async with self._session_factory() as session:
            result = await session.execute(select(OrderModel.id).where(OrderModel.buyer_id == buyer_id))
            return list(result.scalars().all())

    async def update_status(
        self,
        order_id: int,
        status: OrderStatus,
        paid_at: Optional[datetime] = None,
    ) -> None:
        values = {"status": status.value}
        if paid_at is not None:
            values["paid_at"] = paid_at
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(update(OrderModel).where(OrderModel.id == order_id).values(**values))
        logger.info("order_status_updated", order_id=order_id, status=status.value)
