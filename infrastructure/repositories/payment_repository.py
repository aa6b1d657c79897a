"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.payment.entity import PaymentIntent, PaymentMethod
from domain.payment.event_log import EventSource, PaymentEvent, PaymentEventType
from domain.payment.exceptions import PaymentIntentAlreadyExistsException
from domain.payment.repository import (
    PaymentEventRepository,
    PaymentIntentFilter,
    PaymentIntentRepository,
    StatusSummary,
)
from domain.payment.state_machine import PaymentStatus
from infrastructure.models.payment import PaymentEventModel, PaymentIntentModel


logger = get_logger(__name__)


def _decimal(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite 返回 naive datetime
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _intent_conditions(filters: PaymentIntentFilter) -> list:
    conditions = []
    if filters.statuses is not None:
        conditions.append(PaymentIntentModel.status.in_([s.value for s in filters.statuses]))
    if filters.order_id is not None:
        conditions.append(PaymentIntentModel.order_id == filters.order_id)
    if filters.order_ids is not None:
        conditions.append(PaymentIntentModel.order_id.in_(list(filters.order_ids)))
    if filters.created_from is not None:
        conditions.append(PaymentIntentModel.created_at >= filters.created_from)
    if filters.created_to is not None:
        conditions.append(PaymentIntentModel.created_at <= filters.created_to)
    return conditions


def _event_conditions(intent_id: Optional[int], event_type: Optional[str]) -> list:
    conditions = []
    if intent_id is not None:
        conditions.append(PaymentEventModel.intent_id == intent_id)
    if event_type:
        conditions.append(PaymentEventModel.event_type.contains(event_type))
    return conditions


class SQLAlchemyPaymentIntentRepository(PaymentIntentRepository):
    """支付意图仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentIntentModel) -> PaymentIntent:
        """将数据库模型转换为领域实体"""
        return PaymentIntent(
            id=model.id,
            order_id=model.order_id,
            amount=_decimal(model.amount),
            currency=model.currency,
            method=PaymentMethod(model.method),
            status=PaymentStatus(model.status),
            provider=model.provider,
            external_reference=model.external_reference,
            card_brand=model.card_brand,
            card_last4=model.card_last4,
            requires_three_d_secure=bool(model.requires_three_d_secure),
            installment_count=model.installment_count,
            installment_amount=_decimal(model.installment_amount),
            refunded_amount=_decimal(model.refunded_amount) or Decimal("0"),
            failure_reason=model.failure_reason,
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
            authorized_at=model.authorized_at,
            captured_at=model.captured_at,
            failed_at=model.failed_at,
            cancelled_at=model.cancelled_at,
            refunded_at=model.refunded_at,
            expires_at=model.expires_at,
        )

    def _to_model(self, entity: PaymentIntent) -> PaymentIntentModel:
        """将领域实体转换为数据库模型"""
        return PaymentIntentModel(
            id=entity.id,
            order_id=entity.order_id,
            amount=entity.amount,
            currency=entity.currency,
            refunded_amount=entity.refunded_amount,
            method=entity.method.value,
            status=entity.status.value,
            provider=entity.provider,
            external_reference=entity.external_reference,
            card_brand=entity.card_brand,
            card_last4=entity.card_last4,
            requires_three_d_secure=entity.requires_three_d_secure,
            installment_count=entity.installment_count,
            installment_amount=entity.installment_amount,
            failure_reason=entity.failure_reason,
            extra_metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            authorized_at=entity.authorized_at,
            captured_at=entity.captured_at,
            failed_at=entity.failed_at,
            cancelled_at=entity.cancelled_at,
            refunded_at=entity.refunded_at,
            expires_at=entity.expires_at,
        )

    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        """创建支付意图"""
        try:
            db_intent = self._to_model(intent)
            self.session.add(db_intent)
            await self.session.flush()
            await self.session.refresh(db_intent)
        except IntegrityError as e:
            await self.session.rollback()
            if "order_id" in str(e).lower():
                logger.warning("payment_intent_create_conflict", order_id=intent.order_id)
                raise PaymentIntentAlreadyExistsException(intent.order_id)
            raise
        logger.info(
            "payment_intent_persisted",
            intent_id=db_intent.id,
            order_id=db_intent.order_id,
        )
        return self._to_entity(db_intent)

    async def get_by_id(self, intent_id: int, *, for_update: bool = False) -> Optional[PaymentIntent]:
        """根据ID获取支付意图"""
        query = select(PaymentIntentModel).where(PaymentIntentModel.id == intent_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        db_intent = result.scalar_one_or_none()
        return self._to_entity(db_intent) if db_intent else None

    async def get_by_order_id(self, order_id: int) -> Optional[PaymentIntent]:
        """根据订单ID获取支付意图"""
        result = await self.session.execute(
            select(PaymentIntentModel).where(PaymentIntentModel.order_id == order_id)
        )
        db_intent = result.scalar_one_or_none()
        return self._to_entity(db_intent) if db_intent else None

    async def get_by_external_reference(self, external_reference: str) -> Optional[PaymentIntent]:
        """根据渠道参考号获取支付意图"""
        result = await self.session.execute(
            select(PaymentIntentModel).where(PaymentIntentModel.external_reference == external_reference)
        )
        db_intent = result.scalar_one_or_none()
        return self._to_entity(db_intent) if db_intent else None

    async def update(self, intent: PaymentIntent) -> PaymentIntent:
        """更新支付意图（金额与币种不写回）"""
        result = await self.session.execute(
            select(PaymentIntentModel).where(PaymentIntentModel.id == intent.id)
        )
        db_intent = result.scalar_one_or_none()

        if not db_intent:
            raise ValueError(f"PaymentIntent with id {intent.id} not found")

        db_intent.status = intent.status.value
        db_intent.external_reference = intent.external_reference
        db_intent.refunded_amount = intent.refunded_amount
        db_intent.failure_reason = intent.failure_reason
        db_intent.extra_metadata = intent.metadata
        db_intent.updated_at = intent.updated_at
        db_intent.authorized_at = intent.authorized_at
        db_intent.captured_at = intent.captured_at
        db_intent.failed_at = intent.failed_at
        db_intent.cancelled_at = intent.cancelled_at
        db_intent.refunded_at = intent.refunded_at

        await self.session.flush()
        await self.session.refresh(db_intent)

        logger.info(
            "payment_intent_updated",
            intent_id=db_intent.id,
            order_id=db_intent.order_id,
            status=db_intent.status,
        )
        return self._to_entity(db_intent)

    async def get_all(self, filters: PaymentIntentFilter, skip: int = 0, limit: int = 20) -> List[PaymentIntent]:
        """分页查询支付意图"""
        query = (
            select(PaymentIntentModel)
            .where(*_intent_conditions(filters))
            .order_by(PaymentIntentModel.created_at.desc(), PaymentIntentModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count_all(self, filters: PaymentIntentFilter) -> int:
        query = select(func.count(PaymentIntentModel.id)).where(*_intent_conditions(filters))
        result = await self.session.execute(query)
        return result.scalar_one()

    async def summarize_by_status(self, filters: PaymentIntentFilter) -> List[StatusSummary]:
        query = (
            select(
                PaymentIntentModel.status,
                func.count(PaymentIntentModel.id),
                func.coalesce(func.sum(PaymentIntentModel.amount), 0),
            )
            .where(*_intent_conditions(filters))
            .group_by(PaymentIntentModel.status)
        )
        result = await self.session.execute(query)
        return [
            StatusSummary(status=PaymentStatus(status), count=count, amount=_decimal(amount))
            for status, count, amount in result.all()
        ]


class SQLAlchemyPaymentEventRepository(PaymentEventRepository):
    """审计事件仓储的SQLAlchemy实现（只追加）"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_event(self, model: PaymentEventModel) -> PaymentEvent:
        return PaymentEvent(
            id=model.id,
            intent_id=model.intent_id,
            event_type=PaymentEventType(model.event_type),
            status=PaymentStatus(model.status),
            source=EventSource(model.source),
            payload=model.payload or {},
            created_at=_utc(model.created_at),
        )

    async def append(self, event: PaymentEvent) -> PaymentEvent:
        db_event = PaymentEventModel(
            intent_id=event.intent_id,
            event_type=event.event_type.value,
            status=event.status.value,
            source=event.source.value,
            payload=dict(event.payload),
            created_at=event.created_at,
        )
        self.session.add(db_event)
        await self.session.flush()
        return event.with_id(db_event.id)

    async def list_by_intent(self, intent_id: int) -> List[PaymentEvent]:
        result = await self.session.execute(
            select(PaymentEventModel)
            .where(PaymentEventModel.intent_id == intent_id)
            .order_by(PaymentEventModel.created_at.asc(), PaymentEventModel.id.asc())
        )
        return [self._to_event(m) for m in result.scalars().all()]

    async def search(
        self,
        intent_id: Optional[int] = None,
        event_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[PaymentEvent]:
        result = await self.session.execute(
            select(PaymentEventModel)
            .where(*_event_conditions(intent_id, event_type))
            .order_by(PaymentEventModel.created_at.desc(), PaymentEventModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_event(m) for m in result.scalars().all()]

    async def count(self, intent_id: Optional[int] = None, event_type: Optional[str] = None) -> int:
        result = await self.session.execute(
            select(func.count(PaymentEventModel.id)).where(*_event_conditions(intent_id, event_type))
        )
        return result.scalar_one()
