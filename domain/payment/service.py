"""
支付领域服务 - 编排支付意图的创建、状态迁移与退款

职责：
1. 创建支付意图（卡品牌识别、分期计算、3-D Secure 判定）
2. 通过实体方法执行状态迁移（迁移表校验）
3. 每次成功迁移追加一条审计事件
4. 收集需要外部副作用的领域事件（订单状态、通知），由应用层提交后分发

领域服务本身不开启事务、不加锁，调用方负责在同一工作单元内执行。
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, List, Optional

from domain.common.clock import Clock
from domain.common.exceptions import DomainValidationException
from domain.payment.card import classify_card
from domain.payment.entity import PaymentIntent, PaymentMethod
from domain.payment.event_log import EventSource, PaymentEvent, PaymentEventType
from domain.payment.events import (
    PaymentCaptured,
    PaymentDomainEvent,
    PaymentFailed,
    PaymentRefunded,
)
from domain.payment.exceptions import PaymentIntentNotFoundException
from domain.payment.installments import calculate_installment_amount
from domain.payment.money import is_minor_unit_amount
from domain.payment.refund_ledger import RefundOutcome
from domain.payment.repository import PaymentEventRepository, PaymentIntentRepository
from domain.payment.state_machine import PaymentStatus


def requires_three_d_secure(
    method: PaymentMethod,
    has_card_details: bool,
    amount: Decimal,
    threshold: Decimal,
) -> bool:
    """卡支付、提供了卡信息且金额严格大于阈值时需要 3-D Secure。"""
    return method.is_card and has_card_details and amount > threshold


class PaymentDomainService:
    def __init__(
        self,
        intent_repository: PaymentIntentRepository,
        event_repository: PaymentEventRepository,
        clock: Clock,
    ):
        self.intent_repository = intent_repository
        self.event_repository = event_repository
        self.clock = clock
        self.events: List[PaymentDomainEvent] = []  # 领域事件收集

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    async def get_intent(self, intent_id: int, *, for_update: bool = False) -> PaymentIntent:
        intent = await self.intent_repository.get_by_id(intent_id, for_update=for_update)
        if intent is None:
            raise PaymentIntentNotFoundException(f"id={intent_id}")
        return intent

    async def list_events(self, intent_id: int) -> List[PaymentEvent]:
        await self.get_intent(intent_id)
        return await self.event_repository.list_by_intent(intent_id)

    # ------------------------------------------------------------------
    # 创建
    # ------------------------------------------------------------------
    async def create_intent(
        self,
        *,
        order_id: int,
        order_amount: Decimal,
        currency: str,
        method: PaymentMethod,
        provider: str,
        three_d_secure_threshold: Decimal,
        intent_ttl: timedelta,
        card_number: Optional[str] = None,
        installment_count: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> PaymentIntent:
        """
        创建支付意图

        业务规则：
        1. 金额取自订单，调用方无法覆盖
        2. 卡支付且提供卡号时识别品牌与末四位
        3. 分期数 > 1 时计算单期金额
        4. 需要 3-D Secure 时初始状态为 pending，否则为 created
        5. 订单金额必须为正且精度不超过 0.01
        """
        if not is_minor_unit_amount(order_amount) or order_amount <= 0:
            raise DomainValidationException(
                f"Order amount must be positive with at most 2 decimal places: {order_amount}",
                field="amount",
            )
        now = self.clock.now()
        has_card = bool(card_number) and method.is_card
        three_ds = requires_three_d_secure(method, has_card, order_amount, three_d_secure_threshold)

        intent = PaymentIntent(
            id=None,
            order_id=order_id,
            amount=order_amount,
            currency=currency.upper(),
            method=method,
            status=PaymentStatus.PENDING if three_ds else PaymentStatus.CREATED,
            provider=provider,
            requires_three_d_secure=three_ds,
            metadata=metadata or {},
            created_at=now,
            updated_at=now,
            expires_at=now + intent_ttl,
        )

        if has_card:
            card = classify_card(card_number or "")
            intent.card_brand = card.brand.value
            intent.card_last4 = card.last4

        if installment_count is not None and installment_count > 1:
            intent.installment_count = installment_count
            intent.installment_amount = calculate_installment_amount(order_amount, installment_count)

        created = await self.intent_repository.create(intent)
        await self._record(
            created,
            PaymentEventType.CREATED,
            EventSource.API,
            {
                "method": created.method.value,
                "amount": str(created.amount),
                "currency": created.currency,
                "requires_three_d_secure": created.requires_three_d_secure,
            },
            at=now,
        )
        return created

    # ------------------------------------------------------------------
    # 状态迁移
    # ------------------------------------------------------------------
    async def authorize(self, intent_id: int, external_reference: str) -> PaymentIntent:
        intent = await self.get_intent(intent_id, for_update=True)
        now = self.clock.now()
        intent.authorize(external_reference, now)
        updated = await self.intent_repository.update(intent)
        await self._record(
            updated, PaymentEventType.AUTHORIZED, EventSource.API,
            {"external_reference": updated.external_reference}, at=now,
        )
        return updated

    async def capture(
        self,
        intent_id: int,
        external_reference: str,
        *,
        note: Optional[str] = None,
        source: EventSource = EventSource.API,
    ) -> PaymentIntent:
        intent = await self.get_intent(intent_id, for_update=True)
        now = self.clock.now()
        intent.capture(external_reference, now)
        updated = await self.intent_repository.update(intent)
        await self._record(updated, PaymentEventType.CAPTURED, source, {"note": note} if note else None, at=now)
        self._collect_captured(updated, now)
        return updated

    async def cancel(
        self,
        intent_id: int,
        reason: Optional[str] = None,
        *,
        source: EventSource = EventSource.API,
    ) -> PaymentIntent:
        intent = await self.get_intent(intent_id, for_update=True)
        now = self.clock.now()
        intent.cancel(reason, now)
        updated = await self.intent_repository.update(intent)
        await self._record(updated, PaymentEventType.CANCELLED, source, {"reason": reason} if reason else None, at=now)
        return updated

    async def fail(
        self,
        intent_id: int,
        reason: Optional[str] = None,
        *,
        source: EventSource = EventSource.API,
    ) -> PaymentIntent:
        intent = await self.get_intent(intent_id, for_update=True)
        now = self.clock.now()
        intent.fail(reason, now)
        updated = await self.intent_repository.update(intent)
        await self._record(updated, PaymentEventType.FAILED, source, {"reason": reason} if reason else None, at=now)
        self.events.append(PaymentFailed(intent_id=updated.id, order_id=updated.order_id, reason=reason))
        return updated

    async def refund(
        self,
        intent_id: int,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
        *,
        source: EventSource = EventSource.API,
    ) -> tuple[PaymentIntent, RefundOutcome]:
        """
        退款

        业务规则：
        1. 仅 captured / partially_refunded 可退款
        2. 未指定金额时退还剩余全部
        3. 累计退款等于支付金额时状态为 refunded，否则为 partially_refunded
        """
        intent = await self.get_intent(intent_id, for_update=True)
        now = self.clock.now()
        outcome = intent.apply_refund(amount, now)
        updated = await self.intent_repository.update(intent)
        await self._record(
            updated,
            PaymentEventType.REFUNDED,
            source,
            {"amount": str(outcome.refunded_amount), "reason": reason},
            at=now,
        )
        self.events.append(PaymentRefunded(
            intent_id=updated.id,
            order_id=updated.order_id,
            amount=outcome.refunded_amount,
            currency=updated.currency,
            total_refunded_amount=outcome.total_refunded_amount,
            remaining_amount=outcome.remaining_amount,
        ))
        return updated, outcome

    async def confirm_three_d_secure(
        self,
        intent_id: int,
        success: bool,
        external_reference: str,
    ) -> PaymentIntent:
        intent = await self.get_intent(intent_id, for_update=True)
        now = self.clock.now()
        intent.confirm_three_d_secure(success, external_reference, now)
        updated = await self.intent_repository.update(intent)
        if success:
            await self._record(
                updated, PaymentEventType.THREE_DS_CONFIRMED, EventSource.THREE_DS,
                {"outcome": "success", "external_reference": updated.external_reference}, at=now,
            )
            self._collect_captured(updated, now)
        else:
            await self._record(
                updated, PaymentEventType.FAILED, EventSource.THREE_DS,
                {"outcome": "failure", "reason": updated.failure_reason}, at=now,
            )
            self.events.append(PaymentFailed(
                intent_id=updated.id, order_id=updated.order_id, reason=updated.failure_reason,
            ))
        return updated

    # ------------------------------------------------------------------
    # 内部
    # ------------------------------------------------------------------
    async def _record(
        self,
        intent: PaymentIntent,
        event_type: PaymentEventType,
        source: EventSource,
        payload: Optional[dict[str, Any]],
        *,
        at: datetime,
    ) -> PaymentEvent:
        return await self.event_repository.append(PaymentEvent(
            intent_id=intent.id,
            event_type=event_type,
            status=intent.status,
            created_at=at,
            source=source,
            payload=payload or {},
        ))

    def _collect_captured(self, intent: PaymentIntent, now: datetime) -> None:
        self.events.append(PaymentCaptured(
            intent_id=intent.id,
            order_id=intent.order_id,
            amount=intent.amount,
            currency=intent.currency,
            captured_at=now,
        ))

    def clear_events(self) -> List[PaymentDomainEvent]:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
