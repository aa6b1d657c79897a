"""
支付意图应用服务（application/services）- 编排锁、事务、领域服务与提交后副作用

每个变更操作的执行顺序：
1. 获取按意图（创建时按订单）的锁
2. 在同一个工作单元内完成状态迁移与审计事件追加
3. 工作单元提交后分发领域事件（订单状态、通知）
"""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional, TypeVar

from application.dtos.payments import (
    CreatePaymentIntent,
    PaymentEventView,
    PaymentIntentView,
    ProviderCallback,
    ProviderCallbackResult,
    RefundView,
)
from application.ports.locking import LockProvider, intent_lock_key, order_lock_key
from application.ports.notifications import NotificationPort
from application.ports.orders import OrderPort
from application.ports.payment_provider import PaymentProvider
from application.services.payment_side_effects import PaymentSideEffectDispatcher
from core.config import PaymentSettings
from core.logging_config import get_logger
from domain.common.clock import Clock
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import PaymentIntent
from domain.payment.event_log import EventSource
from domain.payment.exceptions import (
    OrderNotFoundException,
    PaymentIntentAlreadyExistsException,
    PaymentIntentNotFoundException,
    UnsupportedProviderCallbackException,
)
from domain.payment.service import PaymentDomainService


logger = get_logger(__name__)

T = TypeVar("T")

SIMULATED_FAILURE_REASON = "Simulated payment failure"
PROVIDER_FAILURE_REASON = "Payment declined by provider"

CALLBACK_CAPTURED = "payment.captured"
CALLBACK_FAILED = "payment.failed"
CALLBACK_REFUNDED = "payment.refunded"


class PaymentIntentApplicationService:
    """支付意图应用服务"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        orders: OrderPort,
        notifications: NotificationPort,
        provider: PaymentProvider,
        lock_provider: LockProvider,
        clock: Clock,
        settings: PaymentSettings,
    ):
        self._uow_factory = uow_factory
        self._orders = orders
        self._provider = provider
        self._locks = lock_provider
        self._clock = clock
        self._settings = settings
        self._dispatcher = PaymentSideEffectDispatcher(orders, notifications)

    def _domain(self, uow: AbstractUnitOfWork) -> PaymentDomainService:
        return PaymentDomainService(uow.payment_intent_repository, uow.payment_event_repository, self._clock)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    async def get_intent(self, intent_id: int) -> PaymentIntentView:
        async with self._uow_factory(readonly=True) as uow:
            intent = await self._domain(uow).get_intent(intent_id)
        return PaymentIntentView.from_entity(intent)

    async def get_intent_by_order(self, order_id: int) -> PaymentIntentView:
        async with self._uow_factory(readonly=True) as uow:
            intent = await uow.payment_intent_repository.get_by_order_id(order_id)
        if intent is None:
            raise PaymentIntentNotFoundException(f"order_id={order_id}")
        return PaymentIntentView.from_entity(intent)

    async def get_intent_by_reference(self, external_reference: str) -> PaymentIntentView:
        async with self._uow_factory(readonly=True) as uow:
            intent = await uow.payment_intent_repository.get_by_external_reference(external_reference)
        if intent is None:
            raise PaymentIntentNotFoundException(f"external_reference={external_reference}")
        return PaymentIntentView.from_entity(intent)

    async def list_events(self, intent_id: int) -> List[PaymentEventView]:
        async with self._uow_factory(readonly=True) as uow:
            events = await self._domain(uow).list_events(intent_id)
        return [PaymentEventView.from_event(e) for e in events]

    # ------------------------------------------------------------------
    # 创建（按订单幂等）
    # ------------------------------------------------------------------
    async def create_intent(self, data: CreatePaymentIntent) -> PaymentIntentView:
        async with self._locks.acquire(order_lock_key(data.order_id)):
            existing = await self._find_by_order(data.order_id)
            if existing is not None:
                logger.info("payment_intent_create_replayed", order_id=data.order_id, intent_id=existing.id)
                return PaymentIntentView.from_entity(existing)

            order = await self._orders.get_by_id(data.order_id)
            if order is None:
                raise OrderNotFoundException(data.order_id)

            try:
                async with self._uow_factory() as uow:
                    intent = await self._domain(uow).create_intent(
                        order_id=order.id,
                        order_amount=Decimal(order.total_amount),
                        currency=data.currency or order.currency or self._settings.default_currency,
                        method=data.method,
                        provider=self._provider.provider_for(data.method),
                        three_d_secure_threshold=self._settings.three_d_secure_threshold,
                        intent_ttl=timedelta(hours=self._settings.intent_ttl_hours),
                        card_number=data.card.number if data.card else None,
                        installment_count=data.installment_count,
                        metadata=data.metadata,
                    )
            except PaymentIntentAlreadyExistsException:
                # 其他进程抢先创建：唯一约束冲突后回查
                existing = await self._find_by_order(data.order_id)
                if existing is None:
                    raise
                return PaymentIntentView.from_entity(existing)

        logger.info(
            "payment_intent_created",
            intent_id=intent.id,
            order_id=intent.order_id,
            method=intent.method.value,
            status=intent.status.value,
            requires_three_d_secure=intent.requires_three_d_secure,
        )
        return PaymentIntentView.from_entity(intent)

    async def _find_by_order(self, order_id: int) -> Optional[PaymentIntent]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payment_intent_repository.get_by_order_id(order_id)

    # ------------------------------------------------------------------
    # 状态迁移
    # ------------------------------------------------------------------
    async def _mutate(
        self,
        intent_id: int,
        operation: str,
        action: Callable[[PaymentDomainService], Awaitable[T]],
    ) -> T:
        async with self._locks.acquire(intent_lock_key(intent_id)):
            async with self._uow_factory() as uow:
                domain_service = self._domain(uow)
                result = await action(domain_service)
                events = domain_service.clear_events()
            # 事务已提交，副作用失败不会回滚支付状态
            await self._dispatcher.dispatch(events)
        logger.info("payment_transition", intent_id=intent_id, operation=operation)
        return result

    async def authorize(self, intent_id: int) -> PaymentIntentView:
        intent = await self._mutate(
            intent_id,
            "authorize",
            lambda ds: ds.authorize(intent_id, self._provider.new_reference()),
        )
        return PaymentIntentView.from_entity(intent)

    async def capture(
        self,
        intent_id: int,
        *,
        note: Optional[str] = None,
        source: EventSource = EventSource.API,
    ) -> PaymentIntentView:
        intent = await self._mutate(
            intent_id,
            "capture",
            lambda ds: ds.capture(intent_id, self._provider.new_reference(), note=note, source=source),
        )
        return PaymentIntentView.from_entity(intent)

    async def cancel(self, intent_id: int, reason: Optional[str] = None) -> PaymentIntentView:
        intent = await self._mutate(intent_id, "cancel", lambda ds: ds.cancel(intent_id, reason))
        return PaymentIntentView.from_entity(intent)

    async def fail(
        self,
        intent_id: int,
        reason: Optional[str],
        *,
        source: EventSource = EventSource.API,
    ) -> PaymentIntentView:
        intent = await self._mutate(intent_id, "fail", lambda ds: ds.fail(intent_id, reason, source=source))
        return PaymentIntentView.from_entity(intent)

    async def refund(
        self,
        intent_id: int,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
        *,
        source: EventSource = EventSource.API,
    ) -> RefundView:
        intent, outcome = await self._mutate(
            intent_id,
            "refund",
            lambda ds: ds.refund(intent_id, amount, reason, source=source),
        )
        logger.info(
            "payment_refund_applied",
            intent_id=intent_id,
            refunded_amount=str(outcome.refunded_amount),
            total_refunded_amount=str(outcome.total_refunded_amount),
            remaining_amount=str(outcome.remaining_amount),
            status=outcome.status.value,
        )
        return RefundView.from_outcome(intent, outcome)

    async def confirm_three_d_secure(self, intent_id: int, outcome: str) -> PaymentIntentView:
        success = outcome == "success"
        intent = await self._mutate(
            intent_id,
            "confirm_3ds",
            lambda ds: ds.confirm_three_d_secure(intent_id, success, self._provider.new_reference()),
        )
        return PaymentIntentView.from_entity(intent)

    async def mark_received(self, intent_id: int, note: Optional[str] = None) -> PaymentIntentView:
        """人工确认到账（如银行转账、货到付款），等同于捕获"""
        return await self.capture(intent_id, note=note, source=EventSource.ADMIN)

    async def simulate_success(self, intent_id: int) -> PaymentIntentView:
        return await self.capture(intent_id, source=EventSource.SIMULATOR)

    async def simulate_failure(self, intent_id: int, reason: Optional[str] = None) -> PaymentIntentView:
        return await self.fail(intent_id, reason or SIMULATED_FAILURE_REASON, source=EventSource.SIMULATOR)

    # ------------------------------------------------------------------
    # 渠道回调
    # ------------------------------------------------------------------
    async def process_provider_callback(self, provider: str, callback: ProviderCallback) -> ProviderCallbackResult:
        if callback.event_type not in (CALLBACK_CAPTURED, CALLBACK_FAILED, CALLBACK_REFUNDED):
            raise UnsupportedProviderCallbackException(callback.event_type)

        async with self._uow_factory(readonly=True) as uow:
            intent = await uow.payment_intent_repository.get_by_external_reference(callback.external_reference)

        if intent is None or intent.provider.lower() != provider.lower():
            logger.warning(
                "provider_callback_ignored",
                provider=provider,
                event_type=callback.event_type,
                external_reference=callback.external_reference,
                reason="unknown_reference" if intent is None else "provider_mismatch",
            )
            return ProviderCallbackResult(
                processed=False,
                event_type=callback.event_type,
                external_reference=callback.external_reference,
            )

        if callback.event_type == CALLBACK_CAPTURED:
            view = await self.capture(intent.id, note=callback.message, source=EventSource.WEBHOOK)
        elif callback.event_type == CALLBACK_FAILED:
            view = await self.fail(intent.id, callback.message or PROVIDER_FAILURE_REASON, source=EventSource.WEBHOOK)
        else:
            await self.refund(intent.id, callback.amount, callback.message, source=EventSource.WEBHOOK)
            view = await self.get_intent(intent.id)

        logger.info(
            "provider_callback_processed",
            provider=provider,
            event_type=callback.event_type,
            intent_id=intent.id,
            status=view.status,
        )
        return ProviderCallbackResult(
            processed=True,
            event_type=callback.event_type,
            external_reference=callback.external_reference,
            intent=view,
        )
