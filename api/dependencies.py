"""
API依赖项 - 组装支付应用服务
"""
from functools import partial
from typing import Optional

from fastapi import Depends, HTTPException, Query, status
from redis import asyncio as aioredis

from application.dtos.payments import PaginationParams
from application.ports.locking import LockProvider
from application.services.payment_intent_service import PaymentIntentApplicationService
from application.services.payment_query_service import PaymentQueryService
from core.config import settings
from domain.common.clock import Clock
from infrastructure.clock import SystemClock
from infrastructure.database import AsyncSessionLocal
from infrastructure.external.notifications import LoggingNotificationSender
from infrastructure.external.orders import SQLAlchemyOrderGateway
from infrastructure.external.payments import get_payment_provider
from infrastructure.locking import InMemoryLockProvider, RedisLockProvider
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


_clock = SystemClock()
_lock_provider: Optional[LockProvider] = None


def get_clock() -> Clock:
    return _clock


def get_lock_provider() -> LockProvider:
    """进程级单例：同一进程内所有请求必须共享同一把按意图的锁"""
    global _lock_provider
    if _lock_provider is None:
        if settings.payment.lock_backend == "redis":
            if not settings.redis.url:
                raise RuntimeError("PAYMENT__LOCK_BACKEND=redis 需要配置 REDIS__URL")
            client = aioredis.from_url(
                settings.redis.url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=settings.redis.max_connections,
            )
            _lock_provider = RedisLockProvider(
                client,
                namespace=settings.redis.namespace,
                timeout=settings.payment.lock_timeout_seconds,
                blocking_timeout=settings.payment.lock_blocking_timeout_seconds,
            )
        else:
            _lock_provider = InMemoryLockProvider()
    return _lock_provider


async def get_payment_intent_service(
    lock_provider: LockProvider = Depends(get_lock_provider),
    clock: Clock = Depends(get_clock),
) -> PaymentIntentApplicationService:
    return PaymentIntentApplicationService(
        uow_factory=partial(SQLAlchemyUnitOfWork, AsyncSessionLocal),
        orders=SQLAlchemyOrderGateway(AsyncSessionLocal),
        notifications=LoggingNotificationSender(),
        provider=get_payment_provider(clock),
        lock_provider=lock_provider,
        clock=clock,
        settings=settings.payment,
    )


async def get_payment_query_service(clock: Clock = Depends(get_clock)) -> PaymentQueryService:
    return PaymentQueryService(
        uow_factory=partial(SQLAlchemyUnitOfWork, AsyncSessionLocal),
        orders=SQLAlchemyOrderGateway(AsyncSessionLocal),
        clock=clock,
        settings=settings.payment,
    )


def get_pagination_params(
    page: int = Query(1, ge=1, description="页码，从1开始"),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="每页大小"),
) -> PaginationParams:
    return PaginationParams(page=page, size=size)


async def require_simulation_enabled() -> None:
    if not settings.payment.simulation_enabled:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Payment simulation is disabled",
        )
