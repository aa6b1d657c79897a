"""Unit of Work 实现（SQLAlchemy 与内存版）"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.repositories.memory_payment_repository import (
    InMemoryPaymentEventRepository,
    InMemoryPaymentIntentRepository,
    InMemoryPaymentStore,
)
from infrastructure.repositories.payment_repository import (
    SQLAlchemyPaymentEventRepository,
    SQLAlchemyPaymentIntentRepository,
)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.payment_intent_repository = SQLAlchemyPaymentIntentRepository(self.session)
        self.payment_event_repository = SQLAlchemyPaymentEventRepository(self.session)
        if not self._readonly:
            await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            # close() 会回滚仍未结束的事务
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self.payment_intent_repository = None  # type: ignore[assignment]
            self.payment_event_repository = None  # type: ignore[assignment]

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """内存版 Unit of Work：进入时拍快照，回滚时恢复"""

    def __init__(self, store: InMemoryPaymentStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.store = store
        self._snapshot = None

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self._snapshot = self.store.snapshot()
        self.payment_intent_repository = InMemoryPaymentIntentRepository(self.store)
        self.payment_event_repository = InMemoryPaymentEventRepository(self.store)
        return self

    async def commit(self) -> None:
        self._snapshot = None
        self._committed = True

    async def rollback(self) -> None:
        if self._snapshot is not None:
            self.store.restore(self._snapshot)
            self._snapshot = None
        self._committed = False
