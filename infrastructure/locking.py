"""
锁提供者实现

- InMemoryLockProvider: 单进程内按 key 的 asyncio.Lock
- RedisLockProvider: 基于 redis.asyncio 的分布式锁，适用于多副本部署
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from redis import asyncio as aioredis
from redis.exceptions import LockError

from application.ports.locking import LockProvider, LockTimeoutError
from core.logging_config import get_logger


logger = get_logger(__name__)


class InMemoryLockProvider(LockProvider):
    """
    进程内锁：字典查找与锁创建之间没有 await，无需额外的全局锁。

    每个 key 记录持有与等待的协程数，归零时移除对应的锁，字典大小只随并发中的 key 增长。
    仅在单进程内有效，多副本部署使用 RedisLockProvider。
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @property
    def active_keys(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class RedisLockProvider(LockProvider):
    def __init__(
        self,
        client: aioredis.Redis,
        *,
        namespace: str = "",
        timeout: float = 10.0,
        blocking_timeout: float = 5.0,
    ) -> None:
        self._client = client
        self._namespace = namespace.strip(":")
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return f"lock:{key}"
        return f"{self._namespace}:lock:{key}"

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock_key = self._format_key(key)
        lock = self._client.lock(
            lock_key,
            timeout=self._timeout,
            blocking_timeout=self._blocking_timeout,
            thread_local=False,
        )
        acquired = await lock.acquire()
        if not acquired:
            logger.warning("lock_acquire_timeout", key=lock_key)
            raise LockTimeoutError(lock_key)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # 锁已过期被他人持有时释放会失败，仅记录
                logger.error("lock_release_failed", key=lock_key, error=str(e))
