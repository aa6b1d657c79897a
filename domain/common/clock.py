"""时钟抽象：领域服务通过注入的时钟获取当前 UTC 时间，便于测试。"""
from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime:
        """返回 tzinfo=UTC 的当前时间"""
        ...
