"""时钟抽象，检查循环通过它取当前时间和挂起等待"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """时钟接口"""

    @abstractmethod
    def now(self) -> datetime:
        """返回当前UTC时间"""

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """挂起指定秒数，可被任务取消打断"""


class SystemClock(Clock):
    """基于系统时间与 asyncio.sleep 的时钟"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
