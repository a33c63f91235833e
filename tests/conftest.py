"""测试公共夹具"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from uptime_monitor.broadcast.base import BaseBroadcaster
from uptime_monitor.models.target import MonitoredTarget, ProtocolType, TargetStatus
from uptime_monitor.probers.base import BaseProber
from uptime_monitor.store.memory_store import InMemoryStore
from uptime_monitor.utils.clock import Clock
from uptime_monitor.utils.exceptions import TransientProbeError


class FakeClock(Clock):
    """可控时钟：sleep 记录请求的时长并阻塞，直到测试调用 release"""

    def __init__(self, start: Optional[datetime] = None, auto_advance: bool = False):
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.auto_advance = auto_advance
        self.sleeps: List[float] = []
        self._waiters: List[Tuple[asyncio.Future, float]] = []

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if self.auto_advance:
            self.advance(seconds)
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        self._waiters.append((future, seconds))
        await future

    def release(self) -> None:
        """结束所有挂起的 sleep，并把时间推进相应时长"""
        waiters, self._waiters = self._waiters, []
        for future, seconds in waiters:
            if not future.done():
                self.advance(seconds)
                future.set_result(None)

    async def wait_for_sleeps(self, count: int, timeout: float = 2.0) -> None:
        """等待累计 sleep 次数达到 count"""
        async def _wait():
            while len(self.sleeps) < count:
                await asyncio.sleep(0.001)
        await asyncio.wait_for(_wait(), timeout)


class ScriptedProber(BaseProber):
    """按脚本依次返回在线/离线的探测器，脚本用完后重复最后一项"""

    protocol = 'http'

    def __init__(self, outcomes: Optional[List[TargetStatus]] = None):
        super().__init__()
        self.outcomes = list(outcomes or [TargetStatus.ONLINE])
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()

    async def check(self, target: MonitoredTarget) -> str:
        self.calls.append(target.id)
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if outcome == TargetStatus.ONLINE:
            return "200 OK"
        raise TransientProbeError("连接未建立 (Connection Refused)", address=target.address)


class RecordingBroadcaster(BaseBroadcaster):
    """记录所有发布消息的广播器"""

    def __init__(self):
        super().__init__('recording')
        self.messages: List[Tuple[str, Dict[str, Any]]] = []

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        self.messages.append((topic, payload))


def make_target(**overrides) -> MonitoredTarget:
    """构造测试目标"""
    values = dict(name='api', address='http://127.0.0.1:8080/health', protocol=ProtocolType.HTTP)
    values.update(overrides)
    return MonitoredTarget(**values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()
