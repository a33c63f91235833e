"""单个目标的周期检查循环"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, TYPE_CHECKING

from .downtime_tracker import DowntimeTracker
from ..broadcast.base import BaseBroadcaster, STATUS_UPDATE_TOPIC
from ..models.target import MonitoredTarget, ProbeResult, ProtocolType, TargetStatus
from ..probers.base import BaseProber
from ..store.base import BaseStore
from ..utils.clock import Clock
from ..utils.exceptions import TargetInvalidatedError
from ..utils.log_manager import get_logger

if TYPE_CHECKING:
    from .registry import CheckHandle, CheckRegistry


class LoopState(Enum):
    """检查循环状态"""
    STARTING = "starting"
    PROBING = "probing"
    EVALUATING = "evaluating"
    PERSISTING = "persisting"
    DELAYING = "delaying"
    ERROR_COOLDOWN = "error_cooldown"
    CANCELLED = "cancelled"
    INVALIDATED = "invalidated"


@dataclass
class LoopSettings:
    """检查循环参数"""
    failure_threshold: int = 3
    error_cooldown_ms: int = 5000


class CheckLoop:
    """
    单个目标的检查循环

    每个周期重新加载目标并探测，然后在探测后的短会话内评估状态变化、
    维护停机事件并只保存状态相关字段；提交成功后再广播状态更新。
    周期内的意外错误只会让循环进入冷却，不会终止循环；
    目标被删除或进入维护时循环自行结束并从注册表注销。
    """

    def __init__(self, target: MonitoredTarget, store: BaseStore,
                 probers: Mapping[ProtocolType, BaseProber], broadcaster: BaseBroadcaster,
                 clock: Clock, tracker: Optional[DowntimeTracker] = None,
                 settings: Optional[LoopSettings] = None,
                 registry: Optional['CheckRegistry'] = None):
        """
        初始化检查循环

        Args:
            target: 注册时的目标配置，只用于标识和日志，每个周期都会从存储重新加载
            store: 持久化存储
            probers: 协议到探测器的映射
            broadcaster: 状态广播器
            clock: 时钟
            tracker: 停机事件跟踪器
            settings: 循环参数
            registry: 注册表，循环失效时从中注销自己
        """
        self.target_id = target.id
        self.target_name = target.name
        self.store = store
        self.probers = probers
        self.broadcaster = broadcaster
        self.clock = clock
        self.tracker = tracker or DowntimeTracker()
        self.settings = settings or LoopSettings()
        self.registry = registry
        self.handle: Optional['CheckHandle'] = None

        self.state = LoopState.STARTING
        self.next_delay_ms = 0
        self.cycle_count = 0
        self.logger = get_logger(f'check_loop.{self.target_name}')

    async def run(self, predecessor: Optional[asyncio.Task] = None) -> None:
        """
        运行检查循环直到被取消或目标失效

        Args:
            predecessor: 被本循环替换的旧循环任务，开始检查前等待其完全退出
        """
        try:
            if predecessor is not None:
                await self._wait_for_predecessor(predecessor)

            self.logger.info(f"检查循环启动: {self.target_name} ({self.target_id})")
            while True:
                try:
                    delay_ms = await self.run_cycle()
                    self.state = LoopState.DELAYING
                except TargetInvalidatedError as e:
                    self.state = LoopState.INVALIDATED
                    self.logger.info(f"检查循环结束: {e.reason}")
                    self._unregister()
                    return
                except Exception as e:
                    self.state = LoopState.ERROR_COOLDOWN
                    delay_ms = self.settings.error_cooldown_ms
                    self.logger.error(
                        f"检查周期出错，{delay_ms}毫秒后重试: {e}", exc_info=True)

                self.next_delay_ms = delay_ms
                if delay_ms > 0:
                    await self.clock.sleep(delay_ms / 1000)
        except asyncio.CancelledError:
            self.state = LoopState.CANCELLED
            self.logger.info(f"检查循环已取消: {self.target_name}")
            raise

    async def run_cycle(self) -> int:
        """
        执行一个检查周期

        探测前后各使用一个短会话：先加载并确认目标仍可调度，
        探测期间不持有会话，探测后重新加载目标，只写回状态相关字段并维护停机事件。

        Returns:
            int: 下一次检查前的等待时间（毫秒）

        Raises:
            TargetInvalidatedError: 目标不存在、已删除或处于维护模式
        """
        self.state = LoopState.PROBING
        async with self.store.session() as session:
            target = self._ensure_schedulable(await session.load_target(self.target_id))

        result = await self._probe(target)
        now = self.clock.now()

        self.state = LoopState.EVALUATING
        async with self.store.session() as session:
            # 探测期间目标可能被修改、删除或进入维护
            target = self._ensure_schedulable(await session.load_target(self.target_id))
            previous_status = target.status
            target.status = result.status
            target.last_status_description = result.description
            target.last_check_time = now

            if target.status == TargetStatus.ONLINE:
                target.failed_check_count = 0
                if previous_status != TargetStatus.ONLINE:
                    await self.tracker.close(session, target.id, now)
            else:
                target.failed_check_count += 1
                if previous_status != TargetStatus.OFFLINE:
                    await self.tracker.open(session, target.id, now)

            if target.failed_check_count >= self.settings.failure_threshold:
                self.logger.warning(
                    f"{target.name} 连续失败 {target.failed_check_count} 次，"
                    f"{target.retry_interval_ms}毫秒后重试")
                target.status = TargetStatus.PENDING
                target.failed_check_count = 0
                delay_ms = target.retry_interval_ms
            else:
                delay_ms = target.refresh_interval_ms

            self.state = LoopState.PERSISTING
            await session.save_check_result(
                target.id, target.status, target.last_status_description,
                target.last_check_time, target.failed_check_count)

        self.cycle_count += 1
        await self._publish(target)
        return delay_ms

    def _ensure_schedulable(self, target: Optional[MonitoredTarget]) -> MonitoredTarget:
        if target is None:
            raise TargetInvalidatedError(self.target_id, "目标不存在")
        if target.is_deleted:
            raise TargetInvalidatedError(self.target_id, "目标已删除")
        if target.is_in_maintenance:
            raise TargetInvalidatedError(self.target_id, "目标处于维护模式")
        return target

    async def _probe(self, target: MonitoredTarget) -> ProbeResult:
        prober = self.probers.get(target.protocol)
        if prober is None:
            return ProbeResult(status=TargetStatus.OFFLINE,
                               description=f"不支持的协议: {target.protocol}")
        return await prober.probe(target)

    async def _publish(self, target: MonitoredTarget) -> None:
        try:
            await self.broadcaster.publish(STATUS_UPDATE_TOPIC, target.to_dict())
        except Exception as e:
            self.logger.warning(f"广播状态更新失败: {e}")

    async def _wait_for_predecessor(self, predecessor: asyncio.Task) -> None:
        # 旧循环退出前新循环不得产生任何副作用
        try:
            await asyncio.wait({predecessor})
        except asyncio.CancelledError:
            await asyncio.wait({predecessor})
            raise

    def _unregister(self) -> None:
        if self.registry is not None and self.handle is not None:
            self.registry.discard(self.target_id, self.handle)
