"""监控编排器：为每个可调度目标维护一个检查循环"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .check_loop import CheckLoop, LoopSettings
from .downtime_tracker import DowntimeTracker
from .registry import CheckHandle, CheckRegistry
from ..broadcast.base import BaseBroadcaster, CompositeBroadcaster
from ..models.target import MonitoredTarget, ProbeRequest, ProbeResult, ProtocolType, TargetStatus
from ..probers.base import BaseProber
from ..probers.factory import ProberFactory, prober_factory
from ..store.base import BaseStore
from ..utils.clock import Clock, SystemClock
from ..utils.log_manager import get_logger


class MonitorOrchestrator:
    """监控编排器

    对外提供 bootstrap/upsert/remove/probe_once/stop。
    upsert 与 remove 是同步方法，必须在事件循环线程中调用。
    """

    def __init__(self, store: BaseStore, broadcaster: Optional[BaseBroadcaster] = None,
                 clock: Optional[Clock] = None, settings: Optional[LoopSettings] = None,
                 prober_config: Optional[Dict[str, Dict[str, Any]]] = None,
                 factory: Optional[ProberFactory] = None):
        """
        初始化编排器

        Args:
            store: 持久化存储
            broadcaster: 状态广播器，默认不向任何人广播
            clock: 时钟，默认使用系统时钟
            settings: 检查循环参数
            prober_config: 按协议名划分的探测器配置，例如 ``{'http': {'timeout': 15}}``
            factory: 探测器工厂，默认使用全局工厂
        """
        self.store = store
        self.broadcaster = broadcaster or CompositeBroadcaster()
        self.clock = clock or SystemClock()
        self.settings = settings or LoopSettings()
        self.registry = CheckRegistry()
        self.tracker = DowntimeTracker()
        self.logger = get_logger('orchestrator')

        factory = factory or prober_factory
        prober_config = prober_config or {}
        self.probers: Dict[ProtocolType, BaseProber] = {
            ProtocolType(protocol): factory.create_prober(protocol, prober_config.get(protocol))
            for protocol in factory.get_supported_protocols()
        }

        self.is_running = False
        self.start_time: Optional[datetime] = None

    async def bootstrap(self) -> int:
        """
        为存储中所有未删除且不在维护中的目标启动检查循环

        Returns:
            int: 启动的检查循环数量
        """
        targets = await self.store.load_active_targets()
        for target in targets:
            self.upsert(target)

        self.is_running = True
        self.start_time = self.clock.now()
        self.logger.info(f"监控编排器已启动，共 {len(targets)} 个目标")
        return len(targets)

    def upsert(self, target: MonitoredTarget) -> Optional[CheckHandle]:
        """
        启动或替换目标的检查循环

        旧循环被取消，新循环在旧循环完全退出后才开始第一次检查。
        已删除或处于维护模式的目标只会被移除。

        Args:
            target: 目标配置

        Returns:
            Optional[CheckHandle]: 新循环的句柄，目标不可调度时为 None
        """
        if not target.is_schedulable:
            self.remove(target.id)
            return None

        def start(previous: Optional[CheckHandle]) -> CheckHandle:
            loop = CheckLoop(target, self.store, self.probers, self.broadcaster, self.clock,
                             tracker=self.tracker, settings=self.settings,
                             registry=self.registry)
            predecessor = previous.task if previous is not None else None
            task = asyncio.create_task(loop.run(predecessor), name=f"check-loop:{target.id}")
            handle = CheckHandle(target_id=target.id, task=task, loop=loop)
            loop.handle = handle
            return handle

        handle = self.registry.upsert(target.id, start)
        handle.task.add_done_callback(
            lambda _task: self.registry.discard(handle.target_id, handle))
        self.logger.info(f"已调度目标: {target.name} ({target.protocol.value} {target.address})")
        return handle

    def remove(self, target_id: str) -> bool:
        """
        停止目标的检查循环，目标不存在时不做任何事

        Returns:
            bool: 是否确实停止了一个循环
        """
        handle = self.registry.remove(target_id)
        if handle is None:
            return False
        self.logger.info(f"已停止目标检查: {handle.loop.target_name} ({target_id})")
        return True

    async def probe_once(self, request: Union[ProbeRequest, MonitoredTarget]) -> ProbeResult:
        """
        对地址执行一次探测，不读写存储、不广播

        Args:
            request: 探测请求或目标

        Returns:
            ProbeResult: 探测结果
        """
        target = request.to_target() if isinstance(request, ProbeRequest) else request.copy()
        prober = self.probers.get(target.protocol)
        if prober is None:
            result = ProbeResult(status=TargetStatus.OFFLINE,
                                 description=f"不支持的协议: {target.protocol}")
        else:
            result = await prober.probe(target)
        result.timestamp = self.clock.now()
        target.last_check_time = result.timestamp
        return result

    async def stop(self) -> None:
        """取消所有检查循环并等待其退出"""
        handles = self.registry.clear()
        if handles:
            await asyncio.gather(*(handle.task for handle in handles), return_exceptions=True)
        self.is_running = False
        self.logger.info(f"监控编排器已停止，共停止 {len(handles)} 个检查循环")

    def get_status(self) -> Dict[str, Any]:
        """获取编排器运行状态"""
        loops = {
            handle.target_id: {
                'name': handle.loop.target_name,
                'state': handle.loop.state.value,
                'cycles': handle.loop.cycle_count,
                'next_delay_ms': handle.loop.next_delay_ms,
            }
            for handle in self.registry.handles()
        }
        return {
            'is_running': self.is_running,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'active_loops': len(loops),
            'supported_protocols': sorted(protocol.value for protocol in self.probers),
            'loops': loops,
        }

    async def list_targets(self) -> List[MonitoredTarget]:
        """列出所有未删除的目标，按分组、排序值、名称排列"""
        return await self.store.list_targets()

    async def get_downtime_history(self, target_id: str, limit: int = 10):
        """获取目标最近的停机事件，按开始时间倒序"""
        return await self.store.get_downtime_history(target_id, limit)
