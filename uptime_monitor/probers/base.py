"""协议探测器基类"""

import time
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

from ..models.target import MonitoredTarget, ProbeResult, TargetStatus
from ..utils.exceptions import ProbeError
from ..utils.log_manager import get_logger


class BaseProber(ABC):
    """协议探测器抽象基类

    子类只需实现 ``check``：成功时返回在线描述，失败时抛出 ``ProbeError``。
    ``probe`` 负责把任何失败都收敛为 (Offline, 描述)，异常不会逃出探测器。
    任务取消（``asyncio.CancelledError``）不属于错误，照常向上传播。
    """

    protocol: str = ''
    default_timeout: float = 10

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        初始化探测器

        Args:
            config: 探测器配置，目前支持 ``timeout``（秒）
        """
        self.config = config or {}
        self.logger = get_logger(f'prober.{self.protocol or self.__class__.__name__.lower()}')

    def get_timeout(self) -> float:
        """
        获取超时时间配置

        Returns:
            float: 超时时间（秒）
        """
        return self.config.get('timeout', self.default_timeout)

    @abstractmethod
    async def check(self, target: MonitoredTarget) -> str:
        """
        对目标执行一次协议检查

        Args:
            target: 被探测目标

        Returns:
            str: 在线时的状态描述

        Raises:
            ProbeError: 地址无效或探测失败
        """

    async def probe(self, target: MonitoredTarget) -> ProbeResult:
        """
        执行探测并返回结果，不抛出普通异常

        Args:
            target: 被探测目标

        Returns:
            ProbeResult: 探测结果
        """
        start_time = time.monotonic()
        try:
            description = await self.check(target)
            status = TargetStatus.ONLINE
        except ProbeError as e:
            status = TargetStatus.OFFLINE
            description = e.message
        except Exception as e:
            status = TargetStatus.OFFLINE
            description = f"意外错误: {e}"
            self.logger.error(f"探测 {target.name} ({target.address}) 时发生意外错误: {e}",
                              exc_info=True)

        response_time = time.monotonic() - start_time
        if status == TargetStatus.ONLINE:
            self.logger.debug(f"{target.name} 在线，耗时 {response_time:.3f}秒: {description}")
        else:
            self.logger.warning(f"{target.name} 离线，耗时 {response_time:.3f}秒: {description}")

        return ProbeResult(status=status, description=description, response_time=response_time)
