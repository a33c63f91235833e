"""广播器基类"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..utils.log_manager import get_logger

STATUS_UPDATE_TOPIC = 'status_update'


class BaseBroadcaster(ABC):
    """广播器抽象基类

    ``publish`` 对调用方是发出即忘的：实现必须在有限时间内返回，
    没有订阅者时直接返回，投递失败只记录日志、不抛出异常。
    """

    def __init__(self, name: str, config: Optional[Dict[str, Any]] = None):
        self.name = name
        self.config = config or {}
        self.broadcaster_type = self.__class__.__name__.replace('Broadcaster', '').lower()

    @abstractmethod
    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        """
        向所有订阅者发布一条消息

        Args:
            topic: 消息主题
            payload: 消息内容（可JSON序列化的字典）
        """

    async def close(self) -> None:
        """释放资源，默认无需操作"""


class CompositeBroadcaster(BaseBroadcaster):
    """把一条消息并发转发给多个广播器"""

    def __init__(self, broadcasters: Optional[List[BaseBroadcaster]] = None):
        super().__init__('composite')
        self.broadcasters: List[BaseBroadcaster] = list(broadcasters or [])
        self.logger = get_logger('broadcast.composite')

    def add_broadcaster(self, broadcaster: BaseBroadcaster) -> None:
        self.broadcasters.append(broadcaster)
        self.logger.info(f"已添加广播器: {broadcaster.name} ({broadcaster.broadcaster_type})")

    def remove_broadcaster(self, name: str) -> bool:
        for i, broadcaster in enumerate(self.broadcasters):
            if broadcaster.name == name:
                self.broadcasters.pop(i)
                self.logger.info(f"已移除广播器: {name}")
                return True
        return False

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        if not self.broadcasters:
            return
        results = await asyncio.gather(
            *(broadcaster.publish(topic, payload) for broadcaster in self.broadcasters),
            return_exceptions=True)
        for broadcaster, result in zip(self.broadcasters, results):
            if isinstance(result, Exception):
                self.logger.error(f"广播器 {broadcaster.name} 发布失败: {result}")

    async def close(self) -> None:
        for broadcaster in self.broadcasters:
            try:
                await broadcaster.close()
            except Exception as e:
                self.logger.warning(f"关闭广播器 {broadcaster.name} 时出错: {e}")
