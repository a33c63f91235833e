"""进程内状态推送中心"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from .base import BaseBroadcaster
from ..utils.log_manager import get_logger


@dataclass
class StatusMessage:
    """推送给订阅者的消息"""
    topic: str
    payload: Dict[str, Any]


class Subscription:
    """订阅句柄，可作为异步迭代器逐条读取消息"""

    def __init__(self, hub: 'StatusHub', queue_size: int):
        self._hub = hub
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0

    def deliver(self, message: StatusMessage) -> None:
        """非阻塞投递，队列满时丢弃最旧的一条"""
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(message)

    async def get(self) -> StatusMessage:
        return await self.queue.get()

    def close(self) -> None:
        self._hub.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> StatusMessage:
        return await self.get()

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class StatusHub(BaseBroadcaster):
    """进程内扇出广播器

    每个订阅者拥有一个有界队列，发布不会等待订阅者消费；
    同一订阅者收到的消息顺序与发布顺序一致。
    """

    def __init__(self, name: str = 'hub', config: Optional[Dict[str, Any]] = None):
        super().__init__(name, config)
        self.queue_size = self.config.get('queue_size', 100)
        self._subscribers: Set[Subscription] = set()
        self.logger = get_logger(f'broadcast.hub.{self.name}')

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.queue_size)
        self._subscribers.add(subscription)
        self.logger.debug(f"新增订阅者，当前订阅数: {len(self._subscribers)}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        message = StatusMessage(topic=topic, payload=payload)
        for subscription in list(self._subscribers):
            subscription.deliver(message)

    async def close(self) -> None:
        self._subscribers.clear()
