"""存储接口

``StoreSession`` 是一个短事务范围：正常退出时提交，异常（包括任务取消）时回滚。
检查循环在探测前后各打开一次会话，探测期间不持有事务或连接。
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncContextManager, List, Optional

from ..models.target import MonitoredTarget, DowntimeEvent, ServiceGroup, TargetStatus


class StoreSession(ABC):
    """单个事务范围内可用的存储操作"""

    @abstractmethod
    async def load_active_targets(self) -> List[MonitoredTarget]:
        """加载所有未删除且不在维护中的目标"""

    @abstractmethod
    async def load_target(self, target_id: str) -> Optional[MonitoredTarget]:
        """按 id 加载目标（含分组），不存在时返回 None；软删除的目标也会返回"""

    @abstractmethod
    async def list_targets(self) -> List[MonitoredTarget]:
        """列出未删除的目标，按分组名、排序号、名称排序"""

    @abstractmethod
    async def find_target_by_name(self, name: str) -> Optional[MonitoredTarget]:
        """按名称查找未删除的目标"""

    @abstractmethod
    async def save_target(self, target: MonitoredTarget) -> None:
        """插入或更新目标"""

    @abstractmethod
    async def save_check_result(self, target_id: str, status: TargetStatus,
                                description: Optional[str], last_check_time: datetime,
                                failed_check_count: int) -> bool:
        """
        只写入检查循环负责的字段，目标的其他字段保持存储中的当前值

        Returns:
            bool: 目标存在并已更新时返回 True
        """

    @abstractmethod
    async def get_or_create_group(self, name: str) -> ServiceGroup:
        """按名称获取分组，不存在则创建"""

    @abstractmethod
    async def find_open_downtime(self, target_id: str) -> Optional[DowntimeEvent]:
        """查找目标最近一条未结束的停机事件"""

    @abstractmethod
    async def open_downtime(self, target_id: str, start_time: datetime) -> DowntimeEvent:
        """新建一条停机事件"""

    @abstractmethod
    async def close_open_downtime(self, target_id: str,
                                  end_time: datetime) -> Optional[DowntimeEvent]:
        """结束目标最近一条未结束的停机事件，没有时返回 None"""

    @abstractmethod
    async def get_downtime_history(self, target_id: str,
                                   limit: int = 10) -> List[DowntimeEvent]:
        """按开始时间倒序返回目标的停机事件"""


class BaseStore(ABC):
    """存储抽象基类"""

    async def connect(self) -> None:
        """建立底层连接，默认无需操作"""

    async def close(self) -> None:
        """释放底层连接，默认无需操作"""

    @abstractmethod
    def session(self) -> AsyncContextManager[StoreSession]:
        """
        打开一个事务范围

        用法::

            async with store.session() as session:
                target = await session.load_target(target_id)
        """

    async def load_active_targets(self) -> List[MonitoredTarget]:
        async with self.session() as session:
            return await session.load_active_targets()

    async def load_target(self, target_id: str) -> Optional[MonitoredTarget]:
        async with self.session() as session:
            return await session.load_target(target_id)

    async def list_targets(self) -> List[MonitoredTarget]:
        async with self.session() as session:
            return await session.list_targets()

    async def save_target(self, target: MonitoredTarget) -> None:
        async with self.session() as session:
            await session.save_target(target)

    async def get_downtime_history(self, target_id: str,
                                   limit: int = 10) -> List[DowntimeEvent]:
        async with self.session() as session:
            return await session.get_downtime_history(target_id, limit)
