"""停机事件跟踪"""

from datetime import datetime
from typing import Optional

from ..models.target import DowntimeEvent
from ..store.base import StoreSession
from ..utils.log_manager import get_logger


class DowntimeTracker:
    """维护每个目标最多一条未结束停机事件

    停机事件从不删除，只会补上 end_time。
    """

    def __init__(self):
        self.logger = get_logger('downtime_tracker')

    async def open(self, session: StoreSession, target_id: str,
                   start_time: datetime) -> DowntimeEvent:
        """
        开启停机事件；已有未结束事件时沿用该事件，不重复创建

        Args:
            session: 当前周期的存储会话
            target_id: 目标id
            start_time: 停机开始时间

        Returns:
            DowntimeEvent: 新建或已存在的未结束事件
        """
        existing = await session.find_open_downtime(target_id)
        if existing is not None:
            self.logger.debug(
                f"目标 {target_id} 已有未结束的停机事件 #{existing.id}，沿用该事件")
            return existing

        event = await session.open_downtime(target_id, start_time)
        self.logger.info(f"目标 {target_id} 开始停机，事件 #{event.id}")
        return event

    async def close(self, session: StoreSession, target_id: str,
                    end_time: datetime) -> Optional[DowntimeEvent]:
        """
        结束目标最近一条未结束的停机事件

        Returns:
            Optional[DowntimeEvent]: 被结束的事件，没有未结束事件时返回 None
        """
        event = await session.close_open_downtime(target_id, end_time)
        if event is not None:
            self.logger.info(
                f"目标 {target_id} 恢复在线，停机事件 #{event.id} 持续 "
                f"{(event.end_time - event.start_time).total_seconds():.1f}秒")
        return event
