"""内存存储实现，用于开发、单元测试或未配置数据库时"""

import copy
import itertools
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from .base import BaseStore, StoreSession
from ..models.target import MonitoredTarget, DowntimeEvent, ServiceGroup, TargetStatus


class InMemoryStore(BaseStore):
    """内存存储

    会话内的写操作先暂存，会话正常结束时一次性提交；
    会话中抛出异常（包括任务取消）时丢弃暂存内容。
    读出的对象都是副本，调用方修改后必须 ``save_target`` 才会生效。
    """

    def __init__(self):
        self.targets: Dict[str, MonitoredTarget] = {}
        self.groups: Dict[int, ServiceGroup] = {}
        self.downtime_events: Dict[int, DowntimeEvent] = {}
        self._event_ids = itertools.count(1)
        self._group_ids = itertools.count(1)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[StoreSession]:
        session = _InMemorySession(self)
        yield session
        session.commit()

    def add_target(self, target: MonitoredTarget) -> MonitoredTarget:
        """直接写入目标（测试和初始化使用）"""
        self.targets[target.id] = copy.deepcopy(target)
        return target

    def events_for(self, target_id: str) -> List[DowntimeEvent]:
        """返回目标的全部停机事件（按开始时间升序）"""
        events = [e for e in self.downtime_events.values() if e.target_id == target_id]
        return sorted(events, key=lambda e: (e.start_time, e.id))


class _InMemorySession(StoreSession):

    def __init__(self, store: InMemoryStore):
        self._store = store
        self._targets: Dict[str, MonitoredTarget] = {}
        self._groups: Dict[int, ServiceGroup] = {}
        self._events: Dict[int, DowntimeEvent] = {}
        self._check_results: Dict[str, Dict[str, Any]] = {}

    def commit(self) -> None:
        self._store.groups.update(self._groups)
        self._store.targets.update(self._targets)
        # 检查结果按字段合并到提交时的最新目标上
        for target_id, fields in self._check_results.items():
            stored = self._store.targets.get(target_id)
            if stored is not None:
                for name, value in fields.items():
                    setattr(stored, name, value)
        self._store.downtime_events.update(self._events)

    def _all_targets(self) -> Dict[str, MonitoredTarget]:
        return {**self._store.targets, **self._targets}

    def _all_groups(self) -> Dict[int, ServiceGroup]:
        return {**self._store.groups, **self._groups}

    def _all_events(self) -> Dict[int, DowntimeEvent]:
        return {**self._store.downtime_events, **self._events}

    def _materialize(self, target: MonitoredTarget) -> MonitoredTarget:
        result = copy.deepcopy(target)
        for name, value in self._check_results.get(target.id, {}).items():
            setattr(result, name, value)
        result.group = copy.deepcopy(self._all_groups().get(target.group_id))
        return result

    async def load_active_targets(self) -> List[MonitoredTarget]:
        return [self._materialize(t) for t in self._all_targets().values() if t.is_schedulable]

    async def load_target(self, target_id: str) -> Optional[MonitoredTarget]:
        target = self._all_targets().get(target_id)
        return self._materialize(target) if target else None

    async def list_targets(self) -> List[MonitoredTarget]:
        targets = [self._materialize(t) for t in self._all_targets().values() if not t.is_deleted]
        return sorted(targets, key=lambda t: (t.group.name if t.group else '', t.sort_order, t.name))

    async def find_target_by_name(self, name: str) -> Optional[MonitoredTarget]:
        for target in self._all_targets().values():
            if target.name == name and not target.is_deleted:
                return self._materialize(target)
        return None

    async def save_target(self, target: MonitoredTarget) -> None:
        stored = copy.deepcopy(target)
        stored.group = None
        self._targets[target.id] = stored

    async def save_check_result(self, target_id: str, status: TargetStatus,
                                description: Optional[str], last_check_time: datetime,
                                failed_check_count: int) -> bool:
        if target_id not in self._all_targets():
            return False
        fields = {
            'status': status,
            'last_status_description': description,
            'last_check_time': last_check_time,
            'failed_check_count': failed_check_count,
        }
        if target_id in self._targets:
            for name, value in fields.items():
                setattr(self._targets[target_id], name, value)
        else:
            self._check_results.setdefault(target_id, {}).update(fields)
        return True

    async def get_or_create_group(self, name: str) -> ServiceGroup:
        for group in self._all_groups().values():
            if group.name == name:
                return copy.deepcopy(group)
        group = ServiceGroup(id=next(self._store._group_ids), name=name)
        self._groups[group.id] = group
        return copy.deepcopy(group)

    async def find_open_downtime(self, target_id: str) -> Optional[DowntimeEvent]:
        open_events = [e for e in self._all_events().values()
                       if e.target_id == target_id and e.is_open]
        if not open_events:
            return None
        return copy.deepcopy(max(open_events, key=lambda e: (e.start_time, e.id)))

    async def open_downtime(self, target_id: str, start_time: datetime) -> DowntimeEvent:
        event = DowntimeEvent(target_id=target_id, start_time=start_time,
                              id=next(self._store._event_ids))
        self._events[event.id] = event
        return copy.deepcopy(event)

    async def close_open_downtime(self, target_id: str,
                                  end_time: datetime) -> Optional[DowntimeEvent]:
        event = await self.find_open_downtime(target_id)
        if event is None:
            return None
        event.end_time = end_time
        self._events[event.id] = event
        return copy.deepcopy(event)

    async def get_downtime_history(self, target_id: str,
                                   limit: int = 10) -> List[DowntimeEvent]:
        events = [copy.deepcopy(e) for e in self._all_events().values() if e.target_id == target_id]
        events.sort(key=lambda e: (e.start_time, e.id), reverse=True)
        return events[:limit]
