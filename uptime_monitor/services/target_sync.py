"""把配置文件中的 targets/groups 同步到存储，并据此调度检查循环"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models.target import (DEFAULT_REFRESH_INTERVAL_MS, DEFAULT_RETRY_INTERVAL_MS,
                             DEFAULT_SORT_ORDER, MonitoredTarget, ProtocolType)
from ..store.base import BaseStore
from ..utils.log_manager import get_logger

# 这些字段变化视为目标配置被更新
_CONFIG_FIELDS = ('address', 'protocol', 'refresh_interval_ms', 'retry_interval_ms',
                  'sort_order', 'group_id', 'is_in_maintenance',
                  'redis_username', 'redis_password', 'redis_db')


def target_from_config(target_config: Dict[str, Any]) -> MonitoredTarget:
    """
    根据配置项构造目标（不含分组与id）

    Args:
        target_config: 已验证的目标配置

    Returns:
        MonitoredTarget: 新目标，状态为 Pending
    """
    return MonitoredTarget(
        name=target_config['name'],
        address=target_config['address'].strip(),
        protocol=ProtocolType(target_config['protocol'].lower()),
        refresh_interval_ms=target_config.get('refresh_interval_ms') or DEFAULT_REFRESH_INTERVAL_MS,
        retry_interval_ms=target_config.get('retry_interval_ms') or DEFAULT_RETRY_INTERVAL_MS,
        sort_order=target_config.get('sort_order', DEFAULT_SORT_ORDER),
        is_in_maintenance=bool(target_config.get('in_maintenance', False)),
        redis_username=target_config.get('redis_username'),
        redis_password=target_config.get('redis_password'),
        redis_db=target_config.get('redis_db'),
    )


@dataclass
class SyncResult:
    """一次同步的结果，列表中是已保存的目标"""
    added: List[MonitoredTarget] = field(default_factory=list)
    updated: List[MonitoredTarget] = field(default_factory=list)
    removed: List[MonitoredTarget] = field(default_factory=list)
    unchanged: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.updated or self.removed)


class TargetSynchronizer:
    """配置目标同步器

    配置文件是目标的唯一来源：新增或修改的目标保存为 Pending 并重新调度，
    从配置中消失的目标被软删除并停止检查，进入维护的目标保存后停止检查。
    """

    def __init__(self, store: BaseStore, orchestrator=None):
        """
        Args:
            store: 持久化存储
            orchestrator: 监控编排器，为空时只写存储不调度
        """
        self.store = store
        self.orchestrator = orchestrator
        self.logger = get_logger('target_sync')
        self._sync_lock = asyncio.Lock()

    async def apply(self, targets_config: List[Dict[str, Any]],
                    groups_config: Optional[List[Dict[str, Any]]] = None) -> SyncResult:
        """
        在一个存储会话内把配置写入存储

        Args:
            targets_config: 目标配置列表
            groups_config: 分组配置列表

        Returns:
            SyncResult: 同步结果
        """
        result = SyncResult()
        configured_names = set()

        async with self.store.session() as session:
            for group_config in groups_config or []:
                await session.get_or_create_group(group_config['name'])

            for target_config in targets_config:
                desired = target_from_config(target_config)
                configured_names.add(desired.name)
                group_name = target_config.get('group')
                if group_name:
                    group = await session.get_or_create_group(group_name)
                    desired.group_id = group.id

                existing = await session.find_target_by_name(desired.name)
                if existing is None:
                    await session.save_target(desired)
                    result.added.append(desired)
                    continue

                if all(getattr(existing, name) == getattr(desired, name) for name in _CONFIG_FIELDS):
                    result.unchanged += 1
                    continue

                for name in _CONFIG_FIELDS:
                    setattr(existing, name, getattr(desired, name))
                existing.reset_for_update()
                await session.save_target(existing)
                result.updated.append(existing)

            for target in await session.list_targets():
                if target.name not in configured_names:
                    target.is_deleted = True
                    await session.save_target(target)
                    result.removed.append(target)

        if result.has_changes:
            self.logger.info(
                f"目标同步完成: 新增 {len(result.added)}，修改 {len(result.updated)}，"
                f"删除 {len(result.removed)}，未变 {result.unchanged}")
        return result

    def schedule(self, result: SyncResult) -> None:
        """根据同步结果调度或停止检查循环，必须在存储提交之后调用"""
        if self.orchestrator is None:
            return
        for target in result.added + result.updated:
            if target.is_schedulable:
                self.orchestrator.upsert(target)
            else:
                self.orchestrator.remove(target.id)
        for target in result.removed:
            self.orchestrator.remove(target.id)

    async def sync(self, targets_config: List[Dict[str, Any]],
                   groups_config: Optional[List[Dict[str, Any]]] = None) -> SyncResult:
        """写入存储并调度变化的目标，多次同步依次执行"""
        async with self._sync_lock:
            result = await self.apply(targets_config, groups_config)
            self.schedule(result)
        return result

    def on_config_changed(self, old_config: Dict[str, Any], new_config: Dict[str, Any]):
        """配置监控器回调，返回同步协程"""
        return self.sync(new_config.get('targets', []) or [], new_config.get('groups', []) or [])
