"""检查循环注册表

维护 目标id -> 取消句柄 的映射，保证同一目标同时最多只有一个活动的检查循环。
"""

import asyncio
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .check_loop import CheckLoop


@dataclass(eq=False)
class CheckHandle:
    """一个检查循环的取消句柄"""
    target_id: str
    task: asyncio.Task
    loop: 'CheckLoop'

    def cancel(self) -> bool:
        return self.task.cancel()

    def done(self) -> bool:
        return self.task.done()


class CheckRegistry:
    """线程安全的 目标id -> CheckHandle 映射

    所有修改都在同一把锁内完成且不包含 await，
    因此 upsert/remove 对同一 id 的并发调用是原子的。
    """

    def __init__(self):
        self._handles: Dict[str, CheckHandle] = {}
        self._lock = threading.Lock()

    def upsert(self, target_id: str,
               start: Callable[[Optional[CheckHandle]], CheckHandle]) -> CheckHandle:
        """
        替换目标的检查循环

        先取消并移除旧句柄，再调用 ``start(旧句柄)`` 创建新句柄并登记。

        Args:
            target_id: 目标id
            start: 创建新检查循环的回调，参数为被替换的旧句柄（可能为 None）

        Returns:
            CheckHandle: 新登记的句柄
        """
        with self._lock:
            previous = self._handles.pop(target_id, None)
            if previous is not None:
                previous.cancel()
            handle = start(previous)
            self._handles[target_id] = handle
            return handle

    def remove(self, target_id: str) -> Optional[CheckHandle]:
        """取消并移除目标的检查循环，不存在时不做任何事"""
        with self._lock:
            handle = self._handles.pop(target_id, None)
            if handle is not None:
                handle.cancel()
            return handle

    def discard(self, target_id: str, handle: CheckHandle) -> bool:
        """
        仅当登记的仍是 ``handle`` 时才移除，不取消任务

        用于检查循环结束后的自我注销，不会误删已被替换的新循环。
        """
        with self._lock:
            if self._handles.get(target_id) is handle:
                del self._handles[target_id]
                return True
            return False

    def clear(self) -> List[CheckHandle]:
        """取消并移除全部检查循环，返回被移除的句柄"""
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            handle.cancel()
        return handles

    def get(self, target_id: str) -> Optional[CheckHandle]:
        with self._lock:
            return self._handles.get(target_id)

    def target_ids(self) -> List[str]:
        with self._lock:
            return list(self._handles)

    def handles(self) -> List[CheckHandle]:
        with self._lock:
            return list(self._handles.values())

    def __contains__(self, target_id: str) -> bool:
        with self._lock:
            return target_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
