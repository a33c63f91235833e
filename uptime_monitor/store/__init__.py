"""存储模块"""

from typing import Any, Dict, Optional

from .base import BaseStore, StoreSession
from .memory_store import InMemoryStore
from .sql_store import SqlAlchemyStore


def create_store(database_config: Optional[Dict[str, Any]] = None) -> BaseStore:
    """
    根据 ``database`` 配置创建存储

    未配置 ``url`` 时使用内存存储。
    """
    database_config = database_config or {}
    url = database_config.get('url')
    if not url:
        return InMemoryStore()
    return SqlAlchemyStore(url, echo=database_config.get('echo', False))


__all__ = ['BaseStore', 'StoreSession', 'InMemoryStore', 'SqlAlchemyStore', 'create_store']
