"""
基于 SQLAlchemy asyncio 的关系型存储实现

支持任意 SQLAlchemy 异步驱动，例如 ``sqlite+aiosqlite`` 或 ``postgresql+asyncpg``。
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import (Boolean, DateTime, ForeignKey, Index, Integer, String, Text, select,
                        text, update)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession, async_sessionmaker,
                                    create_async_engine)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import NullPool

from .base import BaseStore, StoreSession
from ..models.target import (MonitoredTarget, DowntimeEvent, ServiceGroup, ProtocolType,
                             TargetStatus, DEFAULT_REFRESH_INTERVAL_MS,
                             DEFAULT_RETRY_INTERVAL_MS, DEFAULT_SORT_ORDER)
from ..utils.exceptions import StoreError
from ..utils.log_manager import get_logger

logger = get_logger('store.sql')


class Base(DeclarativeBase):
    pass


class ServiceGroupRow(Base):
    __tablename__ = 'service_groups'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)


class TargetRow(Base):
    __tablename__ = 'monitored_targets'

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str] = mapped_column(String(2048), nullable=False)
    protocol: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False,
                                        default=TargetStatus.PENDING.value)
    last_check_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_status_description: Mapped[Optional[str]] = mapped_column(Text)
    refresh_interval_ms: Mapped[int] = mapped_column(Integer, default=DEFAULT_REFRESH_INTERVAL_MS)
    retry_interval_ms: Mapped[int] = mapped_column(Integer, default=DEFAULT_RETRY_INTERVAL_MS)
    sort_order: Mapped[int] = mapped_column(Integer, default=DEFAULT_SORT_ORDER)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_in_maintenance: Mapped[bool] = mapped_column(Boolean, default=False)
    failed_check_count: Mapped[int] = mapped_column(Integer, default=0)
    group_id: Mapped[Optional[int]] = mapped_column(ForeignKey('service_groups.id'))
    redis_username: Mapped[Optional[str]] = mapped_column(String(200))
    redis_password: Mapped[Optional[str]] = mapped_column(String(200))
    redis_db: Mapped[Optional[int]] = mapped_column(Integer)

    group: Mapped[Optional[ServiceGroupRow]] = relationship(lazy='joined')


class DowntimeEventRow(Base):
    __tablename__ = 'downtime_events'
    __table_args__ = (
        # 每个目标最多一条未结束的停机事件
        Index('ux_downtime_events_open', 'target_id', unique=True,
              sqlite_where=text('end_time IS NULL'),
              postgresql_where=text('end_time IS NULL')),
        Index('ix_downtime_events_target_start', 'target_id', 'start_time'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    target_id: Mapped[str] = mapped_column(ForeignKey('monitored_targets.id'), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite 读回的时间不带时区，统一补上 UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _group_to_model(row: Optional[ServiceGroupRow]) -> Optional[ServiceGroup]:
    return ServiceGroup(id=row.id, name=row.name) if row else None


def _target_to_model(row: TargetRow) -> MonitoredTarget:
    return MonitoredTarget(
        id=row.id,
        name=row.name,
        address=row.address,
        protocol=ProtocolType(row.protocol),
        status=TargetStatus(row.status),
        last_check_time=_as_utc(row.last_check_time),
        last_status_description=row.last_status_description,
        refresh_interval_ms=row.refresh_interval_ms,
        retry_interval_ms=row.retry_interval_ms,
        sort_order=row.sort_order,
        is_deleted=row.is_deleted,
        is_in_maintenance=row.is_in_maintenance,
        failed_check_count=row.failed_check_count,
        group_id=row.group_id,
        group=_group_to_model(row.group),
        redis_username=row.redis_username,
        redis_password=row.redis_password,
        redis_db=row.redis_db,
    )


def _event_to_model(row: DowntimeEventRow) -> DowntimeEvent:
    return DowntimeEvent(id=row.id, target_id=row.target_id,
                         start_time=_as_utc(row.start_time), end_time=_as_utc(row.end_time))


class SqlAlchemyStore(BaseStore):
    """关系型存储

    每个 ``session()`` 对应一个数据库事务，退出时提交，异常时回滚。
    """

    def __init__(self, url: str, echo: bool = False, engine_options: Optional[Dict[str, Any]] = None):
        """
        Args:
            url: SQLAlchemy 异步连接串
            echo: 是否输出SQL语句
            engine_options: 传给 ``create_async_engine`` 的额外参数
        """
        self.url = url
        self.echo = echo
        self.engine_options = engine_options or {}
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {'echo': self.echo}
        if self.url.startswith('sqlite'):
            # SQLite 使用 NullPool，并放宽写锁等待时间
            kwargs['poolclass'] = NullPool
            kwargs['connect_args'] = {'timeout': 30}
        else:
            kwargs['pool_pre_ping'] = True
        kwargs.update(self.engine_options)
        return kwargs

    async def connect(self) -> None:
        """创建引擎并建表"""
        if self.engine is not None:
            return
        try:
            self.engine = create_async_engine(self.url, **self._get_engine_kwargs())
            self.session_factory = async_sessionmaker(
                bind=self.engine, class_=AsyncSession, expire_on_commit=False,
                autoflush=False)
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info(f"数据库连接已建立: {self.engine.url.render_as_string(hide_password=True)}")
        except SQLAlchemyError as e:
            self.engine = None
            self.session_factory = None
            raise StoreError(f"连接数据库失败: {e}", operation='connect', cause=e)

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            logger.info("数据库连接已关闭")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[StoreSession]:
        if self.session_factory is None:
            raise StoreError("存储尚未连接", operation='session')
        try:
            async with self.session_factory() as db_session:
                async with db_session.begin():
                    yield _SqlSession(db_session)
        except SQLAlchemyError as e:
            raise StoreError(f"数据库操作失败: {e}", operation='session', cause=e)


class _SqlSession(StoreSession):

    def __init__(self, db: AsyncSession):
        self._db = db

    async def load_active_targets(self) -> List[MonitoredTarget]:
        result = await self._db.scalars(
            select(TargetRow).where(TargetRow.is_deleted.is_(False),
                                    TargetRow.is_in_maintenance.is_(False)))
        return [_target_to_model(row) for row in result.unique()]

    async def load_target(self, target_id: str) -> Optional[MonitoredTarget]:
        row = await self._db.get(TargetRow, target_id)
        return _target_to_model(row) if row else None

    async def list_targets(self) -> List[MonitoredTarget]:
        result = await self._db.scalars(
            select(TargetRow).where(TargetRow.is_deleted.is_(False)))
        targets = [_target_to_model(row) for row in result.unique()]
        return sorted(targets, key=lambda t: (t.group.name if t.group else '', t.sort_order, t.name))

    async def find_target_by_name(self, name: str) -> Optional[MonitoredTarget]:
        result = await self._db.scalars(
            select(TargetRow).where(TargetRow.name == name, TargetRow.is_deleted.is_(False)))
        row = result.unique().first()
        return _target_to_model(row) if row else None

    async def save_target(self, target: MonitoredTarget) -> None:
        row = await self._db.get(TargetRow, target.id)
        if row is None:
            row = TargetRow(id=target.id)
            self._db.add(row)
        row.name = target.name
        row.address = target.address
        row.protocol = target.protocol.value
        row.status = target.status.value
        row.last_check_time = target.last_check_time
        row.last_status_description = target.last_status_description
        row.refresh_interval_ms = target.refresh_interval_ms
        row.retry_interval_ms = target.retry_interval_ms
        row.sort_order = target.sort_order
        row.is_deleted = target.is_deleted
        row.is_in_maintenance = target.is_in_maintenance
        row.failed_check_count = target.failed_check_count
        row.group_id = target.group_id
        row.redis_username = target.redis_username
        row.redis_password = target.redis_password
        row.redis_db = target.redis_db
        await self._db.flush()

    async def save_check_result(self, target_id: str, status: TargetStatus,
                                description: Optional[str], last_check_time: datetime,
                                failed_check_count: int) -> bool:
        # 单条 UPDATE 只涉及这四列，不会覆盖并发修改的配置字段
        result = await self._db.execute(
            update(TargetRow)
            .where(TargetRow.id == target_id)
            .values(status=status.value,
                    last_status_description=description,
                    last_check_time=last_check_time,
                    failed_check_count=failed_check_count))
        return result.rowcount > 0

    async def get_or_create_group(self, name: str) -> ServiceGroup:
        row = await self._db.scalar(select(ServiceGroupRow).where(ServiceGroupRow.name == name))
        if row is None:
            row = ServiceGroupRow(name=name)
            self._db.add(row)
            await self._db.flush()
        return _group_to_model(row)

    async def _find_open_row(self, target_id: str) -> Optional[DowntimeEventRow]:
        return await self._db.scalar(
            select(DowntimeEventRow)
            .where(DowntimeEventRow.target_id == target_id, DowntimeEventRow.end_time.is_(None))
            .order_by(DowntimeEventRow.start_time.desc(), DowntimeEventRow.id.desc())
            .limit(1))

    async def find_open_downtime(self, target_id: str) -> Optional[DowntimeEvent]:
        row = await self._find_open_row(target_id)
        return _event_to_model(row) if row else None

    async def open_downtime(self, target_id: str, start_time: datetime) -> DowntimeEvent:
        row = DowntimeEventRow(target_id=target_id, start_time=start_time)
        self._db.add(row)
        await self._db.flush()
        return _event_to_model(row)

    async def close_open_downtime(self, target_id: str,
                                  end_time: datetime) -> Optional[DowntimeEvent]:
        row = await self._find_open_row(target_id)
        if row is None:
            return None
        row.end_time = end_time
        await self._db.flush()
        return _event_to_model(row)

    async def get_downtime_history(self, target_id: str,
                                   limit: int = 10) -> List[DowntimeEvent]:
        result = await self._db.scalars(
            select(DowntimeEventRow)
            .where(DowntimeEventRow.target_id == target_id)
            .order_by(DowntimeEventRow.start_time.desc(), DowntimeEventRow.id.desc())
            .limit(limit))
        return [_event_to_model(row) for row in result]
