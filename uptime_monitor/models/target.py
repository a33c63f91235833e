"""监控目标、停机事件与分组的数据模型"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional


DEFAULT_REFRESH_INTERVAL_MS = 60000
DEFAULT_RETRY_INTERVAL_MS = 300000
DEFAULT_SORT_ORDER = 100


class ProtocolType(str, Enum):
    """目标协议类型"""
    HTTP = "http"
    TCP = "tcp"
    REDIS = "redis"


class TargetStatus(str, Enum):
    """目标状态"""
    PENDING = "pending"
    ONLINE = "online"
    OFFLINE = "offline"


def new_target_id() -> str:
    return str(uuid.uuid4())


@dataclass
class ServiceGroup:
    """服务分组，目标通过 group_id 弱引用分组"""
    id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name}


@dataclass
class MonitoredTarget:
    """被监控目标"""
    name: str
    address: str
    protocol: ProtocolType
    id: str = field(default_factory=new_target_id)
    status: TargetStatus = TargetStatus.PENDING
    last_check_time: Optional[datetime] = None
    last_status_description: Optional[str] = None
    refresh_interval_ms: int = DEFAULT_REFRESH_INTERVAL_MS
    retry_interval_ms: int = DEFAULT_RETRY_INTERVAL_MS
    sort_order: int = DEFAULT_SORT_ORDER
    is_deleted: bool = False
    is_in_maintenance: bool = False
    failed_check_count: int = 0
    group_id: Optional[int] = None
    group: Optional[ServiceGroup] = None
    redis_username: Optional[str] = None
    redis_password: Optional[str] = None
    redis_db: Optional[int] = None

    @property
    def is_schedulable(self) -> bool:
        """未删除且不在维护中的目标才参与调度"""
        return not self.is_deleted and not self.is_in_maintenance

    def copy(self) -> 'MonitoredTarget':
        return replace(self)

    def reset_for_update(self) -> None:
        """配置被外部更新后回到待检查状态"""
        self.status = TargetStatus.PENDING
        self.failed_check_count = 0

    def to_dict(self) -> Dict[str, Any]:
        """广播用快照，不包含Redis密码"""
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'protocol': self.protocol.value,
            'status': self.status.value,
            'last_check_time': self.last_check_time.isoformat() if self.last_check_time else None,
            'last_status_description': self.last_status_description,
            'refresh_interval_ms': self.refresh_interval_ms,
            'retry_interval_ms': self.retry_interval_ms,
            'sort_order': self.sort_order,
            'is_in_maintenance': self.is_in_maintenance,
            'failed_check_count': self.failed_check_count,
            'group_id': self.group_id,
            'group': self.group.to_dict() if self.group else None,
        }


@dataclass
class DowntimeEvent:
    """一段停机记录，end_time 为空表示停机仍在持续"""
    target_id: str
    start_time: datetime
    id: Optional[int] = None
    end_time: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'target_id': self.target_id,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat() if self.end_time else None,
        }


@dataclass
class ProbeRequest:
    """临时探测请求，不落库、不进入调度"""
    address: str
    protocol: ProtocolType
    redis_username: Optional[str] = None
    redis_password: Optional[str] = None
    redis_db: Optional[int] = None

    def to_target(self) -> MonitoredTarget:
        return MonitoredTarget(
            name='ad-hoc',
            address=self.address,
            protocol=self.protocol,
            redis_username=self.redis_username,
            redis_password=self.redis_password,
            redis_db=self.redis_db,
        )


@dataclass
class ProbeResult:
    """单次探测结果"""
    status: TargetStatus
    description: str
    response_time: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_online(self) -> bool:
        return self.status == TargetStatus.ONLINE
