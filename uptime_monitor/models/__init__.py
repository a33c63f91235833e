"""数据模型模块"""

from .target import (MonitoredTarget, DowntimeEvent, ServiceGroup, ProtocolType, TargetStatus,
                     ProbeRequest, ProbeResult)

__all__ = ['MonitoredTarget', 'DowntimeEvent', 'ServiceGroup', 'ProtocolType', 'TargetStatus',
           'ProbeRequest', 'ProbeResult']
