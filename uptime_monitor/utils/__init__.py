"""工具模块"""

from .clock import Clock, SystemClock
from .exceptions import (UptimeMonitorError, ConfigError, ProbeError, AddressValidationError,
                         TransientProbeError, ProberRegistrationError, StoreError, BroadcastError,
                         TargetInvalidatedError)
from .log_manager import LogManager, LogLevel, get_logger, configure_logging, log_manager

__all__ = [
    'Clock', 'SystemClock',
    'UptimeMonitorError', 'ConfigError', 'ProbeError', 'AddressValidationError',
    'TransientProbeError', 'ProberRegistrationError', 'StoreError', 'BroadcastError',
    'TargetInvalidatedError',
    'LogManager', 'LogLevel', 'get_logger', 'configure_logging', 'log_manager'
]
