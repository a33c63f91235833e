"""自定义异常类和错误分类"""

import traceback
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime


class ErrorCode(Enum):
    """错误代码枚举"""
    # 通用错误 (1000-1999)
    UNKNOWN_ERROR = 1000
    VALIDATION_ERROR = 1002

    # 配置错误 (2000-2999)
    CONFIG_FILE_NOT_FOUND = 2000
    CONFIG_PARSE_ERROR = 2001
    CONFIG_VALIDATION_ERROR = 2002

    # 探测错误 (3000-3999)
    PROBER_REGISTRATION_ERROR = 3000
    INVALID_ADDRESS = 3001
    CONNECTION_REFUSED = 3002
    TIMEOUT_ERROR = 3003
    PROTOCOL_ERROR = 3004

    # 调度错误 (5000-5999)
    TARGET_INVALIDATED = 5000

    # 存储与广播错误 (6000-6999)
    STORE_ERROR = 6000
    BROADCAST_ERROR = 6001


class UptimeMonitorError(Exception):
    """可用性监控系统基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            'error_code': self.error_code.value,
            'error_name': self.error_code.name,
            'message': self.message,
            'details': self.details,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp.isoformat(),
            'cause': str(self.cause) if self.cause else None,
            'traceback': traceback.format_exc() if self.cause else None
        }

    def format_error(self) -> str:
        """格式化错误信息"""
        error_msg = f"[{self.error_code.name}] {self.message}"
        if self.details:
            details_str = ", ".join([f"{k}={v}" for k, v in self.details.items()])
            error_msg += f" (详情: {details_str})"
        if self.cause:
            error_msg += f" (原因: {str(self.cause)})"
        return error_msg


class ConfigError(UptimeMonitorError):
    """配置相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFIG_VALIDATION_ERROR,
        config_path: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if config_path:
            details['config_path'] = config_path
        super().__init__(message, error_code, details, **kwargs)


class ProbeError(UptimeMonitorError):
    """探测相关异常，只在探测器内部流转，最终转化为离线状态描述"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.PROTOCOL_ERROR,
        address: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if address:
            details['address'] = address
        super().__init__(message, error_code, details, **kwargs)


class AddressValidationError(ProbeError):
    """目标地址格式错误（URL、host:port）"""

    def __init__(self, message: str, address: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.INVALID_ADDRESS,
            address=address,
            recoverable=False,
            **kwargs
        )


class TransientProbeError(ProbeError):
    """暂时性探测失败：超时、连接被拒绝、协议层错误"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.PROTOCOL_ERROR,
        address: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, error_code, address=address, recoverable=True, **kwargs)


class ProberRegistrationError(UptimeMonitorError):
    """探测器注册或查找失败"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCode.PROBER_REGISTRATION_ERROR, recoverable=False, **kwargs)


class TargetInvalidatedError(UptimeMonitorError):
    """目标已被删除或进入维护模式，检查循环应当结束"""

    def __init__(self, target_id: str, reason: str, **kwargs):
        super().__init__(
            f"目标 {target_id} 已失效: {reason}",
            ErrorCode.TARGET_INVALIDATED,
            details={'target_id': target_id, 'reason': reason},
            recoverable=False,
            **kwargs
        )
        self.target_id = target_id
        self.reason = reason


class StoreError(UptimeMonitorError):
    """存储层异常"""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        details = kwargs.pop('details', {})
        if operation:
            details['operation'] = operation
        super().__init__(message, ErrorCode.STORE_ERROR, details, **kwargs)


class BroadcastError(UptimeMonitorError):
    """广播相关异常"""

    def __init__(self, message: str, subscriber: Optional[str] = None, **kwargs):
        details = kwargs.pop('details', {})
        if subscriber:
            details['subscriber'] = subscriber
        super().__init__(message, ErrorCode.BROADCAST_ERROR, details, **kwargs)
