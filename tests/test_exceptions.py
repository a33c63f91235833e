"""异常类测试"""

import pytest
from datetime import datetime

from uptime_monitor.utils.exceptions import (
    UptimeMonitorError,
    ErrorCode,
    ConfigError,
    ProbeError,
    AddressValidationError,
    TransientProbeError,
    ProberRegistrationError,
    TargetInvalidatedError,
    StoreError,
    BroadcastError
)


class TestErrorCode:
    """错误代码测试"""

    def test_error_code_values(self):
        """测试错误代码值"""
        assert ErrorCode.UNKNOWN_ERROR.value == 1000
        assert ErrorCode.CONFIG_FILE_NOT_FOUND.value == 2000
        assert ErrorCode.INVALID_ADDRESS.value == 3001
        assert ErrorCode.TARGET_INVALIDATED.value == 5000
        assert ErrorCode.STORE_ERROR.value == 6000


class TestUptimeMonitorError:
    """UptimeMonitorError基础异常测试"""

    def test_basic_error_creation(self):
        """测试基础错误创建"""
        error = UptimeMonitorError("测试错误")

        assert str(error) == "测试错误"
        assert error.message == "测试错误"
        assert error.error_code == ErrorCode.UNKNOWN_ERROR
        assert error.details == {}
        assert error.cause is None
        assert error.recoverable is True
        assert isinstance(error.timestamp, datetime)

    def test_to_dict(self):
        """测试转换为字典"""
        cause = ConnectionError("连接失败")
        error = UptimeMonitorError(
            "测试错误",
            ErrorCode.CONNECTION_REFUSED,
            details={"address": "localhost:6379"},
            cause=cause,
            recoverable=False
        )

        data = error.to_dict()

        assert data['error_code'] == 3002
        assert data['error_name'] == "CONNECTION_REFUSED"
        assert data['details'] == {"address": "localhost:6379"}
        assert data['cause'] == "连接失败"
        assert data['recoverable'] is False

    def test_format_error(self):
        """测试格式化错误信息"""
        error = UptimeMonitorError("测试错误", ErrorCode.VALIDATION_ERROR,
                                   details={"field": "name"}, cause=ValueError("空值"))

        formatted = error.format_error()

        assert formatted.startswith("[VALIDATION_ERROR] 测试错误")
        assert "field=name" in formatted
        assert "原因: 空值" in formatted


class TestSpecificErrors:
    """具体异常类测试"""

    def test_config_error(self):
        """测试配置错误"""
        error = ConfigError("配置无效", config_path="/etc/uptime.yaml")

        assert isinstance(error, UptimeMonitorError)
        assert error.error_code == ErrorCode.CONFIG_VALIDATION_ERROR
        assert error.details['config_path'] == "/etc/uptime.yaml"

    def test_address_validation_error(self):
        """测试地址校验错误不可恢复"""
        error = AddressValidationError("URL无效", address="example.com")

        assert isinstance(error, ProbeError)
        assert error.error_code == ErrorCode.INVALID_ADDRESS
        assert error.details['address'] == "example.com"
        assert error.recoverable is False

    def test_transient_probe_error(self):
        """测试暂时性探测错误可恢复"""
        error = TransientProbeError("连接未建立 (Timeout)", ErrorCode.TIMEOUT_ERROR)

        assert isinstance(error, ProbeError)
        assert error.error_code == ErrorCode.TIMEOUT_ERROR
        assert error.recoverable is True

    def test_target_invalidated_error(self):
        """测试目标失效异常携带id与原因"""
        error = TargetInvalidatedError("t-1", "目标已删除")

        assert error.target_id == "t-1"
        assert error.reason == "目标已删除"
        assert "t-1" in str(error)
        assert error.recoverable is False

    def test_store_and_broadcast_errors(self):
        """测试存储与广播异常的详情"""
        store_error = StoreError("写入失败", operation="save_target")
        broadcast_error = BroadcastError("推送失败", subscriber="dashboard")

        assert store_error.error_code == ErrorCode.STORE_ERROR
        assert store_error.details == {'operation': 'save_target'}
        assert broadcast_error.error_code == ErrorCode.BROADCAST_ERROR
        assert broadcast_error.details == {'subscriber': 'dashboard'}

    def test_prober_registration_error(self):
        """测试探测器注册异常"""
        with pytest.raises(UptimeMonitorError):
            raise ProberRegistrationError("协议已注册")
