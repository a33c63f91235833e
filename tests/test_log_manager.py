"""
日志管理器测试模块
"""

import logging
import logging.handlers

import pytest

from uptime_monitor.utils.log_manager import (
    LogManager, LogLevel, ROOT_LOGGER_NAME, get_logger, configure_logging
)


class TestLogManager:
    """日志管理器测试类"""

    def setup_method(self):
        """每个测试方法前的设置"""
        # 重置单例实例
        LogManager._instance = None
        LogManager._initialized = False

    def teardown_method(self):
        LogManager._instance = None
        LogManager._initialized = False
        LogManager().configure({'log_level': 'INFO', 'log_file': None, 'enable_console': True})

    def test_singleton_pattern(self):
        """测试单例模式"""
        manager1 = LogManager()
        manager2 = LogManager()

        assert manager1 is manager2

    def test_default_configuration(self):
        """测试默认配置"""
        manager = LogManager()
        stats = manager.get_log_stats()

        assert stats['log_level'] == 'INFO'
        assert stats['console_logging_enabled'] is True
        assert stats['file_logging_enabled'] is False
        assert stats['max_file_size'] == 10 * 1024 * 1024
        assert stats['backup_count'] == 5
        assert stats['handlers_count'] == 1

    def test_configure_log_level(self):
        """测试日志级别配置"""
        manager = LogManager()

        manager.configure({'log_level': 'debug'})
        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.DEBUG

        with pytest.raises(ValueError, match="无效的日志级别"):
            manager.configure({'log_level': 'INVALID'})

    def test_get_logger_names(self):
        """测试组件日志记录器挂在根记录器之下"""
        manager = LogManager()

        assert manager.get_logger('prober.http').name == 'uptime_monitor.prober.http'
        assert manager.get_logger('uptime_monitor.orchestrator').name == \
            'uptime_monitor.orchestrator'

    def test_file_logging(self, tmp_path):
        """测试启用轮转文件日志"""
        log_file = tmp_path / 'logs' / 'uptime.log'
        manager = LogManager()
        manager.configure({
            'log_level': 'INFO',
            'log_file': str(log_file),
            'max_file_size': 1024,
            'backup_count': 2,
            'enable_console': False
        })

        get_logger('check_loop.api').info("检查完成")
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()

        root_handlers = logging.getLogger(ROOT_LOGGER_NAME).handlers
        assert len(root_handlers) == 1
        assert isinstance(root_handlers[0], logging.handlers.RotatingFileHandler)
        assert root_handlers[0].maxBytes == 1024
        content = log_file.read_text(encoding='utf-8')
        assert "检查完成" in content
        assert "uptime_monitor.check_loop.api" in content

    def test_set_level(self):
        """测试运行时调整日志级别"""
        manager = LogManager()
        manager.set_level(LogLevel.WARNING)

        assert manager.get_log_stats()['log_level'] == 'WARNING'
        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.WARNING

    def test_cleanup_removes_handlers(self):
        """测试清理移除所有处理器"""
        manager = LogManager()
        manager.cleanup()

        assert logging.getLogger(ROOT_LOGGER_NAME).handlers == []

    def test_configure_logging_helper(self):
        """测试便捷配置函数"""
        configure_logging({'log_level': 'ERROR'})

        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.ERROR
