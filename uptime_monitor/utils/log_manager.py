"""
日志管理器模块

为探测器、检查循环、编排器等组件提供统一的日志记录器，
支持控制台与轮转文件输出以及运行时调整日志级别。
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Dict, Any
from enum import Enum


ROOT_LOGGER_NAME = 'uptime_monitor'


class LogLevel(Enum):
    """日志级别枚举"""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


class LogManager:
    """
    日志管理器类（单例）

    所有组件日志记录器都挂在 ``uptime_monitor`` 根记录器之下，
    处理器只安装在根记录器上，子记录器通过传播输出。
    """

    _instance: Optional['LogManager'] = None
    _initialized: bool = False

    def __new__(cls) -> 'LogManager':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._file_format = (
            '%(asctime)s - %(name)s - %(levelname)s - '
            '[%(filename)s:%(lineno)d] - %(message)s'
        )
        self._console_format = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
        self._date_format = '%Y-%m-%d %H:%M:%S'

        self._log_level = LogLevel.INFO
        self._log_file: Optional[str] = None
        self._max_file_size = 10 * 1024 * 1024  # 10MB
        self._backup_count = 5
        self._enable_console = True

        self._root = logging.getLogger(ROOT_LOGGER_NAME)
        self._root.propagate = False
        self._apply()

        self._initialized = True

    def configure(self, config: Dict[str, Any]) -> None:
        """
        配置日志管理器

        Args:
            config: 日志配置字典，可选键：
                - log_level: 日志级别名称
                - log_file: 日志文件路径，设置后启用轮转文件输出
                - max_file_size: 单个日志文件最大字节数
                - backup_count: 轮转备份数量
                - enable_console: 是否输出到控制台

        Raises:
            ValueError: 日志级别无效
        """
        if 'log_level' in config:
            level_str = str(config['log_level']).upper()
            if level_str not in LogLevel.__members__:
                raise ValueError(f"无效的日志级别: {level_str}")
            self._log_level = LogLevel[level_str]

        if 'log_file' in config:
            self._log_file = config['log_file']
        if 'max_file_size' in config:
            self._max_file_size = config['max_file_size']
        if 'backup_count' in config:
            self._backup_count = config['backup_count']
        if 'enable_console' in config:
            self._enable_console = config['enable_console']

        self._apply()

    def _apply(self) -> None:
        """按当前配置重建根记录器的处理器"""
        for handler in list(self._root.handlers):
            self._root.removeHandler(handler)
            handler.close()

        self._root.setLevel(self._log_level.value)

        if self._enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(
                logging.Formatter(self._console_format, datefmt=self._date_format))
            self._root.addHandler(console_handler)

        if self._log_file:
            Path(self._log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                self._log_file,
                maxBytes=self._max_file_size,
                backupCount=self._backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(
                logging.Formatter(self._file_format, datefmt=self._date_format))
            self._root.addHandler(file_handler)

    def get_logger(self, name: str) -> logging.Logger:
        """
        获取组件日志记录器

        Args:
            name: 组件名称，例如 ``prober.http`` 或 ``check_loop.<id>``

        Returns:
            ``uptime_monitor.<name>`` 日志记录器
        """
        if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + '.'):
            return logging.getLogger(name)
        return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')

    def set_level(self, level: LogLevel) -> None:
        """设置全局日志级别"""
        self._log_level = level
        self._root.setLevel(level.value)

    def get_log_stats(self) -> Dict[str, Any]:
        """获取日志配置概况"""
        return {
            'log_level': self._log_level.name,
            'console_logging_enabled': self._enable_console,
            'file_logging_enabled': self._log_file is not None,
            'log_file': self._log_file,
            'max_file_size': self._max_file_size,
            'backup_count': self._backup_count,
            'handlers_count': len(self._root.handlers)
        }

    def cleanup(self) -> None:
        """关闭并移除所有处理器"""
        for handler in list(self._root.handlers):
            self._root.removeHandler(handler)
            handler.close()


# 全局日志管理器实例
log_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """获取日志记录器的便捷函数"""
    return log_manager.get_logger(name)


def configure_logging(config: Dict[str, Any]) -> None:
    """配置日志系统的便捷函数"""
    log_manager.configure(config)
