"""配置文件监控器"""

import asyncio
import logging
import os
import threading
from typing import Callable, Optional
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler
from .config_manager import ConfigManager
from ..utils.exceptions import ConfigError


class ConfigFileHandler(FileSystemEventHandler):
    """配置文件变更事件处理器"""

    def __init__(self, config_path: str, callback: Callable):
        """
        初始化事件处理器

        Args:
            config_path: 配置文件绝对路径
            callback: 配置变更回调函数
        """
        self.config_path = config_path
        self.callback = callback
        self.logger = logging.getLogger(__name__)

    def _handle(self, path: str):
        if os.path.abspath(path) != self.config_path:
            return
        self.logger.info(f"检测到配置文件变更: {self.config_path}")
        try:
            self.callback()
        except Exception as e:
            self.logger.error(f"处理配置变更失败: {e}")

    def on_modified(self, event):
        """处理文件修改事件"""
        if not event.is_directory:
            self._handle(event.src_path)

    def on_created(self, event):
        """处理文件创建事件（编辑器先删后写）"""
        if not event.is_directory:
            self._handle(event.src_path)

    def on_moved(self, event):
        """处理文件移动事件（编辑器写临时文件后改名）"""
        if not event.is_directory:
            self._handle(event.dest_path)


class ConfigWatcher:
    """配置文件监控器，支持热更新

    回调签名为 ``callback(old_config, new_config)``；回调返回协程时，
    协程会被提交到创建监控器时的事件循环上执行。
    """

    def __init__(self, config_manager: ConfigManager,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        """
        初始化配置监控器

        Args:
            config_manager: 配置管理器实例
            loop: 执行异步回调的事件循环，默认在 start_watching 时获取当前运行的循环
        """
        self.config_manager = config_manager
        self.loop = loop
        self.observer: Optional[Observer] = None
        self.logger = logging.getLogger(__name__)
        self.change_callbacks = []
        self._running = False
        self._reload_lock = threading.Lock()

    def add_change_callback(self, callback: Callable):
        """
        添加配置变更回调函数

        Args:
            callback: 回调函数，当配置变更时被调用
        """
        self.change_callbacks.append(callback)

    def remove_change_callback(self, callback: Callable):
        """
        移除配置变更回调函数

        Args:
            callback: 要移除的回调函数
        """
        if callback in self.change_callbacks:
            self.change_callbacks.remove(callback)

    def _on_config_changed(self):
        """处理配置文件变更

        watchdog 线程与异步轮询都会调用此方法，检查与重新加载必须在同一把锁内完成，
        否则一次修改可能被加载两次。
        """
        with self._reload_lock:
            if not self.config_manager.is_config_changed():
                return

            try:
                old_config = self.config_manager.config.copy()
                new_config = self.config_manager.reload_config()
            except ConfigError as e:
                self.logger.error(f"配置重新加载失败，继续使用旧配置: {e}")
                return

            self.logger.info("配置文件已重新加载")

            for callback in self.change_callbacks:
                try:
                    result = callback(old_config, new_config)
                    if asyncio.iscoroutine(result):
                        self._submit(result)
                except Exception as e:
                    self.logger.error(f"配置变更回调执行失败: {e}")

    def _submit(self, coro):
        if self.loop is None or self.loop.is_closed():
            coro.close()
            self.logger.error("没有可用的事件循环，无法执行异步配置回调")
            return

        future = asyncio.run_coroutine_threadsafe(coro, self.loop)

        def _report(done):
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                self.logger.error(f"异步配置回调执行失败: {error}")

        future.add_done_callback(_report)

    def start_watching(self):
        """开始监控配置文件"""
        if self._running:
            self.logger.warning("配置监控器已经在运行")
            return

        if self.loop is None:
            try:
                self.loop = asyncio.get_running_loop()
            except RuntimeError:
                self.loop = None

        try:
            config_path = os.path.abspath(self.config_manager.config_path)
            config_dir = os.path.dirname(config_path)

            self.observer = Observer()
            event_handler = ConfigFileHandler(config_path, self._on_config_changed)

            self.observer.schedule(event_handler, config_dir, recursive=False)
            self.observer.start()
            self._running = True

            self.logger.info(f"开始监控配置文件: {self.config_manager.config_path}")

        except Exception as e:
            self.logger.error(f"启动配置监控失败: {e}")
            raise ConfigError(f"启动配置监控失败: {e}", cause=e)

    def stop_watching(self):
        """停止监控配置文件"""
        if not self._running:
            return

        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None

        self._running = False
        self.logger.info("配置文件监控已停止")

    def is_running(self) -> bool:
        """
        检查监控器是否正在运行

        Returns:
            bool: 监控器是否正在运行
        """
        return self._running

    async def watch_config_changes_async(self, check_interval: float = 5):
        """
        异步方式监控配置变更（轮询方式）

        Args:
            check_interval: 检查间隔（秒）
        """
        self.logger.info(f"开始异步监控配置文件变更，检查间隔: {check_interval}秒")
        if self.loop is None:
            self.loop = asyncio.get_running_loop()

        while True:
            try:
                self._on_config_changed()
            except Exception as e:
                self.logger.error(f"配置监控过程中发生错误: {e}")
            await asyncio.sleep(check_interval)

    def __enter__(self):
        """上下文管理器入口"""
        self.start_watching()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """上下文管理器出口"""
        self.stop_watching()
