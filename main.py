#!/usr/bin/env python3
"""
服务可用性监控系统主应用程序入口

集成所有组件，实现应用程序启动和优雅关闭，
添加信号处理和异常捕获。
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional, Dict, Any

from uptime_monitor.broadcast import CompositeBroadcaster, StatusHub, WebhookBroadcaster
from uptime_monitor.models import ProbeRequest
from uptime_monitor.services.check_loop import LoopSettings
from uptime_monitor.services.config_manager import ConfigManager
from uptime_monitor.services.config_watcher import ConfigWatcher
from uptime_monitor.services.orchestrator import MonitorOrchestrator
from uptime_monitor.services.target_sync import TargetSynchronizer, target_from_config
from uptime_monitor.store import BaseStore, InMemoryStore, create_store
from uptime_monitor.utils.exceptions import UptimeMonitorError, ConfigError
from uptime_monitor.utils.log_manager import log_manager, get_logger

# 版本信息
__version__ = "1.0.0"


class UptimeMonitorApp:
    """服务可用性监控系统主应用程序类"""

    def __init__(self, config_path: str, log_overrides: Optional[Dict[str, Any]] = None):
        """初始化应用程序

        Args:
            config_path: 配置文件路径
            log_overrides: 命令行传入的日志配置，覆盖配置文件设置
        """
        self.config_path = config_path
        self.log_overrides = log_overrides or {}
        self.logger: Optional[logging.Logger] = None
        self.is_running = False
        self.shutdown_event = asyncio.Event()

        # 核心组件
        self.config_manager: Optional[ConfigManager] = None
        self.config_watcher: Optional[ConfigWatcher] = None
        self.store: Optional[BaseStore] = None
        self.hub: Optional[StatusHub] = None
        self.broadcaster: Optional[CompositeBroadcaster] = None
        self.orchestrator: Optional[MonitorOrchestrator] = None
        self.target_sync: Optional[TargetSynchronizer] = None

        # 任务管理
        self.background_tasks = set()

    async def initialize(self):
        """初始化应用程序组件"""
        try:
            self.config_manager = ConfigManager(self.config_path)
            self.config_manager.load_config()

            self._configure_logging()
            self.logger = get_logger('main')
            self.logger.info("开始初始化服务可用性监控系统")

            self.store = create_store(self.config_manager.get_database_config())
            await self.store.connect()

            self.broadcaster = self._create_broadcaster(self.config_manager.get_broadcast_config())

            global_config = self.config_manager.get_global_config()
            settings = LoopSettings(
                failure_threshold=global_config.get('failure_threshold', 3),
                error_cooldown_ms=global_config.get('error_cooldown_ms', 5000))
            self.orchestrator = MonitorOrchestrator(
                self.store, self.broadcaster, settings=settings,
                prober_config=self.config_manager.get_prober_config())

            # 配置中的目标先写入存储，bootstrap 时统一调度
            self.target_sync = TargetSynchronizer(self.store, self.orchestrator)
            await self.target_sync.apply(self.config_manager.get_targets_config(),
                                         self.config_manager.get_groups_config())

            self.config_watcher = ConfigWatcher(self.config_manager)
            self.config_watcher.add_change_callback(self._on_config_changed_callback)

            self.logger.info("应用程序组件初始化完成")

        except Exception as e:
            if self.logger:
                self.logger.error(f"应用程序初始化失败: {e}", exc_info=True)
            else:
                print(f"应用程序初始化失败: {e}", file=sys.stderr)
            raise

    def _configure_logging(self):
        """配置日志系统"""
        log_config = self.config_manager.get_logging_config()
        log_config.update(self.log_overrides)
        log_config['enable_console'] = True
        log_manager.configure(log_config)

    def _create_broadcaster(self, broadcast_config: Dict[str, Any]) -> CompositeBroadcaster:
        """创建进程内推送中心和配置的Webhook广播器"""
        self.hub = StatusHub(config={'queue_size': broadcast_config.get('queue_size', 100)})
        broadcaster = CompositeBroadcaster([self.hub])
        for webhook_config in broadcast_config.get('webhooks', []) or []:
            broadcaster.add_broadcaster(WebhookBroadcaster(webhook_config['name'], webhook_config))
        return broadcaster

    def _on_config_changed_callback(self, old_config: Dict[str, Any],
                                    new_config: Dict[str, Any]):
        """配置文件变更回调，返回目标同步协程"""
        self.logger.info("检测到配置文件变更，重新同步监控目标")
        self._configure_logging()

        old_global = old_config.get('global', {}) or {}
        new_global = new_config.get('global', {}) or {}
        for key in ('failure_threshold', 'error_cooldown_ms', 'http_timeout',
                    'tcp_timeout', 'redis_timeout'):
            if old_global.get(key) != new_global.get(key):
                self.logger.warning(f"{key} 已修改，重启后生效")

        return self.target_sync.on_config_changed(old_config, new_config)

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.shutdown)
            except NotImplementedError:
                # Windows 事件循环不支持 add_signal_handler
                signal.signal(signum, lambda *_: loop.call_soon_threadsafe(self.shutdown))

    async def start(self):
        """启动应用程序"""
        if self.is_running:
            self.logger.warning("应用程序已经在运行")
            return

        try:
            self.is_running = True
            self.logger.info("启动服务可用性监控系统")
            self._install_signal_handlers()

            # 启动配置监控器
            self.config_watcher.start_watching()

            # 启动异步配置监控任务
            config_watcher_task = asyncio.create_task(
                self.config_watcher.watch_config_changes_async()
            )
            self.background_tasks.add(config_watcher_task)
            config_watcher_task.add_done_callback(self.background_tasks.discard)

            count = await self.orchestrator.bootstrap()
            self.logger.info(f"服务可用性监控系统启动完成，监控 {count} 个目标")

            # 等待关闭信号
            await self.shutdown_event.wait()

        except Exception as e:
            self.logger.error(f"应用程序运行异常: {e}", exc_info=True)
            raise
        finally:
            await self.stop()

    async def stop(self):
        """停止应用程序"""
        if not self.is_running:
            return

        self.logger.info("正在停止服务可用性监控系统...")
        self.is_running = False

        try:
            if self.orchestrator:
                await self.orchestrator.stop()

            if self.config_watcher:
                self.config_watcher.stop_watching()

            for task in self.background_tasks:
                if not task.done():
                    task.cancel()

            if self.background_tasks:
                await asyncio.gather(*self.background_tasks, return_exceptions=True)

            self.background_tasks.clear()

            if self.broadcaster:
                await self.broadcaster.close()

            if self.store:
                await self.store.close()

            self.logger.info("服务可用性监控系统已停止")
            log_manager.cleanup()

        except Exception as e:
            self.logger.error(f"停止应用程序时发生异常: {e}", exc_info=True)

    def shutdown(self):
        """触发应用程序关闭"""
        if self.logger:
            self.logger.info("收到关闭信号")
        self.shutdown_event.set()

    def get_status(self) -> Dict[str, Any]:
        """获取应用程序状态

        Returns:
            应用程序状态信息
        """
        status = {
            'is_running': self.is_running,
            'config_path': self.config_path,
            'background_tasks_count': len(self.background_tasks)
        }

        if self.orchestrator:
            status['orchestrator'] = self.orchestrator.get_status()

        if self.hub:
            status['subscribers'] = self.hub.subscriber_count

        return status


def create_argument_parser() -> argparse.ArgumentParser:
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog='uptime-monitor',
        description='服务可用性监控系统 - 周期探测 HTTP/TCP/Redis 目标并记录停机事件',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例用法:
  %(prog)s config.yaml                    # 使用指定配置文件启动监控
  %(prog)s --validate config.yaml        # 验证配置文件格式
  %(prog)s --check-once config.yaml      # 对所有目标探测一次
  %(prog)s --version                      # 显示版本信息

支持的协议:
  - HTTP/HTTPS
  - TCP
  - Redis
        """
    )

    parser.add_argument(
        'config_file',
        nargs='?',
        help='YAML配置文件路径'
    )

    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--validate',
        action='store_true',
        help='验证配置文件格式并退出'
    )

    parser.add_argument(
        '--check-once',
        action='store_true',
        help='对配置中的每个目标执行一次探测后退出'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='设置日志级别（覆盖配置文件设置）'
    )

    parser.add_argument(
        '--log-file',
        help='日志文件路径（覆盖配置文件设置）'
    )

    return parser


def validate_config_file(config_path: str) -> bool:
    """验证配置文件

    Args:
        config_path: 配置文件路径

    Returns:
        验证是否成功
    """
    try:
        print(f"正在验证配置文件: {config_path}")

        config_manager = ConfigManager(config_path)
        config_manager.load_config()

        targets = config_manager.get_targets_config()
        webhooks = config_manager.get_broadcast_config().get('webhooks', []) or []

        print("✅ 配置文件验证成功!")
        print(f"   - 目标数量: {len(targets)}")
        print(f"   - Webhook数量: {len(webhooks)}")

        if targets:
            print("   - 配置的目标:")
            for target_config in targets:
                print(f"     * {target_config['name']} ({target_config['protocol']} "
                      f"{target_config['address']})")

        return True

    except ConfigError as e:
        print(f"❌ 配置文件验证失败: {e}")
        return False


async def check_once(config_path: str) -> bool:
    """对配置中的每个目标执行一次探测

    Args:
        config_path: 配置文件路径

    Returns:
        是否全部在线
    """
    try:
        config_manager = ConfigManager(config_path)
        config_manager.load_config()
    except ConfigError as e:
        print(f"❌ 配置加载失败: {e}")
        return False

    orchestrator = MonitorOrchestrator(InMemoryStore(),
                                       prober_config=config_manager.get_prober_config())
    targets = [target_from_config(c) for c in config_manager.get_targets_config()]
    print(f"正在探测 {len(targets)} 个目标: {config_path}")

    results = await asyncio.gather(*(
        orchestrator.probe_once(ProbeRequest(
            address=t.address, protocol=t.protocol, redis_username=t.redis_username,
            redis_password=t.redis_password, redis_db=t.redis_db))
        for t in targets))

    all_online = True
    for target, result in zip(targets, results):
        if result.is_online:
            print(f"   ✅ {target.name}: 在线 (耗时: {result.response_time:.3f}s) - "
                  f"{result.description}")
        else:
            print(f"   ❌ {target.name}: 离线 - {result.description}")
            all_online = False

    return all_online


async def main():
    """主函数"""
    parser = create_argument_parser()
    args = parser.parse_args()

    if not args.config_file:
        parser.print_help()
        sys.exit(1)

    config_path = args.config_file

    if not os.path.exists(config_path):
        print(f"配置文件不存在: {config_path}", file=sys.stderr)
        sys.exit(1)

    if args.validate:
        success = validate_config_file(config_path)
        sys.exit(0 if success else 1)

    if args.check_once:
        success = await check_once(config_path)
        sys.exit(0 if success else 1)

    log_overrides = {}
    if args.log_level:
        log_overrides['log_level'] = args.log_level
    if args.log_file:
        log_overrides['log_file'] = args.log_file

    app = UptimeMonitorApp(config_path, log_overrides)
    try:
        await app.initialize()

        print(f"服务可用性监控系统 v{__version__} 已启动")
        print(f"配置文件: {config_path}")
        print("按 Ctrl+C 停止程序")

        await app.start()

    except ConfigError as e:
        print(f"配置错误: {e}", file=sys.stderr)
        sys.exit(1)
    except UptimeMonitorError as e:
        print(f"监控系统错误: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        await app.stop()


if __name__ == "__main__":
    asyncio.run(main())
