"""配置验证工具"""

from typing import Any, Dict, List
from urllib.parse import urlparse

from .exceptions import ConfigError


class ConfigValidator:
    """配置验证器"""

    SUPPORTED_PROTOCOLS = ['http', 'tcp', 'redis']
    VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

    @staticmethod
    def _require_positive_int(value: Any, field: str, owner: str = '') -> None:
        # bool 是 int 的子类，需要单独排除
        if value is None:
            return
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            prefix = f"{owner} 的 " if owner else ''
            raise ConfigError(f"{prefix}{field} 必须是正整数")

    @staticmethod
    def _require_positive_number(value: Any, field: str) -> None:
        if value is None:
            return
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ConfigError(f"{field} 必须是正数")

    @staticmethod
    def validate_target_config(target_config: Dict[str, Any]) -> None:
        """
        验证监控目标配置

        Args:
            target_config: 目标配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(target_config, dict):
            raise ConfigError("目标配置必须是字典类型")

        for field in ('name', 'address', 'protocol'):
            value = target_config.get(field)
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"目标配置缺少必需的配置项: {field}")

        name = target_config['name']
        protocol = target_config['protocol'].lower()
        if protocol not in ConfigValidator.SUPPORTED_PROTOCOLS:
            raise ConfigError(
                f"目标 '{name}' 的协议 '{protocol}' 不受支持。"
                f"支持的协议: {ConfigValidator.SUPPORTED_PROTOCOLS}")

        for field in ('refresh_interval_ms', 'retry_interval_ms'):
            ConfigValidator._require_positive_int(target_config.get(field), field, f"目标 '{name}'")

        sort_order = target_config.get('sort_order')
        if sort_order is not None and (isinstance(sort_order, bool) or not isinstance(sort_order, int)):
            raise ConfigError(f"目标 '{name}' 的 sort_order 必须是整数")

        redis_db = target_config.get('redis_db')
        if redis_db is not None:
            if isinstance(redis_db, bool) or not isinstance(redis_db, int) or redis_db < 0:
                raise ConfigError(f"目标 '{name}' 的 redis_db 必须是非负整数")

        in_maintenance = target_config.get('in_maintenance')
        if in_maintenance is not None and not isinstance(in_maintenance, bool):
            raise ConfigError(f"目标 '{name}' 的 in_maintenance 必须是布尔值")

        group = target_config.get('group')
        if group is not None and (not isinstance(group, str) or not group.strip()):
            raise ConfigError(f"目标 '{name}' 的 group 必须是非空字符串")

    @staticmethod
    def validate_targets_config(targets: List[Dict[str, Any]]) -> None:
        """
        验证目标列表，目标名称必须唯一

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(targets, list):
            raise ConfigError("targets配置必须是列表类型")

        names = set()
        for target_config in targets:
            ConfigValidator.validate_target_config(target_config)
            name = target_config['name']
            if name in names:
                raise ConfigError(f"目标名称重复: {name}")
            names.add(name)

    @staticmethod
    def validate_webhook_config(webhook_config: Dict[str, Any]) -> None:
        """
        验证Webhook广播配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(webhook_config, dict):
            raise ConfigError("Webhook配置必须是字典类型")

        for field in ('name', 'url'):
            if field not in webhook_config:
                raise ConfigError(f"Webhook配置缺少必需的配置项: {field}")

        parsed_url = urlparse(str(webhook_config['url']))
        if parsed_url.scheme not in ('http', 'https') or not parsed_url.netloc:
            raise ConfigError(f"Webhook '{webhook_config['name']}' 的url必须是完整的http(s)地址")

        ConfigValidator._require_positive_number(webhook_config.get('timeout'), 'timeout')

    @staticmethod
    def validate_broadcast_config(broadcast_config: Dict[str, Any]) -> None:
        """验证广播配置"""
        if not isinstance(broadcast_config, dict):
            raise ConfigError("broadcast配置必须是字典类型")

        ConfigValidator._require_positive_int(broadcast_config.get('queue_size'), 'queue_size')

        webhooks = broadcast_config.get('webhooks', [])
        if not isinstance(webhooks, list):
            raise ConfigError("webhooks配置必须是列表类型")
        for webhook_config in webhooks:
            ConfigValidator.validate_webhook_config(webhook_config)

    @staticmethod
    def validate_database_config(database_config: Dict[str, Any]) -> None:
        """验证数据库配置"""
        if not isinstance(database_config, dict):
            raise ConfigError("database配置必须是字典类型")

        url = database_config.get('url')
        if url is not None and (not isinstance(url, str) or '://' not in url):
            raise ConfigError(f"database.url 格式无效: {url}")

    @staticmethod
    def validate_groups_config(groups: List[Dict[str, Any]]) -> None:
        """验证分组配置"""
        if not isinstance(groups, list):
            raise ConfigError("groups配置必须是列表类型")
        for group in groups:
            if not isinstance(group, dict) or not group.get('name'):
                raise ConfigError("分组配置缺少必需的配置项: name")

    @staticmethod
    def validate_global_config(global_config: Dict[str, Any]) -> None:
        """
        验证全局配置

        Args:
            global_config: 全局配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(global_config, dict):
            raise ConfigError("全局配置必须是字典类型")

        log_level = global_config.get('log_level')
        if log_level is not None and log_level not in ConfigValidator.VALID_LOG_LEVELS:
            raise ConfigError(f"log_level 必须是以下值之一: {ConfigValidator.VALID_LOG_LEVELS}")

        for field in ('failure_threshold', 'error_cooldown_ms', 'max_log_size', 'log_backup_count'):
            ConfigValidator._require_positive_int(global_config.get(field), field)

        for field in ('http_timeout', 'tcp_timeout', 'redis_timeout'):
            ConfigValidator._require_positive_number(global_config.get(field), field)
