"""配置管理器"""

import os
import yaml
from typing import Dict, Any, List, Optional
from ..utils.exceptions import ConfigError, ErrorCode
from ..utils.config_validator import ConfigValidator
from ..utils.log_manager import get_logger


class ConfigManager:
    """配置管理器，负责YAML配置文件的加载、解析和验证"""

    def __init__(self, config_path: str):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径
        """
        self.config_path = config_path
        self.config: Dict[str, Any] = {}
        self.last_modified: Optional[float] = None
        self.logger = get_logger('config_manager')

    def load_config(self) -> Dict[str, Any]:
        """
        加载YAML配置文件

        Returns:
            Dict[str, Any]: 配置字典

        Raises:
            ConfigError: 配置加载或验证失败
        """
        self.logger.info(f"开始加载配置文件: {self.config_path}")

        if not os.path.exists(self.config_path):
            self.logger.error(f"配置文件不存在: {self.config_path}")
            raise ConfigError(f"配置文件不存在: {self.config_path}",
                              error_code=ErrorCode.CONFIG_FILE_NOT_FOUND,
                              config_path=self.config_path)

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                config = yaml.safe_load(file)
        except yaml.YAMLError as e:
            self.logger.error(f"YAML格式错误: {e}")
            raise ConfigError(f"YAML格式错误: {e}", error_code=ErrorCode.CONFIG_PARSE_ERROR,
                              config_path=self.config_path, cause=e)
        except PermissionError as e:
            self.logger.error(f"没有权限读取配置文件: {self.config_path}")
            raise ConfigError(f"没有权限读取配置文件: {self.config_path}",
                              config_path=self.config_path, cause=e)
        except OSError as e:
            self.logger.error(f"读取配置文件失败: {e}")
            raise ConfigError(f"读取配置文件失败: {e}", config_path=self.config_path, cause=e)

        if config is None:
            self.logger.error("配置文件为空")
            raise ConfigError("配置文件为空", config_path=self.config_path)

        self._validate_config(config)

        targets_count = len(config.get('targets', []))
        webhooks_count = len(config.get('broadcast', {}).get('webhooks', []))
        self.logger.info(f"配置验证成功，包含 {targets_count} 个监控目标和 {webhooks_count} 个Webhook")

        old_config = self.config.copy() if self.config else {}
        self.config = config
        self.last_modified = os.path.getmtime(self.config_path)

        if old_config:
            self._log_config_changes(old_config, config)
        else:
            self.logger.info("首次加载配置文件")

        return self.config

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        验证配置文件内容

        Args:
            config: 配置字典

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError("配置文件根节点必须是字典类型")

        if 'global' in config:
            ConfigValidator.validate_global_config(config['global'])

        if 'database' in config:
            ConfigValidator.validate_database_config(config['database'])

        if 'broadcast' in config:
            ConfigValidator.validate_broadcast_config(config['broadcast'])

        if 'groups' in config:
            ConfigValidator.validate_groups_config(config['groups'])

        if 'targets' in config:
            ConfigValidator.validate_targets_config(config['targets'])

    def get_global_config(self) -> Dict[str, Any]:
        """
        获取全局配置

        Returns:
            Dict[str, Any]: 全局配置字典
        """
        return self.config.get('global', {}) or {}

    def get_database_config(self) -> Dict[str, Any]:
        """获取数据库配置，未配置url时使用内存存储"""
        return self.config.get('database', {}) or {}

    def get_broadcast_config(self) -> Dict[str, Any]:
        """获取广播配置"""
        return self.config.get('broadcast', {}) or {}

    def get_groups_config(self) -> List[Dict[str, Any]]:
        """获取分组配置"""
        return self.config.get('groups', []) or []

    def get_targets_config(self) -> List[Dict[str, Any]]:
        """
        获取监控目标配置

        Returns:
            List[Dict[str, Any]]: 目标配置列表
        """
        return self.config.get('targets', []) or []

    def get_target_config(self, target_name: str) -> Optional[Dict[str, Any]]:
        """
        获取指定目标的配置

        Args:
            target_name: 目标名称

        Returns:
            Optional[Dict[str, Any]]: 目标配置，如果不存在返回None
        """
        for target_config in self.get_targets_config():
            if target_config.get('name') == target_name:
                return target_config
        return None

    def get_prober_config(self) -> Dict[str, Dict[str, Any]]:
        """按协议整理探测器超时配置"""
        global_config = self.get_global_config()
        prober_config: Dict[str, Dict[str, Any]] = {}
        for protocol in ConfigValidator.SUPPORTED_PROTOCOLS:
            timeout = global_config.get(f'{protocol}_timeout')
            if timeout is not None:
                prober_config[protocol] = {'timeout': timeout}
        return prober_config

    def get_logging_config(self) -> Dict[str, Any]:
        """整理日志管理器所需的配置"""
        global_config = self.get_global_config()
        logging_config = {
            'log_level': global_config.get('log_level', 'INFO'),
            'log_file': global_config.get('log_file'),
        }
        if 'max_log_size' in global_config:
            logging_config['max_file_size'] = global_config['max_log_size']
        if 'log_backup_count' in global_config:
            logging_config['backup_count'] = global_config['log_backup_count']
        return logging_config

    def is_config_changed(self) -> bool:
        """
        检查配置文件是否已修改

        Returns:
            bool: 配置文件是否已修改
        """
        try:
            if not os.path.exists(self.config_path):
                return False

            current_modified = os.path.getmtime(self.config_path)
            return self.last_modified is None or current_modified > self.last_modified

        except OSError:
            return False

    def reload_config(self) -> Dict[str, Any]:
        """
        重新加载配置文件

        Returns:
            Dict[str, Any]: 新的配置字典

        Raises:
            ConfigError: 配置重新加载失败
        """
        self.logger.info("重新加载配置文件")
        return self.load_config()

    def _log_config_changes(self, old_config: Dict[str, Any], new_config: Dict[str, Any]) -> None:
        """
        记录配置变更

        Args:
            old_config: 旧配置
            new_config: 新配置
        """
        old_targets = {t['name']: t for t in old_config.get('targets', []) or []}
        new_targets = {t['name']: t for t in new_config.get('targets', []) or []}

        added_targets = set(new_targets) - set(old_targets)
        if added_targets:
            self.logger.info(f"新增目标: {', '.join(sorted(added_targets))}")

        removed_targets = set(old_targets) - set(new_targets)
        if removed_targets:
            self.logger.info(f"删除目标: {', '.join(sorted(removed_targets))}")

        for target_name in set(old_targets) & set(new_targets):
            if old_targets[target_name] != new_targets[target_name]:
                self.logger.info(f"目标配置已修改: {target_name}")

        if old_config.get('broadcast') != new_config.get('broadcast'):
            self.logger.info("广播配置已修改，重启后生效")

        if old_config.get('global') != new_config.get('global'):
            self.logger.info("全局配置已修改")
            self.logger.debug(f"新全局配置: {new_config.get('global')}")
