"""协议探测器工厂"""

from typing import Dict, Type, Any, Optional, Union

from .base import BaseProber
from ..models.target import ProtocolType
from ..utils.exceptions import ProberRegistrationError


class ProberFactory:
    """协议探测器工厂，按目标的协议类型选择探测策略"""

    def __init__(self):
        self._probers: Dict[ProtocolType, Type[BaseProber]] = {}

    def register_prober(self, protocol: Union[ProtocolType, str],
                        prober_class: Type[BaseProber]):
        """
        注册探测器类

        Args:
            protocol: 协议类型
            prober_class: 探测器类

        Raises:
            ProberRegistrationError: 注册失败
        """
        if not issubclass(prober_class, BaseProber):
            raise ProberRegistrationError(
                f"探测器类 {prober_class.__name__} 必须继承自 BaseProber")

        protocol = ProtocolType(protocol)
        if protocol in self._probers:
            raise ProberRegistrationError(f"协议 '{protocol.value}' 已经注册了探测器")

        self._probers[protocol] = prober_class

    def unregister_prober(self, protocol: Union[ProtocolType, str]):
        """取消注册探测器类"""
        self._probers.pop(ProtocolType(protocol), None)

    def create_prober(self, protocol: Union[ProtocolType, str],
                      config: Optional[Dict[str, Any]] = None) -> BaseProber:
        """
        创建探测器实例

        Args:
            protocol: 协议类型
            config: 探测器配置

        Returns:
            BaseProber: 探测器实例

        Raises:
            ProberRegistrationError: 协议不受支持
        """
        return self.get_prober_class(protocol)(config)

    def get_supported_protocols(self) -> list:
        """获取支持的协议列表"""
        return [protocol.value for protocol in self._probers]

    def is_protocol_supported(self, protocol: str) -> bool:
        """检查是否支持指定协议"""
        try:
            return ProtocolType(protocol) in self._probers
        except ValueError:
            return False

    def get_prober_class(self, protocol: Union[ProtocolType, str]) -> Type[BaseProber]:
        """
        获取指定协议的探测器类

        Raises:
            ProberRegistrationError: 协议不受支持
        """
        try:
            return self._probers[ProtocolType(protocol)]
        except (KeyError, ValueError):
            raise ProberRegistrationError(f"不支持的协议类型: '{protocol}'")


# 全局工厂实例
prober_factory = ProberFactory()


def register_prober(protocol: Union[ProtocolType, str]):
    """
    装饰器：注册探测器类

    Args:
        protocol: 协议类型
    """
    def decorator(prober_class: Type[BaseProber]):
        prober_factory.register_prober(protocol, prober_class)
        return prober_class

    return decorator
