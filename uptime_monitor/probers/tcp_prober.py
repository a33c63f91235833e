"""TCP 端口探测器"""

import asyncio
from typing import Tuple

from .base import BaseProber
from .factory import register_prober
from ..models.target import MonitoredTarget, ProtocolType
from ..utils.exceptions import AddressValidationError, TransientProbeError, ErrorCode


def parse_host_port(address: str) -> Tuple[str, int]:
    """
    解析 host:port 形式的地址

    以 ``:`` 分割，最后一段为端口，其余部分重新拼接为主机名，
    因此 ``::1:6379`` 和 ``[::1]:6379`` 都能得到 IPv6 主机。

    Raises:
        AddressValidationError: 地址格式无效
    """
    parts = (address or '').strip().split(':')
    if len(parts) < 2:
        raise AddressValidationError("地址无效，必须是 hostname:port 格式", address=address)

    try:
        port = int(parts[-1])
    except ValueError:
        raise AddressValidationError("地址无效，端口必须是数字 (hostname:port)", address=address)
    if not 0 < port <= 65535:
        raise AddressValidationError(f"地址无效，端口超出范围: {port}", address=address)

    host = ':'.join(parts[:-1])
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    if not host:
        raise AddressValidationError("地址无效，缺少主机名 (hostname:port)", address=address)

    return host, port


@register_prober(ProtocolType.TCP)
class TcpProber(BaseProber):
    """TCP 探测器：在超时时间内建立连接即视为在线"""

    protocol = 'tcp'
    default_timeout = 10

    async def check(self, target: MonitoredTarget) -> str:
        host, port = parse_host_port(target.address)

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.get_timeout())
        except asyncio.TimeoutError:
            raise TransientProbeError("连接未建立 (Timeout)", ErrorCode.TIMEOUT_ERROR,
                                      address=target.address)
        except ConnectionRefusedError:
            raise TransientProbeError("连接未建立 (Connection Refused)",
                                      ErrorCode.CONNECTION_REFUSED, address=target.address)
        except OSError as e:
            raise TransientProbeError(f"连接未建立 (Connection Refused): {e}",
                                      ErrorCode.CONNECTION_REFUSED, address=target.address)

        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            self.logger.debug(f"关闭到 {host}:{port} 的连接时出错: {e}")

        return "连接建立成功"
