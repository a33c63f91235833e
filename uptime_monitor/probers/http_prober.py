"""HTTP/HTTPS 探测器"""

import asyncio
from urllib.parse import urlparse

import aiohttp

from .base import BaseProber
from .factory import register_prober
from ..models.target import MonitoredTarget, ProtocolType
from ..utils.exceptions import AddressValidationError, TransientProbeError, ErrorCode


def is_absolute_http_url(url: str) -> bool:
    """判断是否为完整的 http(s) 绝对地址"""
    if not isinstance(url, str) or not url or url != url.strip() or ' ' in url:
        return False
    try:
        parsed = urlparse(url)
        # 访问 port 会校验端口部分
        parsed.port
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.hostname)


@register_prober(ProtocolType.HTTP)
class HttpProber(BaseProber):
    """HTTP/HTTPS 探测器：发送 GET 请求，2xx 状态码视为在线"""

    protocol = 'http'
    default_timeout = 15

    async def check(self, target: MonitoredTarget) -> str:
        url = target.address
        if not is_absolute_http_url(url):
            raise AddressValidationError(
                "URL无效，必须是完整地址 (例如: http://example.com)", address=url)

        timeout = aiohttp.ClientTimeout(total=self.get_timeout())
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    description = f"{response.status} {response.reason or ''}".strip()
                    if 200 <= response.status < 300:
                        return description
                    raise TransientProbeError(description, address=url,
                                              details={'status_code': response.status})
        except asyncio.TimeoutError:
            raise TransientProbeError(
                f"请求超时 (Timeout)，超过 {self.get_timeout()} 秒未响应",
                ErrorCode.TIMEOUT_ERROR, address=url)
        except aiohttp.ClientConnectorError as e:
            raise TransientProbeError(f"无法连接 (Connection Refused): {e}",
                                      ErrorCode.CONNECTION_REFUSED, address=url)
        except aiohttp.ClientError as e:
            raise TransientProbeError(f"HTTP请求失败: {e}", address=url)
