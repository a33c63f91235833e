"""Redis 探测器"""

from typing import Tuple

import redis.asyncio as redis

from .base import BaseProber
from .factory import register_prober
from .tcp_prober import parse_host_port
from ..models.target import MonitoredTarget, ProtocolType
from ..utils.exceptions import TransientProbeError, ErrorCode

DEFAULT_REDIS_PORT = 6379


def parse_redis_endpoint(address: str) -> Tuple[str, int]:
    """解析 Redis 端点，未写端口时使用 6379"""
    address = (address or '').strip()
    if address and ':' not in address:
        return address, DEFAULT_REDIS_PORT
    return parse_host_port(address)


@register_prober(ProtocolType.REDIS)
class RedisProber(BaseProber):
    """Redis 探测器

    每次检查都新建连接，PING 成功即视为在线，检查结束后立即关闭连接，
    不在检查周期之间保留连接池。
    """

    protocol = 'redis'
    default_timeout = 10

    def _create_client(self, target: MonitoredTarget) -> redis.Redis:
        """按目标配置创建一次性 Redis 客户端"""
        timeout = self.get_timeout()
        options = {
            'username': target.redis_username or None,
            'password': target.redis_password or None,
            'socket_timeout': timeout,
            'socket_connect_timeout': timeout,
            'retry_on_timeout': False,
            'decode_responses': True,
        }
        if target.address.startswith(('redis://', 'rediss://', 'unix://')):
            if target.redis_db is not None:
                options['db'] = target.redis_db
            return redis.Redis.from_url(target.address, **options)

        host, port = parse_redis_endpoint(target.address)
        return redis.Redis(host=host, port=port, db=target.redis_db or 0, **options)

    async def check(self, target: MonitoredTarget) -> str:
        client = self._create_client(target)
        try:
            if not await client.ping():
                raise TransientProbeError("Redis连接失败: PING 返回 False", address=target.address)
            return "Redis连接与PING成功"
        except redis.TimeoutError as e:
            raise TransientProbeError(f"Redis连接失败 (Timeout): {e}", ErrorCode.TIMEOUT_ERROR,
                                      address=target.address)
        except redis.RedisError as e:
            raise TransientProbeError(f"Redis连接失败: {e}", address=target.address)
        except OSError as e:
            raise TransientProbeError(f"Redis连接失败: {e}", address=target.address)
        finally:
            try:
                await client.aclose()
            except Exception as e:
                self.logger.debug(f"关闭Redis客户端连接时出错: {e}")
