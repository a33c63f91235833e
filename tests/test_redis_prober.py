"""Redis探测器测试"""

from unittest.mock import AsyncMock, patch

import pytest
import redis.asyncio as redis

from conftest import make_target
from uptime_monitor.models.target import ProtocolType, TargetStatus
from uptime_monitor.probers.redis_prober import RedisProber, parse_redis_endpoint


def redis_target(address='cache.internal:6380', **fields):
    return make_target(name='cache', address=address, protocol=ProtocolType.REDIS, **fields)


def mock_client(ping_result=True, ping_error=None):
    client = AsyncMock()
    if ping_error is not None:
        client.ping.side_effect = ping_error
    else:
        client.ping.return_value = ping_result
    return client


class TestParseRedisEndpoint:
    """Redis端点解析测试"""

    def test_default_port(self):
        """测试未写端口时使用6379"""
        assert parse_redis_endpoint('cache.internal') == ('cache.internal', 6379)

    def test_explicit_port(self):
        """测试显式端口"""
        assert parse_redis_endpoint('cache.internal:6380') == ('cache.internal', 6380)


class TestRedisProber:
    """RedisProber 测试"""

    @pytest.mark.asyncio
    async def test_ping_success_online(self):
        """测试PING成功为在线，并按目标配置创建客户端"""
        client = mock_client()
        target = redis_target(redis_username='monitor', redis_password='secret', redis_db=2)

        with patch('uptime_monitor.probers.redis_prober.redis.Redis',
                   return_value=client) as mock_redis:
            result = await RedisProber().probe(target)

        assert result.status == TargetStatus.ONLINE
        assert result.description == "Redis连接与PING成功"
        kwargs = mock_redis.call_args.kwargs
        assert kwargs['host'] == 'cache.internal'
        assert kwargs['port'] == 6380
        assert kwargs['db'] == 2
        assert kwargs['username'] == 'monitor'
        assert kwargs['password'] == 'secret'
        assert kwargs['socket_connect_timeout'] == 10
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_db_defaults_to_zero(self):
        """测试未配置数据库编号时使用0"""
        with patch('uptime_monitor.probers.redis_prober.redis.Redis',
                   return_value=mock_client()) as mock_redis:
            await RedisProber().probe(redis_target())

        assert mock_redis.call_args.kwargs['db'] == 0
        assert mock_redis.call_args.kwargs['password'] is None

    @pytest.mark.asyncio
    async def test_url_address_uses_from_url(self):
        """测试 redis:// 地址通过 from_url 创建客户端"""
        client = mock_client()
        with patch('uptime_monitor.probers.redis_prober.redis.Redis') as mock_redis:
            mock_redis.from_url.return_value = client
            result = await RedisProber().probe(redis_target('redis://cache.internal:6379/1'))

        assert result.status == TargetStatus.ONLINE
        mock_redis.from_url.assert_called_once()
        assert mock_redis.from_url.call_args.args[0] == 'redis://cache.internal:6379/1'

    @pytest.mark.asyncio
    async def test_connection_error_offline(self):
        """测试连接失败为离线并关闭客户端"""
        client = mock_client(ping_error=redis.ConnectionError("Connection refused"))
        with patch('uptime_monitor.probers.redis_prober.redis.Redis', return_value=client):
            result = await RedisProber().probe(redis_target())

        assert result.status == TargetStatus.OFFLINE
        assert "Redis连接失败" in result.description
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_offline(self):
        """测试超时为离线且描述包含 Timeout"""
        client = mock_client(ping_error=redis.TimeoutError("timed out"))
        with patch('uptime_monitor.probers.redis_prober.redis.Redis', return_value=client):
            result = await RedisProber().probe(redis_target())

        assert result.status == TargetStatus.OFFLINE
        assert "Timeout" in result.description

    @pytest.mark.asyncio
    async def test_ping_false_offline(self):
        """测试PING返回False为离线"""
        with patch('uptime_monitor.probers.redis_prober.redis.Redis',
                   return_value=mock_client(ping_result=False)):
            result = await RedisProber().probe(redis_target())

        assert result.status == TargetStatus.OFFLINE

    @pytest.mark.asyncio
    async def test_invalid_address_offline(self):
        """测试地址格式错误为离线"""
        result = await RedisProber().probe(redis_target('cache:port'))

        assert result.status == TargetStatus.OFFLINE
        assert "端口必须是数字" in result.description
