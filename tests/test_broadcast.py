"""状态广播测试"""

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from conftest import RecordingBroadcaster
from uptime_monitor.broadcast import (CompositeBroadcaster, StatusHub, STATUS_UPDATE_TOPIC,
                                      WebhookBroadcaster)
from uptime_monitor.utils.exceptions import ConfigError


class TestStatusHub:
    """StatusHub 测试"""

    @pytest.mark.asyncio
    async def test_publish_without_subscribers(self):
        """测试没有订阅者时发布直接返回"""
        hub = StatusHub()

        await hub.publish(STATUS_UPDATE_TOPIC, {'id': 't1'})

        assert hub.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_fan_out_in_order(self):
        """测试每个订阅者按发布顺序收到消息"""
        hub = StatusHub()
        first = hub.subscribe()
        second = hub.subscribe()

        for i in range(3):
            await hub.publish(STATUS_UPDATE_TOPIC, {'seq': i})

        for subscription in (first, second):
            received = [(await subscription.get()).payload['seq'] for _ in range(3)]
            assert received == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        """测试订阅者队列满时丢弃最旧消息而不阻塞发布"""
        hub = StatusHub(config={'queue_size': 2})
        subscription = hub.subscribe()

        for i in range(5):
            await asyncio.wait_for(hub.publish(STATUS_UPDATE_TOPIC, {'seq': i}), 0.5)

        assert subscription.dropped == 3
        assert (await subscription.get()).payload['seq'] == 3
        assert (await subscription.get()).payload['seq'] == 4

    @pytest.mark.asyncio
    async def test_unsubscribe_with_context_manager(self):
        """测试退出上下文后取消订阅"""
        hub = StatusHub()

        with hub.subscribe():
            assert hub.subscriber_count == 1

        assert hub.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_async_iteration(self):
        """测试订阅可作为异步迭代器读取"""
        hub = StatusHub()
        subscription = hub.subscribe()
        await hub.publish(STATUS_UPDATE_TOPIC, {'id': 't1'})

        async for message in subscription:
            assert message.topic == STATUS_UPDATE_TOPIC
            assert message.payload == {'id': 't1'}
            break


class TestCompositeBroadcaster:
    """CompositeBroadcaster 测试"""

    @pytest.mark.asyncio
    async def test_forwards_to_all(self):
        """测试转发给所有广播器"""
        first, second = RecordingBroadcaster(), RecordingBroadcaster()
        composite = CompositeBroadcaster([first, second])

        await composite.publish(STATUS_UPDATE_TOPIC, {'id': 't1'})

        assert first.messages == [(STATUS_UPDATE_TOPIC, {'id': 't1'})]
        assert second.messages == first.messages

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self):
        """测试单个广播器失败不影响其他广播器"""
        class FailingBroadcaster(RecordingBroadcaster):
            async def publish(self, topic, payload):
                raise RuntimeError("推送失败")

        healthy = RecordingBroadcaster()
        composite = CompositeBroadcaster([FailingBroadcaster(), healthy])

        await composite.publish(STATUS_UPDATE_TOPIC, {'id': 't1'})

        assert len(healthy.messages) == 1

    def test_add_and_remove(self):
        """测试添加与移除广播器"""
        composite = CompositeBroadcaster()
        recording = RecordingBroadcaster()

        composite.add_broadcaster(recording)
        assert composite.broadcasters == [recording]
        assert composite.remove_broadcaster('recording') is True
        assert composite.remove_broadcaster('recording') is False


class TestWebhookBroadcaster:
    """WebhookBroadcaster 测试"""

    def test_invalid_config(self):
        """测试无效配置抛出配置异常"""
        with pytest.raises(ConfigError):
            WebhookBroadcaster('bad', {'url': 'not-a-url'})

        with pytest.raises(ConfigError):
            WebhookBroadcaster('bad', {'url': 'http://example.com', 'method': 'GET'})

    @pytest.mark.asyncio
    async def test_posts_json_payload(self):
        """测试以JSON推送状态更新"""
        received = []

        async def hook(request):
            received.append((request.headers.get('X-Token'), await request.json()))
            return web.Response(status=204)

        app = web.Application()
        app.router.add_post('/hook', hook)

        async with TestServer(app) as server:
            broadcaster = WebhookBroadcaster('dashboard', {
                'url': str(server.make_url('/hook')),
                'headers': {'X-Token': 'abc'},
            })
            try:
                await broadcaster.publish(STATUS_UPDATE_TOPIC, {'id': 't1', 'status': 'online'})
            finally:
                await broadcaster.close()

        assert received == [('abc', {'topic': STATUS_UPDATE_TOPIC,
                                     'data': {'id': 't1', 'status': 'online'}})]

    @pytest.mark.asyncio
    async def test_retries_then_gives_up(self):
        """测试失败时按次数重试且不抛出异常"""
        calls = []

        async def hook(request):
            calls.append(1)
            return web.Response(status=503)

        app = web.Application()
        app.router.add_post('/hook', hook)

        async with TestServer(app) as server:
            broadcaster = WebhookBroadcaster('dashboard', {
                'url': str(server.make_url('/hook')),
                'max_retries': 2,
                'retry_delay': 0.01,
            })
            try:
                await broadcaster.publish(STATUS_UPDATE_TOPIC, {'id': 't1'})
            finally:
                await broadcaster.close()

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_does_not_raise(self, unused_tcp_port):
        """测试端点不可达时只记录日志"""
        broadcaster = WebhookBroadcaster('dashboard', {
            'url': f'http://127.0.0.1:{unused_tcp_port}/hook',
            'max_retries': 0,
            'timeout': 1,
        })
        try:
            await broadcaster.publish(STATUS_UPDATE_TOPIC, {'id': 't1'})
        finally:
            await broadcaster.close()
