"""Webhook 广播器：把状态更新以 HTTP 请求推送给外部订阅者"""

import asyncio
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import aiohttp

from .base import BaseBroadcaster
from ..utils.exceptions import BroadcastError, ConfigError
from ..utils.log_manager import get_logger


class WebhookBroadcaster(BaseBroadcaster):
    """Webhook 广播器

    请求体为 ``{"topic": ..., "data": ...}`` 的 JSON。
    每次发布的总耗时受 ``timeout`` 与 ``max_retries`` 约束，失败只记录日志。
    """

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        Args:
            name: 广播器名称
            config: 配置，包含 ``url``，可选 ``method``、``headers``、``timeout``、
                ``max_retries``、``retry_delay``

        Raises:
            ConfigError: 配置无效
        """
        super().__init__(name, config)
        self.logger = get_logger(f'broadcast.webhook.{self.name}')

        self.url = config.get('url', '')
        self.method = config.get('method', 'POST').upper()
        self.headers = config.get('headers', {}) or {}
        self.timeout = config.get('timeout', 5)
        self.max_retries = config.get('max_retries', 1)
        self.retry_delay = config.get('retry_delay', 0.5)

        self._session: Optional[aiohttp.ClientSession] = None

        if not self.validate_config():
            raise ConfigError(f"Webhook广播器配置无效: {name}")

    def validate_config(self) -> bool:
        """验证配置参数是否有效"""
        parsed_url = urlparse(self.url or '')
        if parsed_url.scheme not in ('http', 'https') or not parsed_url.netloc:
            self.logger.error(f"Webhook广播器 {self.name} URL格式无效: {self.url}")
            return False

        if self.method not in ('POST', 'PUT', 'PATCH'):
            self.logger.error(f"Webhook广播器 {self.name} 不支持的HTTP方法: {self.method}")
            return False

        if self.max_retries < 0 or self.retry_delay < 0 or self.timeout <= 0:
            self.logger.error(f"Webhook广播器 {self.name} 超时或重试配置无效")
            return False

        return True

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def _send(self, body: Dict[str, Any]) -> None:
        """
        发送一次请求

        Raises:
            BroadcastError: 请求超时、连接失败或返回非2xx状态码
        """
        try:
            async with self._get_session().request(
                    self.method, self.url, json=body, headers=self.headers) as response:
                if 200 <= response.status < 300:
                    return
                response_text = await response.text()
                raise BroadcastError(
                    f"返回状态码 {response.status}: {response_text[:200]}", subscriber=self.name,
                    details={'status_code': response.status})
        except asyncio.TimeoutError as e:
            raise BroadcastError("请求超时", subscriber=self.name, cause=e)
        except aiohttp.ClientError as e:
            raise BroadcastError(f"请求失败: {e}", subscriber=self.name, cause=e)

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        body = {'topic': topic, 'data': payload}

        for attempt in range(self.max_retries + 1):
            try:
                await self._send(body)
                self.logger.debug(f"推送成功: {topic} -> {self.url}")
                return
            except BroadcastError as e:
                self.logger.warning(f"Webhook {self.name} {e.message} (尝试 {attempt + 1})")

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

        self.logger.error(f"Webhook {self.name} 推送失败，已放弃: {topic}")

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
