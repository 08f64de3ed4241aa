"""实时客户端 - 连接 Hotline 服务并驱动 DispatchEngine

- RemoteConfigSource: 通过 HTTP 获取规范化的 UI 配置（短时缓存）
- RealtimeClient: WebSocket 订阅 /ws，断线后指数退避重连

重连后不补发离线期间的事件（声音/通知只针对实时事件）。
"""

import asyncio
import json
import time
from collections.abc import Callable
from typing import Any

import httpx
import websockets
from websockets.exceptions import WebSocketException

from ..config import CONFIG_REFRESH_SECONDS, RECONNECT_INITIAL_DELAY, RECONNECT_MAX_DELAY
from ..hooks.reconciler import normalize
from ..telemetry import get_logger
from .engine import DispatchEngine, DispatchResult

logger = get_logger(__name__)

EventCallback = Callable[[dict[str, Any], "DispatchResult | None"], None]


def websocket_url(server_url: str) -> str:
    """http(s)://host:port -> ws(s)://host:port/ws"""
    base = server_url.rstrip("/")
    if base.startswith("https://"):
        return "wss://" + base[len("https://"):] + "/ws"
    if base.startswith("http://"):
        return "ws://" + base[len("http://"):] + "/ws"
    return base + "/ws"


class RemoteConfigSource:
    """从服务端获取 UI 配置

    获取失败时沿用上一次的配置。
    """

    def __init__(
        self,
        server_url: str,
        client: httpx.AsyncClient | None = None,
        ttl: float = CONFIG_REFRESH_SECONDS,
    ):
        self._url = f"{server_url.rstrip('/')}/api/hook-ui-config"
        self._client = client
        self._ttl = ttl
        self._config: dict | None = None
        self._fetched_at = 0.0

    def invalidate(self) -> None:
        self._fetched_at = 0.0

    async def get(self) -> dict:
        if self._config is not None and time.monotonic() - self._fetched_at < self._ttl:
            return self._config

        client = self._client or httpx.AsyncClient(timeout=5.0)
        try:
            response = await client.get(self._url)
            response.raise_for_status()
            self._config = normalize(response.json())
            self._fetched_at = time.monotonic()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[Client] 获取配置失败，沿用缓存: {e}")
        finally:
            if self._client is None:
                await client.aclose()

        return self._config or {}


class RealtimeClient:
    """WebSocket 订阅客户端

    使用示例:
        client = RealtimeClient("http://localhost:3001", engine)
        await client.run()
    """

    def __init__(
        self,
        server_url: str,
        engine: DispatchEngine,
        on_event: EventCallback | None = None,
        initial_delay: float = RECONNECT_INITIAL_DELAY,
        max_delay: float = RECONNECT_MAX_DELAY,
    ):
        self._url = websocket_url(server_url)
        self._engine = engine
        self._on_event = on_event
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._stopped = asyncio.Event()
        self._ws = None
        self._close_task: asyncio.Task | None = None

    @property
    def url(self) -> str:
        return self._url

    async def handle_raw(self, raw: str | bytes) -> DispatchResult | None:
        """处理一条原始消息，单条消息的错误不影响连接"""
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"[Client] 无法解析消息: {raw!r:.80}")
            return None
        if not isinstance(message, dict):
            return None

        try:
            result = await self._engine.handle_message(message)
        except Exception as e:
            logger.error(f"[Client] 分发失败: {e}")
            result = None

        if self._on_event:
            self._on_event(message, result)
        return result

    async def run(self) -> None:
        """连接并持续处理消息，断线自动重连，直到 stop()"""
        delay = self._initial_delay
        while not self._stopped.is_set():
            try:
                async with websockets.connect(self._url) as ws:
                    self._ws = ws
                    logger.info(f"[Client] 已连接 {self._url}")
                    delay = self._initial_delay
                    async for raw in ws:
                        await self.handle_raw(raw)
                        if self._stopped.is_set():
                            break
            except (OSError, WebSocketException) as e:
                if not self._stopped.is_set():
                    logger.warning(f"[Client] 连接断开: {e}，{delay:.0f}s 后重连")
            finally:
                self._ws = None

            if self._stopped.is_set():
                break
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=delay)
            except asyncio.TimeoutError:
                delay = min(delay * 2, self._max_delay)

        logger.info("[Client] stopped")

    def stop(self) -> None:
        """停止 run()：打断重连等待并关闭当前连接（在事件循环内调用）"""
        self._stopped.set()
        if self._ws is not None:
            self._close_task = asyncio.get_running_loop().create_task(self._ws.close())
