"""实时广播 - 把账本变化推送给所有已连接的客户端

消息格式:
- {"type": "newLog", "data": LogEntry}: 每次写入账本后发送一次
- {"type": "clearLogs"}: 每次清空账本后发送一次

投递语义：只发给处于 CONNECTED 状态的连接，其余静默跳过；
不排队、不重试，离线期间的事件不补发。
同一连接上的消息顺序与广播顺序一致。
"""

import asyncio
from typing import Any, Protocol

from starlette.websockets import WebSocketState

from ..config import METRICS_ENABLED
from ..models import LogEntry
from ..telemetry import get_logger, metrics

logger = get_logger(__name__)

NEW_LOG = "newLog"
CLEAR_LOGS = "clearLogs"


class Connection(Protocol):
    """广播所需的最小连接接口（fastapi.WebSocket 满足）"""

    client_state: WebSocketState
    application_state: WebSocketState

    async def send_json(self, data: Any) -> None: ...


def _is_ready(connection: Connection) -> bool:
    return (
        connection.client_state == WebSocketState.CONNECTED
        and connection.application_state == WebSocketState.CONNECTED
    )


class Broadcaster:
    """WebSocket 广播器

    使用示例:
        broadcaster = Broadcaster()
        broadcaster.connect(websocket)
        await broadcaster.publish_new_log(entry)
        broadcaster.disconnect(websocket)
    """

    def __init__(self):
        self._connections: list[Connection] = []
        # 串行化广播，保证单连接内的顺序
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def connect(self, connection: Connection) -> None:
        """登记连接（握手完成前广播会跳过它）"""
        if connection not in self._connections:
            self._connections.append(connection)
        metrics.gauge("broadcast.connections", len(self._connections))
        logger.info(f"[Broadcaster] 客户端已连接，当前 {len(self._connections)} 个")

    def disconnect(self, connection: Connection) -> None:
        """移除连接（重复调用无副作用）"""
        if connection in self._connections:
            self._connections.remove(connection)
            metrics.gauge("broadcast.connections", len(self._connections))
            logger.info(f"[Broadcaster] 客户端已断开，当前 {len(self._connections)} 个")

    async def broadcast(self, message: dict[str, Any]) -> int:
        """广播消息给所有就绪的客户端

        Returns:
            成功发送的连接数
        """
        async with self._lock:
            delivered = 0
            for connection in list(self._connections):
                if not _is_ready(connection):
                    self._count("broadcast.skipped")
                    continue
                try:
                    await connection.send_json(message)
                    delivered += 1
                except Exception as e:
                    # 发送失败的连接直接丢弃，不重试
                    logger.debug(f"[Broadcaster] 发送失败，移除连接: {e}")
                    self._count("broadcast.failed")
                    self.disconnect(connection)

            self._count("broadcast.sent", value=delivered)
            logger.debug(f"[Broadcaster] {message.get('type')} -> {delivered} clients")
            return delivered

    async def publish_new_log(self, entry: LogEntry) -> int:
        """广播新记录（调用方保证已提交并重新读取）"""
        return await self.broadcast({"type": NEW_LOG, "data": entry.to_dict()})

    async def publish_clear(self) -> int:
        """广播清空事件"""
        return await self.broadcast({"type": CLEAR_LOGS})

    def _count(self, name: str, value: int = 1) -> None:
        if METRICS_ENABLED and value:
            metrics.inc(name, value=value)
