"""HTTP Hook 接收器 - 接收 Claude Code 的 Hook 事件

写入账本并广播：
- POST /api/logs: 结构化记录 {sessionId, hookType, toolName, message}
- POST /api/logs/{hookType}: 日志命令转发的原始 hook payload（stdin JSON）
- POST /api/test-hook: 生成一条测试事件
- DELETE /api/logs: 清空账本

广播总是在账本提交之后进行。
"""

from typing import TYPE_CHECKING, Any

from fastapi import HTTPException
from pydantic import BaseModel

from ..errors import StorageError
from ..models import HookType, LogEntry
from ..telemetry import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI

    from ..ledger import EventLedger
    from ..realtime import Broadcaster

logger = get_logger(__name__)

DEFAULT_MESSAGE = "Hook triggered"
TEST_SESSION_ID = "hotline-test"


class LogRequest(BaseModel):
    """日志写入请求体"""

    hookType: HookType
    sessionId: str = ""
    toolName: str | None = None
    message: str | None = None


class LogResponse(BaseModel):
    """日志写入响应"""

    success: bool
    id: int


def _payload_message(payload: dict[str, Any]) -> str:
    """从原始 payload 提取 message（Notification 自带 message）"""
    message = payload.get("message")
    return message if isinstance(message, str) and message else DEFAULT_MESSAGE


class HookReceiver:
    """HTTP Hook 接收器

    负责账本写入与广播的先后顺序：先提交、再重新读取、最后广播。
    """

    def __init__(self, ledger: "EventLedger", broadcaster: "Broadcaster"):
        self.ledger = ledger
        self.broadcaster = broadcaster

    async def record(
        self,
        session_id: str,
        hook_type: HookType | str,
        tool_name: str | None = None,
        message: str | None = None,
    ) -> LogEntry:
        """写入账本并广播 newLog

        Raises:
            StorageError: 写入失败（不会广播）
        """
        hook_type_value = hook_type.value if isinstance(hook_type, HookType) else hook_type
        entry = self.ledger.insert(session_id, hook_type_value, tool_name, message)
        await self.broadcaster.publish_new_log(entry)
        logger.info(f"[HookReceiver] #{entry.id} {hook_type_value} tool={tool_name or '-'}")
        return entry

    async def clear(self) -> int:
        """清空账本并广播 clearLogs

        Returns:
            删除的行数
        """
        count = self.ledger.clear_all()
        await self.broadcaster.publish_clear()
        return count

    def setup_routes(self, app: "FastAPI") -> None:
        """设置 API 路由"""

        @app.post("/api/logs", response_model=LogResponse)
        async def insert_log(request: LogRequest):
            """写入结构化记录"""
            entry = await self._record_or_500(
                request.sessionId, request.hookType, request.toolName, request.message
            )
            return LogResponse(success=True, id=entry.id)

        @app.post("/api/logs/{hook_type}", response_model=LogResponse)
        async def ingest_hook_payload(hook_type: HookType, payload: dict[str, Any]):
            """接收日志命令转发的原始 hook payload"""
            tool_name = payload.get("tool_name")
            entry = await self._record_or_500(
                str(payload.get("session_id") or ""),
                hook_type,
                tool_name if isinstance(tool_name, str) else None,
                _payload_message(payload),
            )
            return LogResponse(success=True, id=entry.id)

        @app.post("/api/test-hook", response_model=LogResponse)
        async def test_hook():
            """生成一条测试事件（用于验证声音与通知）"""
            entry = await self._record_or_500(
                TEST_SESSION_ID, HookType.NOTIFICATION, "TestTool", "Test hook from Hotline"
            )
            return LogResponse(success=True, id=entry.id)

        @app.delete("/api/logs")
        async def clear_logs():
            """清空账本"""
            try:
                count = await self.clear()
            except StorageError:
                raise HTTPException(status_code=500, detail="Failed to clear logs")
            return {"success": True, "deleted": count}

    async def _record_or_500(
        self,
        session_id: str,
        hook_type: HookType,
        tool_name: str | None,
        message: str | None,
    ) -> LogEntry:
        try:
            return await self.record(session_id, hook_type, tool_name, message)
        except StorageError:
            raise HTTPException(status_code=500, detail="Failed to insert log entry")
