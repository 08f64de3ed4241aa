"""通知端口

两种实现：
- DesktopNotifier: 系统原生通知（macOS osascript / Linux notify-send）
- AlertNotifier: 终端阻塞式提示（rich 面板 + 响铃），作为回退

NotificationGate 维护权限状态机 {UNREQUESTED, GRANTED, DENIED}：
第一次需要通知时才请求权限，且只请求一次；
GRANTED 使用原生通知，DENIED 或原生通知失败时回退到 AlertNotifier。
"""

import asyncio
import shutil
import sys
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Protocol

from rich.console import Console
from rich.panel import Panel

from ..telemetry import get_logger, metrics

logger = get_logger(__name__)


class PermissionState(Enum):
    """通知权限状态"""
    UNREQUESTED = "unrequested"
    GRANTED = "granted"
    DENIED = "denied"


class Notifier(Protocol):
    """通知实现接口"""

    async def show(self, title: str, body: str) -> None: ...


class DesktopNotifier:
    """系统原生通知"""

    def __init__(self, platform: str | None = None):
        self._platform = platform or sys.platform

    def is_available(self) -> bool:
        """当前平台是否有可用的通知命令"""
        return self._command_name() is not None

    def _command_name(self) -> str | None:
        if self._platform == "darwin":
            return "osascript" if shutil.which("osascript") else None
        if self._platform.startswith("linux"):
            return "notify-send" if shutil.which("notify-send") else None
        return None

    def _build_args(self, title: str, body: str) -> list[str]:
        if self._command_name() == "osascript":
            safe_title = title.replace('"', '\\"')
            safe_body = body.replace('"', '\\"')
            script = f'display notification "{safe_body}" with title "{safe_title}"'
            return ["osascript", "-e", script]
        return ["notify-send", "--app-name", "Hotline", title, body]

    async def show(self, title: str, body: str) -> None:
        """发送通知

        Raises:
            RuntimeError: 平台不支持或命令失败
        """
        if not self.is_available():
            raise RuntimeError(f"No desktop notifier on {self._platform}")

        process = await asyncio.create_subprocess_exec(
            *self._build_args(title, body),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        returncode = await process.wait()
        if returncode != 0:
            raise RuntimeError(f"Notifier exited with {returncode}")


class AlertNotifier:
    """终端阻塞式提示（回退实现）"""

    def __init__(self, console: Console | None = None):
        self._console = console or Console()

    async def show(self, title: str, body: str) -> None:
        self._console.bell()
        self._console.print(Panel(body, title=title, border_style="yellow"))


async def _always_denied() -> bool:
    return False


class NotificationGate:
    """通知权限状态机

    使用示例:
        native = DesktopNotifier()
        gate = NotificationGate(native, AlertNotifier(), request_permission=...)
        await gate.notify("Hotline: Stop", "Tool: N/A")
    """

    def __init__(
        self,
        native: Notifier | None,
        fallback: Notifier,
        request_permission: Callable[[], Awaitable[bool]] | None = None,
    ):
        """初始化

        Args:
            native: 原生通知实现，None 表示不支持
            fallback: 回退实现
            request_permission: 权限请求函数，默认检查原生通知是否可用
        """
        self._native = native
        self._fallback = fallback
        if request_permission is None:
            request_permission = self._default_request if native else _always_denied
        self._request_permission = request_permission
        self._state = PermissionState.UNREQUESTED
        self._lock = asyncio.Lock()

    @property
    def state(self) -> PermissionState:
        return self._state

    async def _default_request(self) -> bool:
        is_available = getattr(self._native, "is_available", None)
        return bool(is_available()) if is_available else True

    async def ensure_permission(self) -> PermissionState:
        """确保已请求权限（只请求一次）"""
        async with self._lock:
            if self._state is PermissionState.UNREQUESTED:
                try:
                    granted = await self._request_permission()
                except Exception as e:
                    logger.warning(f"[Notify] 请求通知权限失败: {e}")
                    granted = False
                self._state = PermissionState.GRANTED if granted else PermissionState.DENIED
                logger.info(f"[Notify] 通知权限: {self._state.value}")
            return self._state

    async def notify(self, title: str, body: str) -> str:
        """发送通知

        Returns:
            实际使用的通道: "native" 或 "alert"
        """
        state = await self.ensure_permission()
        if state is PermissionState.GRANTED and self._native is not None:
            try:
                await self._native.show(title, body)
                metrics.inc("dispatch.notifications", {"channel": "native"})
                return "native"
            except Exception as e:
                logger.warning(f"[Notify] 原生通知失败，回退到提示: {e}")

        await self._fallback.show(title, body)
        metrics.inc("dispatch.notifications", {"channel": "alert"})
        return "alert"
