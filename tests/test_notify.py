"""NotificationGate 测试"""

from unittest.mock import AsyncMock

import pytest
from rich.console import Console

from hotline.dispatch import AlertNotifier, DesktopNotifier, NotificationGate, PermissionState
from hotline.telemetry import metrics


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.shown: list[tuple[str, str]] = []

    async def show(self, title: str, body: str) -> None:
        if self.fail:
            raise RuntimeError("notification daemon not running")
        self.shown.append((title, body))


class PermissionCounter:
    def __init__(self, granted: bool):
        self.granted = granted
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.granted


class TestPermission:
    """权限状态机测试"""

    async def test_requested_once(self):
        request = AsyncMock(return_value=True)
        native = RecordingNotifier()
        gate = NotificationGate(native, RecordingNotifier(), request_permission=request)

        assert gate.state is PermissionState.UNREQUESTED
        await gate.notify("t", "b")
        await gate.notify("t", "b")

        request.assert_awaited_once()
        assert gate.state is PermissionState.GRANTED
        assert len(native.shown) == 2

    async def test_denied_uses_alert(self):
        native, fallback = RecordingNotifier(), RecordingNotifier()
        gate = NotificationGate(native, fallback, request_permission=PermissionCounter(granted=False))

        channel = await gate.notify("Hotline: Stop", "Tool: N/A")

        assert channel == "alert"
        assert native.shown == []
        assert fallback.shown == [("Hotline: Stop", "Tool: N/A")]
        assert gate.state is PermissionState.DENIED

    async def test_request_error_counts_as_denied(self):
        async def broken():
            raise OSError("no dbus")

        gate = NotificationGate(RecordingNotifier(), RecordingNotifier(), request_permission=broken)

        assert await gate.ensure_permission() is PermissionState.DENIED

    async def test_no_native_notifier(self):
        fallback = RecordingNotifier()
        gate = NotificationGate(None, fallback)

        assert await gate.notify("t", "b") == "alert"
        assert gate.state is PermissionState.DENIED

    async def test_native_failure_falls_back(self):
        fallback = RecordingNotifier()
        gate = NotificationGate(
            RecordingNotifier(fail=True), fallback, request_permission=PermissionCounter(granted=True)
        )

        assert await gate.notify("t", "b") == "alert"
        assert fallback.shown == [("t", "b")]
        assert metrics.get_counter("dispatch.notifications", {"channel": "alert"}) == 1


class TestNotifiers:
    """通知实现测试"""

    async def test_alert_prints_panel(self):
        console = Console(record=True, width=60)
        await AlertNotifier(console).show("Hotline: Stop", "Tool: N/A")

        output = console.export_text()
        assert "Hotline: Stop" in output
        assert "Tool: N/A" in output

    def test_unsupported_platform(self):
        assert DesktopNotifier(platform="win32").is_available() is False

    async def test_unsupported_platform_show_raises(self):
        with pytest.raises(RuntimeError):
            await DesktopNotifier(platform="win32").show("t", "b")

    def test_linux_args(self, monkeypatch):
        monkeypatch.setattr("hotline.dispatch.notify.shutil.which", lambda name: f"/usr/bin/{name}")

        args = DesktopNotifier(platform="linux")._build_args("title", "body")

        assert args == ["notify-send", "--app-name", "Hotline", "title", "body"]

    def test_macos_args_escape_quotes(self, monkeypatch):
        monkeypatch.setattr("hotline.dispatch.notify.shutil.which", lambda name: f"/usr/bin/{name}")

        args = DesktopNotifier(platform="darwin")._build_args('say "hi"', "body")

        assert args[:2] == ["osascript", "-e"]
        assert 'with title "say \\"hi\\""' in args[2]
