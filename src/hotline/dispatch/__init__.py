"""客户端分发模块 - 广播事件 -> 声音 / 通知"""

from .client import RealtimeClient, RemoteConfigSource
from .engine import DispatchEngine, DispatchResult, StaticConfigSource, format_notification
from .notify import AlertNotifier, DesktopNotifier, NotificationGate, PermissionState
from .player import SystemSoundPlayer

__all__ = [
    "DispatchEngine",
    "DispatchResult",
    "StaticConfigSource",
    "RemoteConfigSource",
    "RealtimeClient",
    "format_notification",
    "NotificationGate",
    "PermissionState",
    "DesktopNotifier",
    "AlertNotifier",
    "SystemSoundPlayer",
]
