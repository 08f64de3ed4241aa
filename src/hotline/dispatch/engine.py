"""DispatchEngine - 把广播事件解析为声音与通知

处理流程（每个 newLog 事件）：
1. 取该 hookType 的全部配置项，缺失或为空则忽略
2. 每个启用的配置项独立处理：
   - 从非空声音槽位中均匀随机选一个播放（失败只记日志，不影响后续）
   - notifications 开启时发送通知
因此一个事件可以同时触发多个声音和多个通知。
"""

import json
import random
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..config import NOTIFICATION_PLACEHOLDER
from ..hooks.reconciler import entries_for
from ..models import LogEntry
from ..realtime import CLEAR_LOGS, NEW_LOG
from ..telemetry import get_logger, metrics
from .notify import NotificationGate
from .player import SoundPlayer

logger = get_logger(__name__)


class ConfigSource(Protocol):
    """UI 配置来源"""

    async def get(self) -> dict: ...


class StaticConfigSource:
    """固定配置（测试或离线使用）"""

    def __init__(self, config: dict):
        self.config = config

    async def get(self) -> dict:
        return self.config


@dataclass
class DispatchResult:
    """单个事件的分发结果"""
    hook_type: str
    sounds: list[str] = field(default_factory=list)  # 成功开始播放的声音
    failed_sounds: list[str] = field(default_factory=list)
    notifications: list[str] = field(default_factory=list)  # 使用的通道

    @property
    def is_empty(self) -> bool:
        return not (self.sounds or self.failed_sounds or self.notifications)


def format_notification(hook_type: str, tool_name: str | None, message: str | None) -> tuple[str, str]:
    """生成通知标题和正文"""
    title = f"Hotline: {hook_type}"
    body = (
        f"Tool: {tool_name or NOTIFICATION_PLACEHOLDER}\n"
        f"Message: {message or NOTIFICATION_PLACEHOLDER}"
    )
    return title, body


def _event_fields(entry: LogEntry | dict[str, Any]) -> tuple[str, str | None, str | None]:
    if isinstance(entry, LogEntry):
        return entry.hook_type, entry.tool_name, entry.message
    return entry.get("hookType") or "", entry.get("toolName"), entry.get("message")


class DispatchEngine:
    """单个客户端会话的分发引擎

    Args:
        config_source: UI 配置来源
        player: 声音播放端口
        notifier: 通知权限状态机
        rng: 随机数生成器（测试时传入固定 seed）
    """

    def __init__(
        self,
        config_source: ConfigSource,
        player: SoundPlayer,
        notifier: NotificationGate,
        rng: random.Random | None = None,
    ):
        self._config_source = config_source
        self._player = player
        self._notifier = notifier
        self._rng = rng or random.Random()

    async def handle_message(self, message: dict[str, Any] | str) -> DispatchResult | None:
        """处理一条广播消息

        Returns:
            newLog 的分发结果，其他消息返回 None
        """
        if isinstance(message, str):
            message = json.loads(message)

        message_type = message.get("type")
        if message_type == NEW_LOG and isinstance(message.get("data"), dict):
            return await self.dispatch(message["data"])
        if message_type == CLEAR_LOGS:
            logger.info("[Dispatch] 账本已被清空")
        else:
            logger.debug(f"[Dispatch] 忽略消息: {message_type}")
        return None

    def choose_sound(self, candidates: list[str]) -> str:
        """从候选声音中均匀随机选一个"""
        return self._rng.choice(candidates)

    async def dispatch(self, entry: LogEntry | dict[str, Any]) -> DispatchResult:
        """分发单个事件"""
        hook_type, tool_name, message = _event_fields(entry)
        result = DispatchResult(hook_type=hook_type)

        config = await self._config_source.get()
        for index, entry_config in enumerate(entries_for(config, hook_type)):
            if not entry_config.enabled:
                continue

            candidates = entry_config.available_sounds
            if candidates:
                sound = self.choose_sound(candidates)
                try:
                    await self._player.play(sound)
                    result.sounds.append(sound)
                    metrics.inc("dispatch.sounds", {"hook_type": hook_type})
                except Exception as e:
                    logger.error(f"[Dispatch] {hook_type}#{index} 播放 {sound} 失败: {e}")
                    result.failed_sounds.append(sound)

            if entry_config.notifications:
                title, body = format_notification(hook_type, tool_name, message)
                result.notifications.append(await self._notifier.notify(title, body))

        if not result.is_empty:
            logger.info(
                f"[Dispatch] {hook_type}: sounds={result.sounds} notifications={len(result.notifications)}"
            )
        return result
