"""数据模型定义"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .config import DEFAULT_TIMEOUT_SECONDS, SOUND_SLOTS

# 账本时间戳格式（SQLite strftime 生成，UTC）
LEDGER_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class HookType(Enum):
    """Hook 类型枚举

    由 Claude Code 的 hooks 契约定义，集合不可变。
    """
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    NOTIFICATION = "Notification"
    STOP = "Stop"
    SUBAGENT_STOP = "SubagentStop"
    PRE_COMPACT = "PreCompact"

    @property
    def supports_matcher(self) -> bool:
        """是否支持 tool matcher（仅 PreToolUse/PostToolUse）"""
        return self in (HookType.PRE_TOOL_USE, HookType.POST_TOOL_USE)


# 全部类型名称，顺序即 UI 配置与编译输出的顺序
HOOK_TYPES = tuple(hook_type.value for hook_type in HookType)


def _default_sounds() -> list[str]:
    return [""] * SOUND_SLOTS


@dataclass
class HookEntryConfig:
    """单个 Hook 配置项

    一个 HookType 可以有多个配置项（例如不同 matcher 各自的声音）。

    Attributes:
        enabled: 是否启用
        sounds: 3 个声音槽位，"" 表示未设置
        notifications: 是否弹出通知
        timeout_seconds: 命令超时（1-300 秒）
        matcher: tool 名称匹配（仅 PreToolUse/PostToolUse 有意义）
        extra: 未识别的字段，原样保留
    """
    enabled: bool = False
    sounds: list[str] = field(default_factory=_default_sounds)
    notifications: bool = False
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    matcher: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def available_sounds(self) -> list[str]:
        """非空声音槽位（保持顺序，允许重复）"""
        return [s for s in self.sounds if s]

    def to_dict(self) -> dict[str, Any]:
        """转换为 UI 配置文档中的形式"""
        data: dict[str, Any] = dict(self.extra)
        data.update({
            "enabled": self.enabled,
            "sounds": list(self.sounds),
            "notifications": self.notifications,
            "timeoutSeconds": self.timeout_seconds,
            "matcher": self.matcher,
        })
        return data


@dataclass(frozen=True)
class LogEntry:
    """Hook 触发记录（账本分配 id 与时间戳）"""
    id: int
    timestamp: datetime
    session_id: str
    hook_type: str
    tool_name: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """转换为 API / 广播使用的字典"""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "sessionId": self.session_id,
            "hookType": self.hook_type,
            "toolName": self.tool_name,
            "message": self.message,
        }

    @classmethod
    def from_row(cls, row) -> "LogEntry":
        """从 sqlite3.Row 构造"""
        timestamp = datetime.strptime(row["timestamp"], LEDGER_TIME_FORMAT)
        return cls(
            id=row["id"],
            timestamp=timestamp.replace(tzinfo=timezone.utc),
            session_id=row["session_id"] or "",
            hook_type=row["hook_type"],
            tool_name=row["tool_name"],
            message=row["message"],
        )


@dataclass(frozen=True)
class SoundAsset:
    """已上传的声音文件"""
    filename: str
    size_bytes: int
    modified_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "sizeBytes": self.size_bytes,
            "modifiedAt": self.modified_at.isoformat(),
        }
