"""Hook 配置协调器

UI 配置文档在不同版本中有过两种形态：
- 旧版: {HookType: {enabled, sound, notifications, timeout, matcher}}
- 新版: {HookType: [{enabled, sounds: [a, b, c], notifications, timeoutSeconds, matcher}, ...]}

本模块负责：
1. normalize: 任意形态 -> 规范形态（每个 HookType 对应配置项列表）
2. add_entry / remove_entry / update_field / set_sound: 纯函数编辑（copy-on-write）
3. compile_hooks: 规范形态 -> Claude Code settings.json 的 hooks 文档

所有函数都是纯函数，不修改入参；格式错误的输入回退到默认值，从不抛异常。
声音与通知不会编译进 hooks 文档，由客户端在分发时处理。
"""

import copy
import shlex
from typing import Any

from ..config import (
    DEFAULT_TIMEOUT_SECONDS,
    LOG_COMMAND_MAX_TIME,
    SOUND_SLOTS,
)
from ..models import HOOK_TYPES, HookEntryConfig, HookType
from ..telemetry import get_logger

logger = get_logger(__name__)

CanonicalConfig = dict[str, list[dict[str, Any]]]

# update_field 可修改的字段（旧字段名 -> 规范字段名）
_FIELD_ALIASES = {"timeout": "timeoutSeconds"}
_EDITABLE_FIELDS = frozenset({"enabled", "sounds", "notifications", "timeoutSeconds", "matcher"})


# === 字段转换 ===


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _coerce_int(value: Any) -> int | None:
    """尽量转换为整数，失败返回 None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _coerce_sounds(value: Any) -> list[str]:
    """转换为固定 3 个槽位的新列表"""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        value = []
    slots = [s if isinstance(s, str) else "" for s in value[:SOUND_SLOTS]]
    return slots + [""] * (SOUND_SLOTS - len(slots))


def _type_key(hook_type: "HookType | str") -> str | None:
    if isinstance(hook_type, HookType):
        return hook_type.value
    return hook_type if hook_type in HOOK_TYPES else None


# === 规范化 ===


def migrate_entry(raw: Any) -> HookEntryConfig:
    """单个配置项迁移为规范形态

    - sounds 缺失时由旧字段 sound 生成 [sound, "", ""]
    - 旧字段 timeout 迁移为 timeoutSeconds
    - 未识别字段保留在 extra
    """
    if not isinstance(raw, dict):
        return HookEntryConfig()

    data = copy.deepcopy(raw)
    legacy_sound = data.pop("sound", None)
    legacy_timeout = data.pop("timeout", None)

    sounds = data.pop("sounds", None)
    if sounds is None:
        sounds = [legacy_sound] if isinstance(legacy_sound, str) and legacy_sound else []

    timeout = _coerce_int(data.pop("timeoutSeconds", None))
    if timeout is None:
        timeout = _coerce_int(legacy_timeout)

    matcher = data.pop("matcher", "")

    return HookEntryConfig(
        enabled=_coerce_bool(data.pop("enabled", False)),
        sounds=_coerce_sounds(sounds),
        notifications=_coerce_bool(data.pop("notifications", False)),
        timeout_seconds=DEFAULT_TIMEOUT_SECONDS if timeout is None else timeout,
        matcher=matcher if isinstance(matcher, str) else "",
        extra=data,
    )


def entries_for(config: Any, hook_type: "HookType | str") -> list[HookEntryConfig]:
    """获取某个 HookType 的配置项（任意形态输入）"""
    key = _type_key(hook_type)
    if key is None or not isinstance(config, dict) or key not in config:
        return []
    value = config[key]
    items = value if isinstance(value, list) else [value]
    return [migrate_entry(item) for item in items]


def default_config(consumer_hooks: Any = None) -> CanonicalConfig:
    """文档缺失时生成默认配置

    每个 HookType 一个配置项；enabled 取决于 settings.json 是否已定义该类型，
    matcher 复制第一条已有规则的 matcher。
    """
    if not isinstance(consumer_hooks, dict):
        consumer_hooks = {}

    config: CanonicalConfig = {}
    for hook_type in HOOK_TYPES:
        rules = consumer_hooks.get(hook_type)
        matcher = ""
        if isinstance(rules, list) and rules and isinstance(rules[0], dict):
            first_matcher = rules[0].get("matcher")
            if isinstance(first_matcher, str):
                matcher = first_matcher
        entry = HookEntryConfig(enabled=bool(rules), matcher=matcher)
        config[hook_type] = [entry.to_dict()]
    return config


def normalize(raw: Any, consumer_hooks: Any = None) -> CanonicalConfig:
    """任意形态 -> 规范形态

    Args:
        raw: 已持久化的 UI 配置（可能缺失、旧版单对象、新版列表）
        consumer_hooks: settings.json 中的 hooks，仅在文档缺失时使用

    Returns:
        {HookType: [entry, ...]}，幂等
    """
    if not isinstance(raw, dict) or not raw:
        return default_config(consumer_hooks)

    unknown = [key for key in raw if key not in HOOK_TYPES]
    if unknown:
        logger.debug(f"[Reconciler] 忽略未知 hook 类型: {unknown}")

    canonical: CanonicalConfig = {}
    for hook_type in HOOK_TYPES:
        if hook_type in raw:
            canonical[hook_type] = [entry.to_dict() for entry in entries_for(raw, hook_type)]

    if not canonical:
        return default_config(consumer_hooks)
    return canonical


# === 编辑操作（copy-on-write）===


def add_entry(config: CanonicalConfig, hook_type: "HookType | str") -> CanonicalConfig:
    """追加一个默认（禁用）配置项"""
    updated = copy.deepcopy(config)
    key = _type_key(hook_type)
    if key is None:
        logger.warning(f"[Reconciler] add_entry 未知类型: {hook_type}")
        return updated
    updated.setdefault(key, []).append(HookEntryConfig().to_dict())
    return updated


def remove_entry(config: CanonicalConfig, hook_type: "HookType | str", index: int) -> CanonicalConfig:
    """按位置删除配置项，越界时不做任何修改

    允许删除到空列表（保留至少一项由 UI 约定）。
    """
    updated = copy.deepcopy(config)
    entries = updated.get(_type_key(hook_type) or "")
    if entries is None or not 0 <= index < len(entries):
        return updated
    del entries[index]
    return updated


def update_field(
    config: CanonicalConfig,
    hook_type: "HookType | str",
    index: int,
    field: str,
    value: Any,
) -> CanonicalConfig:
    """替换某个配置项的一个字段

    sounds 整体替换为新列表；timeoutSeconds 不做范围校验（由调用方保证）。
    未知字段或越界时不做任何修改。
    """
    updated = copy.deepcopy(config)
    field = _FIELD_ALIASES.get(field, field)
    entries = updated.get(_type_key(hook_type) or "")
    if entries is None or not 0 <= index < len(entries):
        return updated
    if field not in _EDITABLE_FIELDS:
        logger.warning(f"[Reconciler] 忽略未知字段: {field}")
        return updated

    entries[index][field] = _coerce_sounds(value) if field == "sounds" else copy.deepcopy(value)
    return updated


def set_sound(
    config: CanonicalConfig,
    hook_type: "HookType | str",
    index: int,
    slot: int,
    filename: str,
) -> CanonicalConfig:
    """修改单个声音槽位（生成新的 sounds 列表）"""
    entries = config.get(_type_key(hook_type) or "") or []
    if not 0 <= index < len(entries) or not 0 <= slot < SOUND_SLOTS:
        return copy.deepcopy(config)
    sounds = _coerce_sounds(entries[index].get("sounds"))
    sounds[slot] = filename
    return update_field(config, hook_type, index, "sounds", sounds)


# === 编译 ===


def build_log_command(hook_type: "HookType | str", base_url: str) -> str:
    """生成日志命令

    把 Claude Code 通过 stdin 传入的 hook payload 原样 POST 给 Hotline。
    服务未启动时命令静默成功，不影响 Claude Code。
    """
    key = hook_type.value if isinstance(hook_type, HookType) else hook_type
    url = f"{base_url.rstrip('/')}/api/logs/{key}"
    return (
        f"curl -s -m {LOG_COMMAND_MAX_TIME} -X POST {shlex.quote(url)} "
        "-H 'Content-Type: application/json' --data-binary @- "
        ">/dev/null 2>&1 || true"
    )


def compile_hooks(config: Any, base_url: str) -> dict[str, list[dict[str, Any]]]:
    """规范配置 -> settings.json 的 hooks 文档

    每个启用的配置项生成一条规则；没有启用项的 HookType 不出现在结果中。
    matcher 只写入 PreToolUse/PostToolUse。
    """
    compiled: dict[str, list[dict[str, Any]]] = {}
    for hook_type in HookType:
        rules = []
        for entry in entries_for(config, hook_type):
            if not entry.enabled:
                continue
            rule: dict[str, Any] = {
                "hooks": [{
                    "type": "command",
                    "command": build_log_command(hook_type, base_url),
                    "timeout": entry.timeout_seconds,
                }]
            }
            if hook_type.supports_matcher and entry.matcher:
                rule["matcher"] = entry.matcher
            rules.append(rule)
        if rules:
            compiled[hook_type.value] = rules
    return compiled
