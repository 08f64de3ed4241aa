"""配置存储 - 两份 JSON 文档的读写

- ConsumerSettingsStore: Claude Code 的 settings.json（只改 hooks 键，保留其他键）
- UIConfigStore: Hotline 自己的 UI 配置（每个 HookType 的配置项列表）

写入均为原子写（temp + rename），失败时不留部分写入。
并发编辑为 last-write-wins，不做跨进程加锁。
"""

import json
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any

from .config import SETTINGS_FILENAME
from .errors import StorageError
from .hooks.reconciler import normalize
from .telemetry import get_logger, metrics

logger = get_logger(__name__)


class SaveTarget(Enum):
    """settings.json 的保存位置"""
    GLOBAL = "global"  # ~/.claude/settings.json
    PROJECT = "project"  # <cwd>/.claude/settings.json


def atomic_write_json(path: Path, data: Any) -> None:
    """原子写入 JSON

    Raises:
        StorageError: 写入失败（原文件保持不变）
    """
    try:
        json_bytes = (json.dumps(data, ensure_ascii=False, indent=2) + "\n").encode("utf-8")
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(json_bytes)
            os.replace(temp_path, path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"[Store] 写入失败 {path}: {e}")
        metrics.inc("storage.errors", {"op": "write"})
        raise StorageError(f"Failed to write {path.name}") from e


def _read_json(path: Path) -> Any:
    """读取 JSON，文件不存在返回 None

    Raises:
        StorageError: 读取失败
        json.JSONDecodeError: 内容不是合法 JSON
    """
    if not path.exists():
        return None
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"[Store] 读取失败 {path}: {e}")
        metrics.inc("storage.errors", {"op": "read"})
        raise StorageError(f"Failed to read {path.name}") from e
    return json.loads(content)


class ConsumerSettingsStore:
    """Claude Code settings.json 存储

    hooks 与其他无关键共存于同一个文档，写入时只替换 hooks。
    """

    def __init__(self, claude_dir: Path, project_root: Path | None = None):
        """初始化

        Args:
            claude_dir: 全局配置目录（通常是 ~/.claude）
            project_root: 项目根目录，None 表示当前工作目录
        """
        self._claude_dir = Path(claude_dir)
        self._project_root = project_root

    def settings_path(self, target: SaveTarget = SaveTarget.GLOBAL) -> Path:
        """获取目标 settings.json 路径"""
        if target == SaveTarget.PROJECT:
            root = self._project_root or Path.cwd()
            return root / ".claude" / SETTINGS_FILENAME
        return self._claude_dir / SETTINGS_FILENAME

    def _load_settings(self, path: Path) -> dict:
        try:
            settings = _read_json(path)
        except json.JSONDecodeError as e:
            logger.error(f"[Store] settings.json 不是合法 JSON {path}: {e}")
            metrics.inc("storage.errors", {"op": "read_settings"})
            raise StorageError("Failed to read hooks configuration") from e

        if settings is None:
            return {}
        if not isinstance(settings, dict):
            raise StorageError("Failed to read hooks configuration")
        return settings

    def read_hooks(self, target: SaveTarget = SaveTarget.GLOBAL) -> dict:
        """读取 hooks 键，不存在返回空字典"""
        hooks = self._load_settings(self.settings_path(target)).get("hooks")
        return hooks if isinstance(hooks, dict) else {}

    def write_hooks(self, hooks: dict, target: SaveTarget = SaveTarget.GLOBAL) -> Path:
        """替换 hooks 键并保存（read-modify-write）

        现有文件损坏时不覆盖，直接报错。

        Returns:
            写入的文件路径
        """
        path = self.settings_path(target)
        settings = self._load_settings(path)
        settings["hooks"] = hooks
        atomic_write_json(path, settings)
        logger.info(f"[Store] hooks 已保存到 {path} ({len(hooks)} types)")
        return path


class UIConfigStore:
    """UI 配置文档存储

    读取时总是经过 normalize，损坏或旧格式的文档回退到默认值。
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load_raw(self) -> Any:
        """读取原始文档，不存在或损坏时返回 None"""
        try:
            return _read_json(self._path)
        except json.JSONDecodeError as e:
            logger.warning(f"[Store] UI 配置损坏，使用默认值: {e}")
            return None

    def load(self, consumer_hooks: dict | None = None) -> dict[str, list[dict]]:
        """读取并规范化

        Args:
            consumer_hooks: 现有的 settings.json hooks，用于文档缺失时生成默认值
        """
        return normalize(self.load_raw(), consumer_hooks)

    def save(self, config: Any) -> dict[str, list[dict]]:
        """规范化后保存

        Returns:
            实际保存的规范化文档
        """
        canonical = normalize(config)
        atomic_write_json(self._path, canonical)
        logger.debug(f"[Store] UI 配置已保存: {self._path}")
        return canonical
