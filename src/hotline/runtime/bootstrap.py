"""Bootstrap - 集中构造系统组件

职责：
- 创建 EventLedger, 配置存储, Broadcaster, SoundLibrary, HookReceiver
- 返回 RuntimeComponents 供调用方使用

不负责：
- 启动/停止 HTTP 服务（由 web.app 管理）
"""

from dataclasses import dataclass
from pathlib import Path

from .. import config
from ..hooks.receiver import HookReceiver
from ..ledger import EventLedger
from ..realtime import Broadcaster
from ..sounds import SoundLibrary
from ..store import ConsumerSettingsStore, UIConfigStore
from ..telemetry import get_logger

logger = get_logger(__name__)

# 全局注册，防止重复构造（同一进程只能有一个账本连接）
_current_components: "RuntimeComponents | None" = None


@dataclass
class RuntimeComponents:
    """Bootstrap 返回的运行时组件集合"""

    ledger: EventLedger
    settings_store: ConsumerSettingsStore
    ui_store: UIConfigStore
    broadcaster: Broadcaster
    sounds: SoundLibrary
    receiver: HookReceiver

    def close(self) -> None:
        """释放资源"""
        self.ledger.close()
        logger.info("[Bootstrap] Components closed")


def bootstrap(
    home: Path | None = None,
    claude_dir: Path | None = None,
    project_root: Path | None = None,
) -> RuntimeComponents:
    """构造运行时组件

    Args:
        home: Hotline 数据目录，默认 config.HOTLINE_HOME
        claude_dir: Claude 全局配置目录，默认 config.CLAUDE_DIR
        project_root: 项目级 settings.json 的根目录，默认当前工作目录

    Returns:
        RuntimeComponents 包含所有构造好的组件

    Raises:
        RuntimeError: 如果已经调用过 bootstrap（防止双重构造）
        StorageError: 数据目录或账本无法打开
    """
    global _current_components

    if _current_components is not None:
        raise RuntimeError(
            "bootstrap() has already been called. "
            "Use get_current_components() to access existing components."
        )

    if home is None:
        sounds_dir, ledger_path, ui_config_path = config.SOUNDS_DIR, config.LEDGER_DB, config.UI_CONFIG_FILE
    else:
        home = Path(home)
        sounds_dir = home / config.SOUNDS_DIR.name
        ledger_path = home / config.LEDGER_DB.name
        ui_config_path = home / config.UI_CONFIG_FILE.name

    # 1. 存储层
    ledger = EventLedger(ledger_path)
    settings_store = ConsumerSettingsStore(claude_dir or config.CLAUDE_DIR, project_root)
    ui_store = UIConfigStore(ui_config_path)
    sounds = SoundLibrary(sounds_dir)

    # 2. 广播 + 接收器
    broadcaster = Broadcaster()
    receiver = HookReceiver(ledger, broadcaster)

    logger.info(f"[Bootstrap] Components created (ledger={ledger_path})")

    _current_components = RuntimeComponents(
        ledger=ledger,
        settings_store=settings_store,
        ui_store=ui_store,
        broadcaster=broadcaster,
        sounds=sounds,
        receiver=receiver,
    )
    return _current_components


def get_current_components() -> "RuntimeComponents | None":
    """获取当前运行的 RuntimeComponents

    如果 bootstrap() 还没调用，返回 None。
    """
    return _current_components


def _reset_for_testing() -> None:
    """重置 bootstrap 状态（仅用于测试）"""
    global _current_components
    if _current_components is not None:
        _current_components.close()
    _current_components = None
