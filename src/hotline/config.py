"""Hotline 配置

配置分为以下几类：
- 路径配置：数据目录、声音目录、Claude 配置目录
- 服务配置：监听地址、端口
- Hook 配置：声音槽位、超时范围（Hook 类型见 models.HookType）
- 上传配置：允许的音频类型、大小限制
- 日志/指标配置
"""

import os
from pathlib import Path

# === 路径配置 ===
HOTLINE_HOME = Path(os.environ.get("HOTLINE_HOME", Path.home() / ".hotline"))
SOUNDS_DIR = HOTLINE_HOME / "sounds"  # 上传的声音文件
LEDGER_DB = HOTLINE_HOME / "hooks.db"  # 事件账本
UI_CONFIG_FILE = HOTLINE_HOME / "hook-ui-config.json"  # UI 配置文档
CLAUDE_DIR = Path(os.environ.get("HOTLINE_CLAUDE_DIR", Path.home() / ".claude"))
SETTINGS_FILENAME = "settings.json"

# === 服务配置 ===
HOST = os.environ.get("HOTLINE_HOST", "0.0.0.0")
PORT = int(os.environ.get("HOTLINE_PORT", "3001"))
DEFAULT_SERVER_URL = f"http://localhost:{PORT}"

# === Hook 配置 ===
SOUND_SLOTS = 3  # 每个配置项最多 3 个声音
DEFAULT_TIMEOUT_SECONDS = 60
MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 300
LOG_COMMAND_MAX_TIME = 5  # 日志命令中 curl 的最长耗时（秒）

# === 日志查询配置 ===
DEFAULT_QUERY_LIMIT = 100
MAX_QUERY_LIMIT = 1000

# === 上传配置 ===
ALLOWED_AUDIO_TYPES = frozenset({"audio/mpeg", "audio/wav", "audio/mp3"})
AUDIO_EXTENSIONS = (".mp3", ".wav")  # 列表过滤（大小写不敏感）
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB

# === 客户端配置 ===
NOTIFICATION_PLACEHOLDER = "N/A"  # 缺失 toolName/message 时的占位
CONFIG_REFRESH_SECONDS = 5.0  # 远端 UI 配置缓存时间
RECONNECT_INITIAL_DELAY = 1.0  # WebSocket 重连初始延迟（秒）
RECONNECT_MAX_DELAY = 30.0  # WebSocket 重连最大延迟（秒）
SOUND_CACHE_DIR = HOTLINE_HOME / "cache"  # 客户端声音缓存

# === 日志配置 ===
LOG_LEVEL = os.environ.get("HOTLINE_LOG_LEVEL", "INFO")  # 日志级别

# === 指标配置 ===
METRICS_ENABLED = True  # 是否启用指标收集
