"""声音播放端口

SystemSoundPlayer 从 Hotline 服务下载声音文件，再交给系统播放器。
播放进程不等待结束，多个声音可以同时播放。
"""

import asyncio
import shutil
import sys
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import httpx

from ..errors import PlaybackError
from ..telemetry import get_logger

logger = get_logger(__name__)

# 按优先级排列的播放器命令
_PLAYER_COMMANDS = (
    ["afplay"],
    ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"],
    ["mpg123", "-q"],
    ["paplay"],
    ["aplay", "-q"],
)


class SoundPlayer(Protocol):
    """声音播放接口"""

    async def play(self, filename: str) -> None: ...


def detect_player_command() -> list[str] | None:
    """查找可用的系统播放器"""
    if sys.platform == "darwin" and shutil.which("afplay"):
        return ["afplay"]
    for command in _PLAYER_COMMANDS:
        if shutil.which(command[0]):
            return list(command)
    return None


class SystemSoundPlayer:
    """下载并调用系统播放器"""

    def __init__(
        self,
        server_url: str,
        download_dir: Path,
        client: httpx.AsyncClient | None = None,
        command: list[str] | None = None,
    ):
        self._server_url = server_url.rstrip("/")
        self._download_dir = Path(download_dir)
        self._client = client
        self._command = command if command is not None else detect_player_command()

    def sound_url(self, filename: str) -> str:
        return f"{self._server_url}/api/sounds/play/{quote(filename)}"

    async def _download(self, filename: str) -> Path:
        """下载声音文件（同名上传会覆盖，因此每次重新下载）"""
        client = self._client or httpx.AsyncClient(timeout=10.0)
        try:
            response = await client.get(self.sound_url(filename))
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PlaybackError(f"Failed to fetch {filename}: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

        self._download_dir.mkdir(parents=True, exist_ok=True)
        path = self._download_dir / Path(filename).name
        path.write_bytes(response.content)
        return path

    async def play(self, filename: str) -> None:
        """播放声音（不等待播放结束）

        Raises:
            PlaybackError: 下载失败或没有可用播放器
        """
        if not self._command:
            raise PlaybackError("No audio player found")

        path = await self._download(filename)
        try:
            await asyncio.create_subprocess_exec(
                *self._command,
                str(path),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise PlaybackError(f"Failed to start player: {e}") from e
        logger.debug(f"[Player] playing {filename}")
