"""声音文件库 - 以文件名为键的目录存储"""

from datetime import datetime, timezone
from pathlib import Path

from .config import ALLOWED_AUDIO_TYPES, AUDIO_EXTENSIONS, MAX_UPLOAD_BYTES
from .errors import InvalidUploadError, SoundNotFoundError, StorageError
from .models import SoundAsset
from .telemetry import get_logger, metrics

logger = get_logger(__name__)


def _is_safe_name(filename: str) -> bool:
    """只允许目录内的普通文件名"""
    return bool(filename) and Path(filename).name == filename and not filename.startswith(".")


class SoundLibrary:
    """声音文件库

    同名上传直接覆盖；列表只包含可识别的音频扩展名。
    """

    def __init__(self, directory: Path, max_bytes: int = MAX_UPLOAD_BYTES):
        self._dir = Path(directory)
        self.max_bytes = max_bytes
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    def validate(self, filename: str, content_type: str | None, size: int) -> None:
        """校验上传文件

        Raises:
            InvalidUploadError: 类型、大小或文件名不合法
        """
        if not _is_safe_name(filename):
            raise InvalidUploadError(filename, "invalid filename")
        if content_type not in ALLOWED_AUDIO_TYPES:
            raise InvalidUploadError(filename, "Only MP3 and WAV files are allowed")
        if size > self.max_bytes:
            raise InvalidUploadError(filename, "file is too large (max 10MB)")

    def save(self, filename: str, content_type: str | None, data: bytes) -> SoundAsset:
        """校验并保存

        Raises:
            InvalidUploadError: 校验失败
            StorageError: 写入失败
        """
        self.validate(filename, content_type, len(data))
        path = self._dir / filename
        try:
            path.write_bytes(data)
        except OSError as e:
            logger.error(f"[Sounds] 保存失败 {filename}: {e}")
            metrics.inc("storage.errors", {"op": "sound_save"})
            raise StorageError("Failed to upload sound file") from e

        logger.info(f"[Sounds] 已保存 {filename} ({len(data)} bytes)")
        return self._asset(path)

    def list_sounds(self) -> list[SoundAsset]:
        """列出所有音频文件（按文件名排序）"""
        try:
            paths = sorted(
                p for p in self._dir.iterdir()
                if p.is_file() and p.suffix.lower() in AUDIO_EXTENSIONS
            )
            return [self._asset(p) for p in paths]
        except OSError as e:
            logger.error(f"[Sounds] 列表失败: {e}")
            raise StorageError("Failed to list sound files") from e

    def path_for(self, filename: str) -> Path:
        """获取文件路径

        Raises:
            SoundNotFoundError: 文件不存在
        """
        path = self._dir / filename
        if not _is_safe_name(filename) or not path.is_file():
            raise SoundNotFoundError(filename)
        return path

    def delete(self, filename: str) -> None:
        """删除文件

        Raises:
            SoundNotFoundError: 文件不存在
            StorageError: 删除失败
        """
        path = self.path_for(filename)
        try:
            path.unlink()
        except OSError as e:
            logger.error(f"[Sounds] 删除失败 {filename}: {e}")
            raise StorageError("Failed to delete sound file") from e
        logger.info(f"[Sounds] 已删除 {filename}")

    @staticmethod
    def _asset(path: Path) -> SoundAsset:
        stat = path.stat()
        return SoundAsset(
            filename=path.name,
            size_bytes=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )
