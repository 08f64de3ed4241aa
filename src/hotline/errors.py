"""错误类型

- StorageError: 磁盘/文件读写失败（操作中止，无部分写入）
- InvalidUploadError: 上传文件类型/大小/名称不合法（逐文件拒绝）
- SoundNotFoundError: 声音文件不存在
- PlaybackError: 客户端播放失败
"""


class HotlineError(Exception):
    """Hotline 错误基类"""


class StorageError(HotlineError):
    """存储读写失败"""


class InvalidUploadError(HotlineError):
    """上传文件被拒绝"""

    def __init__(self, filename: str, reason: str):
        super().__init__(f"{filename}: {reason}")
        self.filename = filename
        self.reason = reason


class SoundNotFoundError(HotlineError):
    """声音文件不存在"""

    def __init__(self, filename: str):
        super().__init__(f"Sound not found: {filename}")
        self.filename = filename


class PlaybackError(HotlineError):
    """声音播放失败"""
