"""事件账本 - Hook 触发记录的追加式存储

基于 SQLite：
- insert: 追加记录，账本分配 id 与 UTC 时间戳
- query: 按 hookType/sessionId/keyword 过滤，时间倒序分页
- clear_all: 批量清空
- export_csv: 导出过滤后的记录
"""

from __future__ import annotations

import csv
import io
import sqlite3
from pathlib import Path

from .config import DEFAULT_QUERY_LIMIT
from .errors import StorageError
from .models import LogEntry
from .telemetry import get_logger, metrics

logger = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    session_id TEXT,
    hook_type TEXT NOT NULL,
    tool_name TEXT,
    message TEXT
)
"""

_CSV_HEADER = ["Timestamp", "Hook Type", "Tool Name", "Session ID", "Message"]


def _casefold(value):
    """SQL 函数 casefold：Unicode 大小写折叠（SQLite LOWER 只处理 ASCII）"""
    return value.casefold() if isinstance(value, str) else value


def _escape_like(keyword: str) -> str:
    """转义 LIKE 通配符，使 keyword 按字面匹配"""
    return keyword.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class EventLedger:
    """追加式事件账本

    使用示例:
        ledger = EventLedger(Path("~/.hotline/hooks.db"))
        entry = ledger.insert("session-1", "Stop", None, "Hook triggered")
        ledger.query(hook_type="Stop", limit=10)
    """

    def __init__(self, path: Path | str):
        """初始化并建表

        Args:
            path: 数据库文件路径，":memory:" 为内存库

        Raises:
            StorageError: 打开数据库失败
        """
        self._path = str(path)
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            # TestClient/uvicorn 可能在不同线程调用
            self._conn = sqlite3.connect(self._path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.create_function("casefold", 1, _casefold, deterministic=True)
            with self._conn:
                self._conn.execute(_SCHEMA)
        except (OSError, sqlite3.Error) as e:
            logger.error(f"[Ledger] 打开数据库失败 {self._path}: {e}")
            raise StorageError("Failed to open event ledger") from e

    def close(self) -> None:
        """关闭连接"""
        self._conn.close()

    def insert(
        self,
        session_id: str,
        hook_type: str,
        tool_name: str | None = None,
        message: str | None = None,
    ) -> LogEntry:
        """追加记录

        提交后重新读取，返回带 id/timestamp 的完整记录。

        Raises:
            StorageError: 写入失败
        """
        try:
            with self._conn:
                cursor = self._conn.execute(
                    "INSERT INTO logs (session_id, hook_type, tool_name, message) VALUES (?, ?, ?, ?)",
                    (session_id, hook_type, tool_name, message),
                )
            entry = self.get(cursor.lastrowid)
        except sqlite3.Error as e:
            logger.error(f"[Ledger] 写入失败: {e}")
            metrics.inc("storage.errors", {"op": "ledger_insert"})
            raise StorageError("Failed to insert log entry") from e

        if entry is None:
            raise StorageError("Inserted log entry could not be read back")

        metrics.inc("ledger.inserts", {"hook_type": hook_type})
        logger.debug(f"[Ledger] #{entry.id} {hook_type} session={session_id[:8]}")
        return entry

    def get(self, log_id: int) -> LogEntry | None:
        """按 id 获取记录，不存在返回 None"""
        try:
            row = self._conn.execute("SELECT * FROM logs WHERE id = ?", (log_id,)).fetchone()
        except sqlite3.Error as e:
            logger.error(f"[Ledger] 读取失败: {e}")
            raise StorageError("Failed to read log entry") from e
        return LogEntry.from_row(row) if row else None

    def query(
        self,
        hook_type: str | None = None,
        session_id: str | None = None,
        keyword: str | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
        offset: int = 0,
    ) -> list[LogEntry]:
        """过滤查询，按时间倒序

        Args:
            hook_type: 精确匹配 Hook 类型
            session_id: 精确匹配会话 id
            keyword: message 或 tool_name 的子串（大小写不敏感）
            limit: 最大条数
            offset: 偏移

        Returns:
            LogEntry 列表（最新在前）
        """
        sql, params = self._build_filter(hook_type, session_id, keyword)
        sql += " ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"[Ledger] 查询失败: {e}")
            metrics.inc("storage.errors", {"op": "ledger_query"})
            raise StorageError("Failed to fetch logs") from e
        return [LogEntry.from_row(row) for row in rows]

    def _build_filter(
        self,
        hook_type: str | None,
        session_id: str | None,
        keyword: str | None,
    ) -> tuple[str, list]:
        sql = "SELECT * FROM logs WHERE 1=1"
        params: list = []

        if hook_type:
            sql += " AND hook_type = ?"
            params.append(hook_type)

        if session_id:
            sql += " AND session_id = ?"
            params.append(session_id)

        if keyword:
            pattern = f"%{_escape_like(keyword.casefold())}%"
            sql += (
                " AND (casefold(COALESCE(message, '')) LIKE ? ESCAPE '\\'"
                " OR casefold(COALESCE(tool_name, '')) LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern])

        return sql, params

    def count(self) -> int:
        """记录总数"""
        try:
            return self._conn.execute("SELECT COUNT(*) FROM logs").fetchone()[0]
        except sqlite3.Error as e:
            logger.error(f"[Ledger] 计数失败: {e}")
            metrics.inc("storage.errors", {"op": "ledger_count"})
            raise StorageError("Failed to count logs") from e

    def clear_all(self) -> int:
        """清空账本

        Returns:
            删除的行数

        Raises:
            StorageError: 删除失败
        """
        try:
            with self._conn:
                cursor = self._conn.execute("DELETE FROM logs")
        except sqlite3.Error as e:
            logger.error(f"[Ledger] 清空失败: {e}")
            metrics.inc("storage.errors", {"op": "ledger_clear"})
            raise StorageError("Failed to clear logs") from e

        logger.info(f"[Ledger] 已清空 {cursor.rowcount} 条记录")
        return cursor.rowcount

    def export_csv(
        self,
        hook_type: str | None = None,
        session_id: str | None = None,
        keyword: str | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
        offset: int = 0,
    ) -> str:
        """导出过滤后的记录为 CSV 文本"""
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL)
        writer.writerow(_CSV_HEADER)
        for entry in self.query(hook_type, session_id, keyword, limit, offset):
            writer.writerow([
                entry.timestamp.isoformat(),
                entry.hook_type,
                entry.tool_name or "",
                entry.session_id,
                entry.message or "",
            ])
        return buffer.getvalue()
