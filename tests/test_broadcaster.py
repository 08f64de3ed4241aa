"""Broadcaster 测试"""

from datetime import datetime, timezone

import pytest
from starlette.websockets import WebSocketState

from hotline.models import LogEntry
from hotline.realtime import CLEAR_LOGS, NEW_LOG, Broadcaster
from hotline.telemetry import metrics


class FakeConnection:
    """记录收到消息的假连接"""

    def __init__(self, ready: bool = True, fail: bool = False):
        state = WebSocketState.CONNECTED if ready else WebSocketState.CONNECTING
        self.client_state = state
        self.application_state = state
        self.fail = fail
        self.received: list[dict] = []

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection reset")
        self.received.append(data)


@pytest.fixture
def broadcaster():
    return Broadcaster()


def _entry(entry_id: int = 1) -> LogEntry:
    return LogEntry(
        id=entry_id,
        timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
        session_id="s",
        hook_type="Stop",
    )


class TestBroadcast:
    """广播测试"""

    async def test_no_clients(self, broadcaster):
        """没有客户端时广播成功且无副作用"""
        assert await broadcaster.publish_clear() == 0

    async def test_delivers_to_all_ready(self, broadcaster):
        a, b = FakeConnection(), FakeConnection()
        broadcaster.connect(a)
        broadcaster.connect(b)

        delivered = await broadcaster.publish_new_log(_entry())

        assert delivered == 2
        assert a.received == [{"type": NEW_LOG, "data": _entry().to_dict()}]
        assert b.received == a.received

    async def test_skips_not_ready(self, broadcaster):
        ready, pending = FakeConnection(), FakeConnection(ready=False)
        broadcaster.connect(ready)
        broadcaster.connect(pending)

        assert await broadcaster.publish_clear() == 1
        assert pending.received == []
        assert broadcaster.connection_count == 2
        assert metrics.get_counter("broadcast.skipped") == 1

    async def test_order_preserved(self, broadcaster):
        conn = FakeConnection()
        broadcaster.connect(conn)

        await broadcaster.publish_new_log(_entry(1))
        await broadcaster.publish_clear()
        await broadcaster.publish_new_log(_entry(2))

        assert [m["type"] for m in conn.received] == [NEW_LOG, CLEAR_LOGS, NEW_LOG]
        assert conn.received[2]["data"]["id"] == 2

    async def test_failed_connection_removed(self, broadcaster):
        good, bad = FakeConnection(), FakeConnection(fail=True)
        broadcaster.connect(good)
        broadcaster.connect(bad)

        assert await broadcaster.publish_clear() == 1
        assert broadcaster.connection_count == 1
        assert metrics.get_counter("broadcast.failed") == 1

        assert await broadcaster.publish_clear() == 1
        assert len(good.received) == 2


class TestConnections:
    """连接管理测试"""

    def test_connect_twice_counts_once(self, broadcaster):
        conn = FakeConnection()
        broadcaster.connect(conn)
        broadcaster.connect(conn)
        assert broadcaster.connection_count == 1
        assert metrics.get_gauge("broadcast.connections") == 1

    def test_disconnect_unknown_is_noop(self, broadcaster):
        broadcaster.disconnect(FakeConnection())
        assert broadcaster.connection_count == 0
