"""DispatchEngine 测试"""

import random

import pytest

from hotline.dispatch import DispatchEngine, StaticConfigSource, format_notification
from hotline.errors import PlaybackError


class FakePlayer:
    """记录播放请求"""

    def __init__(self, failing: set[str] | None = None):
        self.played: list[str] = []
        self.failing = failing or set()

    async def play(self, filename: str) -> None:
        if filename in self.failing:
            raise PlaybackError(f"cannot play {filename}")
        self.played.append(filename)


class FakeNotifier:
    """记录通知"""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def notify(self, title: str, body: str) -> str:
        self.sent.append((title, body))
        return "alert"


def _entry(**overrides):
    entry = {"enabled": True, "sounds": ["", "", ""], "notifications": False, "timeoutSeconds": 60, "matcher": ""}
    entry.update(overrides)
    return entry


def _new_log(hook_type="Stop", tool_name=None, message=None):
    return {
        "type": "newLog",
        "data": {
            "id": 1,
            "timestamp": "2026-01-01T00:00:00+00:00",
            "sessionId": "s",
            "hookType": hook_type,
            "toolName": tool_name,
            "message": message,
        },
    }


@pytest.fixture
def player():
    return FakePlayer()


@pytest.fixture
def notifier():
    return FakeNotifier()


def make_engine(config, player, notifier, seed=0):
    return DispatchEngine(StaticConfigSource(config), player, notifier, rng=random.Random(seed))


class TestSoundSelection:
    """声音选择测试"""

    async def test_only_non_empty_slots_chosen(self, player, notifier):
        """空槽位永远不会被选中"""
        engine = make_engine({"Stop": [_entry(sounds=["a.mp3", "b.mp3", ""])]}, player, notifier)

        for _ in range(50):
            await engine.handle_message(_new_log())

        assert set(player.played) <= {"a.mp3", "b.mp3"}
        assert set(player.played) == {"a.mp3", "b.mp3"}
        assert notifier.sent == []

    async def test_seeded_selection_reproducible(self, notifier):
        config = {"Stop": [_entry(sounds=["a.mp3", "b.mp3", "c.mp3"])]}
        first, second = FakePlayer(), FakePlayer()

        for p in (first, second):
            engine = make_engine(config, p, notifier, seed=42)
            for _ in range(10):
                await engine.handle_message(_new_log())

        assert first.played == second.played

    async def test_no_sounds_configured(self, player, notifier):
        engine = make_engine({"Stop": [_entry()]}, player, notifier)

        result = await engine.handle_message(_new_log())

        assert result.is_empty
        assert player.played == []


class TestDispatch:
    """分发测试"""

    async def test_each_enabled_entry_processed(self, player, notifier):
        """多个启用项各自播放声音、各自通知"""
        config = {
            "PreToolUse": [
                _entry(sounds=["a.mp3", "", ""], notifications=True),
                _entry(enabled=False, sounds=["x.mp3", "", ""], notifications=True),
                _entry(sounds=["b.mp3", "", ""], notifications=True),
            ]
        }
        engine = make_engine(config, player, notifier)

        result = await engine.handle_message(_new_log("PreToolUse", "Bash", "ls"))

        assert player.played == ["a.mp3", "b.mp3"]
        assert result.sounds == ["a.mp3", "b.mp3"]
        assert len(notifier.sent) == 2

    async def test_playback_failure_continues(self, notifier):
        """一个声音播放失败不影响后续配置项"""
        player = FakePlayer(failing={"broken.mp3"})
        config = {
            "Stop": [
                _entry(sounds=["broken.mp3", "", ""], notifications=True),
                _entry(sounds=["ok.mp3", "", ""]),
            ]
        }
        engine = make_engine(config, player, notifier)

        result = await engine.handle_message(_new_log())

        assert result.failed_sounds == ["broken.mp3"]
        assert result.sounds == ["ok.mp3"]
        assert len(notifier.sent) == 1

    async def test_unconfigured_hook_type_ignored(self, player, notifier):
        engine = make_engine({"Stop": [_entry(sounds=["a.mp3", "", ""])]}, player, notifier)

        result = await engine.handle_message(_new_log("Notification"))

        assert result.is_empty
        assert player.played == []

    async def test_placeholders_in_notification(self, player, notifier):
        engine = make_engine({"Stop": [_entry(notifications=True)]}, player, notifier)

        await engine.handle_message(_new_log())

        assert notifier.sent == [("Hotline: Stop", "Tool: N/A\nMessage: N/A")]

    async def test_accepts_raw_json(self, player, notifier):
        engine = make_engine({"Stop": [_entry(sounds=["a.mp3", "", ""])]}, player, notifier)

        await engine.handle_message('{"type": "newLog", "data": {"hookType": "Stop"}}')

        assert player.played == ["a.mp3"]

    async def test_clear_logs_returns_none(self, player, notifier):
        engine = make_engine({"Stop": [_entry(sounds=["a.mp3", "", ""])]}, player, notifier)

        assert await engine.handle_message({"type": "clearLogs"}) is None
        assert await engine.handle_message({"type": "somethingElse"}) is None
        assert player.played == []


class TestFormatNotification:
    """通知格式测试"""

    def test_with_fields(self):
        title, body = format_notification("PreToolUse", "Bash", "running")
        assert title == "Hotline: PreToolUse"
        assert body == "Tool: Bash\nMessage: running"
