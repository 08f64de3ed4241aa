"""Reconciler 测试"""

import shlex

from hotline.config import DEFAULT_TIMEOUT_SECONDS
from hotline.hooks.reconciler import (
    add_entry,
    build_log_command,
    compile_hooks,
    migrate_entry,
    normalize,
    remove_entry,
    set_sound,
    update_field,
)
from hotline.models import HOOK_TYPES, HookType

BASE_URL = "http://localhost:3001"


def _entry(**overrides):
    entry = {
        "enabled": True,
        "sounds": ["", "", ""],
        "notifications": False,
        "timeoutSeconds": DEFAULT_TIMEOUT_SECONDS,
        "matcher": "",
    }
    entry.update(overrides)
    return entry


class TestNormalize:
    """规范化测试"""

    def test_legacy_object_becomes_list(self):
        """旧版单对象迁移为单元素列表"""
        raw = {"Stop": {"enabled": True, "sound": "ding.mp3", "notifications": True, "timeout": 30}}

        result = normalize(raw)

        assert result == {
            "Stop": [{
                "enabled": True,
                "sounds": ["ding.mp3", "", ""],
                "notifications": True,
                "timeoutSeconds": 30,
                "matcher": "",
            }]
        }

    def test_sounds_padded_and_truncated(self):
        """sounds 固定为 3 个槽位"""
        short = normalize({"Stop": [_entry(sounds=["a.mp3"])]})
        long = normalize({"Stop": [_entry(sounds=["a", "b", "c", "d"])]})

        assert short["Stop"][0]["sounds"] == ["a.mp3", "", ""]
        assert long["Stop"][0]["sounds"] == ["a", "b", "c"]

    def test_idempotent(self):
        """normalize(normalize(x)) == normalize(x)"""
        samples = [
            {},
            None,
            "garbage",
            {"Stop": {"sound": "a.mp3"}},
            {"PreToolUse": [_entry(matcher="Bash"), {"enabled": "true", "timeout": "45"}]},
            {"Unknown": [_entry()]},
        ]
        for raw in samples:
            once = normalize(raw)
            assert normalize(once) == once

    def test_missing_document_uses_defaults(self):
        """文档缺失时每个类型一个配置项，enabled 取决于 settings.json"""
        consumer_hooks = {
            "PreToolUse": [{"matcher": "Bash", "hooks": [{"type": "command", "command": "x"}]}],
        }

        result = normalize(None, consumer_hooks)

        assert list(result) == list(HOOK_TYPES)
        assert result["PreToolUse"] == [_entry(matcher="Bash")]
        assert result["Stop"] == [_entry(enabled=False)]

    def test_unknown_types_dropped(self):
        """未知类型被忽略"""
        result = normalize({"Stop": [_entry()], "Whatever": [_entry()]})
        assert list(result) == ["Stop"]

    def test_extra_fields_preserved(self):
        """未识别字段原样保留"""
        result = normalize({"Stop": [_entry(label="build done")]})
        assert result["Stop"][0]["label"] == "build done"

    def test_nested_extra_not_shared(self):
        """输出中的嵌套字段与输入互不影响"""
        raw = {"Stop": [_entry(meta={"tags": ["ci"]})]}

        result = normalize(raw)
        result["Stop"][0]["meta"]["tags"].append("local")

        assert raw["Stop"][0]["meta"] == {"tags": ["ci"]}

    def test_malformed_entry_falls_back(self):
        """非字典配置项回退到默认值"""
        entry = migrate_entry(42)
        assert entry.enabled is False
        assert entry.sounds == ["", "", ""]
        assert entry.timeout_seconds == DEFAULT_TIMEOUT_SECONDS


class TestEditing:
    """编辑操作测试（copy-on-write）"""

    def test_add_entry_appends_disabled(self):
        config = {"Stop": [_entry()]}

        updated = add_entry(config, "Stop")

        assert len(updated["Stop"]) == 2
        assert updated["Stop"][1]["enabled"] is False
        assert len(config["Stop"]) == 1

    def test_add_entry_accepts_enum(self):
        updated = add_entry({}, HookType.PRE_COMPACT)
        assert len(updated["PreCompact"]) == 1

    def test_remove_entry(self):
        config = {"Stop": [_entry(matcher="a"), _entry(matcher="b")]}

        updated = remove_entry(config, "Stop", 0)

        assert [e["matcher"] for e in updated["Stop"]] == ["b"]
        assert len(config["Stop"]) == 2

    def test_remove_entry_out_of_range(self):
        """越界删除不做任何修改"""
        config = {"Stop": [_entry()]}
        assert remove_entry(config, "Stop", 5) == config
        assert remove_entry(config, "Stop", -1) == config

    def test_update_field(self):
        config = {"Stop": [_entry()]}

        updated = update_field(config, "Stop", 0, "notifications", True)

        assert updated["Stop"][0]["notifications"] is True
        assert config["Stop"][0]["notifications"] is False

    def test_update_legacy_timeout_alias(self):
        """旧字段名 timeout 写入 timeoutSeconds"""
        updated = update_field({"Stop": [_entry()]}, "Stop", 0, "timeout", 90)
        assert updated["Stop"][0]["timeoutSeconds"] == 90
        assert "timeout" not in updated["Stop"][0]

    def test_update_unknown_field_ignored(self):
        config = {"Stop": [_entry()]}
        assert update_field(config, "Stop", 0, "color", "red") == config

    def test_set_sound_creates_new_list(self):
        """修改槽位时原 sounds 列表不变"""
        config = {"Stop": [_entry(sounds=["a.mp3", "", ""])]}
        original_sounds = config["Stop"][0]["sounds"]

        updated = set_sound(config, "Stop", 0, 2, "c.mp3")

        assert updated["Stop"][0]["sounds"] == ["a.mp3", "", "c.mp3"]
        assert original_sounds == ["a.mp3", "", ""]
        assert updated["Stop"][0]["sounds"] is not original_sounds

    def test_set_sound_invalid_slot(self):
        config = {"Stop": [_entry()]}
        assert set_sound(config, "Stop", 0, 3, "x.mp3") == config


class TestCompile:
    """编译测试"""

    def test_stop_has_no_matcher(self):
        """Stop 即使配置了 matcher 也不写入"""
        compiled = compile_hooks({"Stop": [_entry(matcher="Bash", timeoutSeconds=20)]}, BASE_URL)

        assert compiled == {
            "Stop": [{
                "hooks": [{
                    "type": "command",
                    "command": build_log_command("Stop", BASE_URL),
                    "timeout": 20,
                }]
            }]
        }

    def test_pre_tool_use_matcher(self):
        compiled = compile_hooks(
            {"PreToolUse": [_entry(matcher="Bash"), _entry(matcher="")]}, BASE_URL
        )

        rules = compiled["PreToolUse"]
        assert rules[0]["matcher"] == "Bash"
        assert "matcher" not in rules[1]

    def test_disabled_types_omitted(self):
        """没有启用项的类型不出现"""
        config = {
            "Stop": [_entry(enabled=False)],
            "Notification": [_entry(enabled=False), _entry()],
        }

        compiled = compile_hooks(config, BASE_URL)

        assert list(compiled) == ["Notification"]
        assert len(compiled["Notification"]) == 1

    def test_sounds_not_compiled(self):
        """声音与通知只在客户端处理"""
        compiled = compile_hooks({"Stop": [_entry(sounds=["a.mp3", "", ""], notifications=True)]}, BASE_URL)
        command = compiled["Stop"][0]["hooks"][0]["command"]
        assert "a.mp3" not in command

    def test_log_command_posts_to_hook_endpoint(self):
        command = build_log_command(HookType.SUBAGENT_STOP, BASE_URL + "/")

        parts = shlex.split(command.split(">")[0])
        assert parts[0] == "curl"
        assert f"{BASE_URL}/api/logs/SubagentStop" in parts
        assert command.endswith("|| true")


class TestHookType:
    """HookType 测试"""

    def test_names_follow_enum_order(self):
        assert HOOK_TYPES == (
            "PreToolUse", "PostToolUse", "Notification", "Stop", "SubagentStop", "PreCompact",
        )

    def test_supports_matcher(self):
        assert {t.value for t in HookType if t.supports_matcher} == {"PreToolUse", "PostToolUse"}
