"""
单元测试用于测试 permissions 模块

测试覆盖：
- PermissionRule 解析、序列化与匹配
- 各权限模式的决策
- 规则优先级与回调
- SettingsManager 读取配置文件
"""

import json
from unittest.mock import AsyncMock

import pytest

from agent_runtime.permissions import (
    PermissionAllow,
    PermissionDeny,
    PermissionManager,
    PermissionMode,
    PermissionRule,
    SettingsManager,
    matches_rule,
)


# ======================================================================
# PermissionRule 测试
# ======================================================================


class TestPermissionRule:
    """测试规则解析与匹配"""

    def test_parse_tool_only(self):
        """测试只有工具名的规则"""
        rule = PermissionRule.parse("Bash")
        assert rule.tool_name == "Bash"
        assert rule.rule_content is None
        assert rule.serialize() == "Bash"

    def test_parse_with_content(self):
        """测试带内容的规则"""
        rule = PermissionRule.parse("Bash(npm test)")
        assert rule.tool_name == "Bash"
        assert rule.rule_content == "npm test"
        assert rule.serialize() == "Bash(npm test)"

    def test_bash_rule_matches_command(self):
        """测试 Bash 规则匹配 command 字段"""
        rule = PermissionRule.parse("Bash(npm test)")
        assert rule.matches("Bash", {"command": "npm test -- --watch"})
        assert not rule.matches("Bash", {"command": "npm install"})
        assert not rule.matches("Write", {"command": "npm test"})

    def test_other_tool_matches_json_input(self):
        """测试其他工具匹配 JSON 序列化后的输入"""
        rule = PermissionRule.parse("Write(secrets)")
        assert rule.matches("Write", {"file_path": "/etc/secrets.txt"})
        assert not rule.matches("Write", {"file_path": "/tmp/notes.txt"})

    def test_matches_rule_any(self):
        """测试多条规则任一匹配"""
        rules = [PermissionRule.parse("Read"), PermissionRule.parse("Bash(ls)")]
        assert matches_rule(rules, "Read", {})
        assert matches_rule(rules, "Bash", {"command": "ls -la"})
        assert not matches_rule(rules, "Bash", {"command": "rm -rf /"})


# ======================================================================
# 权限模式测试
# ======================================================================


class TestPermissionModes:
    """测试各模式的决策"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", [PermissionMode.BYPASS_PERMISSIONS, PermissionMode.DONT_ASK])
    async def test_bypass_modes_allow_everything(self, mode):
        """测试 bypass / dont_ask 放行一切，包括 deny 规则"""
        callback = AsyncMock(return_value=PermissionDeny(message="no"))
        manager = PermissionManager(mode, can_use_tool=callback, deny_rules=["Bash"])
        decision = await manager.check("Bash", {"command": "rm -rf /"}, "id")
        assert isinstance(decision, PermissionAllow)
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_plan_mode(self):
        """测试 plan 模式只放行只读工具"""
        manager = PermissionManager(PermissionMode.PLAN, allow_rules=["Write"])
        assert (await manager.check("Read", {})).behavior == "allow"
        assert (await manager.check("Grep", {})).behavior == "allow"

        decision = await manager.check("Write", {"file_path": "a.txt"})
        assert decision.behavior == "deny"
        assert "plan mode" in decision.message

    @pytest.mark.asyncio
    async def test_delegate_mode(self):
        """测试 delegate 模式放行只读工具与 Task 工具"""
        manager = PermissionManager(PermissionMode.DELEGATE)
        for name in ("Task", "TaskOutput", "TaskStop", "Glob"):
            assert (await manager.check(name, {})).behavior == "allow"
        assert (await manager.check("Bash", {"command": "ls"})).behavior == "deny"

    @pytest.mark.asyncio
    async def test_accept_edits_mode(self):
        """测试 accept_edits 放行编辑工具与文件系统命令"""
        callback = AsyncMock(return_value=PermissionDeny(message="asked"))
        manager = PermissionManager(PermissionMode.ACCEPT_EDITS, can_use_tool=callback)

        assert (await manager.check("Edit", {})).behavior == "allow"
        assert (await manager.check("Bash", {"command": "mkdir build"})).behavior == "allow"
        assert (await manager.check("Bash", {"command": "  touch a.txt"})).behavior == "allow"
        callback.assert_not_called()

        # 非文件系统命令交给回调
        decision = await manager.check("Bash", {"command": "curl example.com"})
        assert decision.behavior == "deny"
        callback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rmdir_is_not_rm(self):
        """测试命令前缀按完整单词匹配"""
        callback = AsyncMock(return_value=PermissionDeny(message="asked"))
        manager = PermissionManager(PermissionMode.ACCEPT_EDITS, can_use_tool=callback)
        assert (await manager.check("Bash", {"command": "rmdir x"})).behavior == "deny"

    @pytest.mark.asyncio
    async def test_default_mode_without_callback_allows(self):
        """测试 default 模式无回调时放行"""
        manager = PermissionManager()
        assert (await manager.check("Bash", {"command": "ls"})).behavior == "allow"

    @pytest.mark.asyncio
    async def test_default_mode_consults_callback(self):
        """测试 default 模式调用回调，安全工具不调用"""
        callback = AsyncMock(return_value=PermissionAllow(updated_input={"command": "ls -l"}))
        manager = PermissionManager(can_use_tool=callback)

        await manager.check("Read", {"file_path": "x"}, "id-1")
        callback.assert_not_called()

        decision = await manager.check("Bash", {"command": "ls"}, "id-2")
        callback.assert_awaited_once_with("Bash", {"command": "ls"}, "id-2")
        assert decision.updated_input == {"command": "ls -l"}


# ======================================================================
# 规则优先级测试
# ======================================================================


class TestRulePrecedence:
    """测试 deny > allow > 回调"""

    @pytest.mark.asyncio
    async def test_deny_beats_allow(self):
        """测试同时匹配时 deny 优先"""
        manager = PermissionManager(allow_rules=["Bash"], deny_rules=["Bash(rm)"])
        assert (await manager.check("Bash", {"command": "ls"})).behavior == "allow"

        decision = await manager.check("Bash", {"command": "rm -rf /"})
        assert decision.behavior == "deny"
        assert "denied by permissions config" in decision.message

    @pytest.mark.asyncio
    async def test_deny_beats_safe_set(self):
        """测试 deny 规则对安全工具同样生效"""
        manager = PermissionManager(deny_rules=["Read(.env)"])
        assert (await manager.check("Read", {"file_path": ".env"})).behavior == "deny"

    @pytest.mark.asyncio
    async def test_allow_rule_skips_callback(self):
        """测试 allow 规则命中时不调用回调"""
        callback = AsyncMock(return_value=PermissionDeny(message="no"))
        manager = PermissionManager(can_use_tool=callback, allow_rules=["Bash(npm test)"])

        assert (await manager.check("Bash", {"command": "npm test"})).behavior == "allow"
        callback.assert_not_called()
        assert (await manager.check("Bash", {"command": "npm publish"})).behavior == "deny"

    @pytest.mark.asyncio
    async def test_set_mode(self):
        """测试运行中切换模式"""
        manager = PermissionManager(PermissionMode.PLAN)
        assert (await manager.check("Write", {})).behavior == "deny"

        manager.set_mode("bypass_permissions")
        assert manager.mode == PermissionMode.BYPASS_PERMISSIONS
        assert (await manager.check("Write", {})).behavior == "allow"

    def test_invalid_mode_rejected(self):
        """测试未知模式报错"""
        with pytest.raises(ValueError):
            PermissionManager("yolo")


# ======================================================================
# SettingsManager 测试
# ======================================================================


class TestSettingsManager:
    """测试从配置文件加载规则"""

    def _write(self, path, data):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data), encoding="utf-8")

    def test_load_rules_from_sources(self, tmp_path):
        """测试按来源顺序合并规则"""
        home = tmp_path / "home"
        cwd = tmp_path / "project"
        self._write(home / "settings.json", {"permissions": {"allow": ["Read"]}})
        self._write(
            cwd / ".agent-runtime" / "settings.json",
            {"permissions": {"allow": ["Bash(npm test)"], "deny": ["Bash(rm)"]}},
        )
        self._write(
            cwd / ".agent-runtime" / "settings.local.json",
            {"permissions": {"deny": ["Write"]}},
        )

        manager = SettingsManager(cwd, home_dir=home)
        allow, deny = manager.load_rules(["user", "project", "local"])

        assert [r.serialize() for r in allow] == ["Read", "Bash(npm test)"]
        assert [r.serialize() for r in deny] == ["Bash(rm)", "Write"]

    def test_only_requested_sources(self, tmp_path):
        """测试只读取指定来源"""
        home = tmp_path / "home"
        self._write(home / "settings.json", {"permissions": {"allow": ["Read"]}})
        manager = SettingsManager(tmp_path, home_dir=home)
        assert manager.load_rules(["project"]) == ([], [])

    def test_missing_and_malformed_files(self, tmp_path):
        """测试缺失或损坏的文件被忽略"""
        cwd = tmp_path
        (cwd / ".agent-runtime").mkdir()
        (cwd / ".agent-runtime" / "settings.json").write_text("{not json", encoding="utf-8")
        self._write(cwd / ".agent-runtime" / "settings.local.json", {"permissions": {"allow": [1, "Glob"]}})

        manager = SettingsManager(cwd, home_dir=tmp_path / "nohome")
        allow, deny = manager.load_rules(["user", "project", "local"])
        assert [r.tool_name for r in allow] == ["Glob"]
        assert deny == []
