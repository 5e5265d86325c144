"""
Policy gate deciding whether a tool invocation may run.

Decision order for one invocation:
1. bypass_permissions / dont_ask: allow
2. deny rules
3. plan / delegate mode restrictions
4. allow rules
5. the safe set
6. accept_edits: the edit set and filesystem Bash commands
7. the ``can_use_tool`` callback, else allow
"""

import json
from enum import Enum
from typing import Any, Awaitable, Callable, Literal, Optional

from pydantic import BaseModel, Field

from agent_runtime.utils.logger import get_logger

log = get_logger(__name__)


SAFE_TOOLS = frozenset({"Read", "Glob", "Grep", "WebFetch", "WebSearch"})
EDIT_TOOLS = frozenset({"Write", "Edit", "NotebookEdit", "TodoWrite", "Config"})
DELEGATE_TOOLS = frozenset({"Task", "TaskOutput", "TaskStop"})
FS_COMMANDS = ("mkdir", "touch", "rm", "mv", "cp")


class PermissionMode(str, Enum):
    DEFAULT = "default"
    ACCEPT_EDITS = "accept_edits"
    BYPASS_PERMISSIONS = "bypass_permissions"
    DONT_ASK = "dont_ask"
    PLAN = "plan"
    DELEGATE = "delegate"


# ============================================================================
# Decisions
# ============================================================================


class PermissionAllow(BaseModel):
    behavior: Literal["allow"] = "allow"
    updated_input: Any = Field(
        default=None, description="Replacement tool input, None keeps the original"
    )


class PermissionDeny(BaseModel):
    behavior: Literal["deny"] = "deny"
    message: str = Field(..., description="Reason reported back to the model")
    interrupt: bool = Field(False, description="Abort the whole run, not just this call")


PermissionDecision = PermissionAllow | PermissionDeny

# async (tool_name, tool_input, tool_use_id) -> decision
CanUseTool = Callable[[str, Any, str], Awaitable[PermissionDecision]]


# ============================================================================
# Rules
# ============================================================================


class PermissionRule(BaseModel):
    """
    Static allow/deny rule.

    ``"Bash"`` matches every Bash call, ``"Bash(npm test)"`` only calls whose
    command contains ``npm test``.
    """

    tool_name: str
    rule_content: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> "PermissionRule":
        raw = raw.strip()
        if raw.endswith(")") and "(" in raw:
            name, _, content = raw[:-1].partition("(")
            return cls(tool_name=name.strip(), rule_content=content or None)
        return cls(tool_name=raw)

    def serialize(self) -> str:
        if self.rule_content:
            return f"{self.tool_name}({self.rule_content})"
        return self.tool_name

    def matches(self, tool_name: str, tool_input: Any) -> bool:
        if self.tool_name != tool_name:
            return False
        if not self.rule_content:
            return True
        return self.rule_content in _rule_subject(tool_name, tool_input)


def _rule_subject(tool_name: str, tool_input: Any) -> str:
    if tool_name == "Bash":
        command = tool_input.get("command") if isinstance(tool_input, dict) else None
        return str(command or "")
    return json.dumps(tool_input if tool_input is not None else {}, default=str)


def _normalize_rules(rules: Optional[list[str | PermissionRule]]) -> list[PermissionRule]:
    return [PermissionRule.parse(r) if isinstance(r, str) else r for r in rules or []]


def matches_rule(rules: list[PermissionRule], tool_name: str, tool_input: Any) -> bool:
    return any(rule.matches(tool_name, tool_input) for rule in rules)


def _is_fs_command(tool_input: Any) -> bool:
    command = tool_input.get("command") if isinstance(tool_input, dict) else None
    command = str(command or "").lstrip()
    return any(command == c or command.startswith(c + " ") for c in FS_COMMANDS)


# ============================================================================
# Manager
# ============================================================================


class PermissionManager:
    """
    Evaluates permission mode, static rules and the caller callback.

    ``check`` reads state only; the mode changes solely through ``set_mode``.
    """

    def __init__(
        self,
        mode: PermissionMode | str = PermissionMode.DEFAULT,
        can_use_tool: Optional[CanUseTool] = None,
        allow_rules: Optional[list[str | PermissionRule]] = None,
        deny_rules: Optional[list[str | PermissionRule]] = None,
    ) -> None:
        self._mode = PermissionMode(mode)
        self.can_use_tool = can_use_tool
        self.allow_rules = _normalize_rules(allow_rules)
        self.deny_rules = _normalize_rules(deny_rules)

    @property
    def mode(self) -> PermissionMode:
        return self._mode

    def set_mode(self, mode: PermissionMode | str) -> None:
        self._mode = PermissionMode(mode)
        log.info(f"Permission mode set to {self._mode.value}")

    async def check(
        self,
        tool_name: str,
        tool_input: Any,
        tool_use_id: str = "",
    ) -> PermissionDecision:
        mode = self._mode

        if mode in (PermissionMode.BYPASS_PERMISSIONS, PermissionMode.DONT_ASK):
            return PermissionAllow()

        if matches_rule(self.deny_rules, tool_name, tool_input):
            return PermissionDeny(message=f'Tool "{tool_name}" is denied by permissions config.')

        if mode == PermissionMode.PLAN:
            if tool_name in SAFE_TOOLS:
                return PermissionAllow()
            return PermissionDeny(
                message=f'Tool "{tool_name}" is not allowed in plan mode. '
                "Only read-only tools are available."
            )

        if mode == PermissionMode.DELEGATE:
            if tool_name in SAFE_TOOLS or tool_name in DELEGATE_TOOLS:
                return PermissionAllow()
            return PermissionDeny(
                message=f'Tool "{tool_name}" is not allowed in delegate mode. '
                "Only Task tools and read-only tools are available."
            )

        if matches_rule(self.allow_rules, tool_name, tool_input):
            return PermissionAllow()

        if tool_name in SAFE_TOOLS:
            return PermissionAllow()

        if mode == PermissionMode.ACCEPT_EDITS:
            if tool_name in EDIT_TOOLS:
                return PermissionAllow()
            if tool_name == "Bash" and _is_fs_command(tool_input):
                return PermissionAllow()

        if self.can_use_tool is not None:
            decision = await self.can_use_tool(tool_name, tool_input, tool_use_id)
            if decision.behavior == "deny":
                log.debug(f"can_use_tool denied {tool_name}: {decision.message}")
            return decision

        # The embedding application is responsible for anything further
        return PermissionAllow()
