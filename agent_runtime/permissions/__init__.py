from agent_runtime.permissions.manager import (
    DELEGATE_TOOLS,
    EDIT_TOOLS,
    SAFE_TOOLS,
    CanUseTool,
    PermissionAllow,
    PermissionDecision,
    PermissionDeny,
    PermissionManager,
    PermissionMode,
    PermissionRule,
    matches_rule,
)
from agent_runtime.permissions.settings import SettingSource, SettingsManager

__all__ = [
    "DELEGATE_TOOLS",
    "EDIT_TOOLS",
    "SAFE_TOOLS",
    "CanUseTool",
    "PermissionAllow",
    "PermissionDecision",
    "PermissionDeny",
    "PermissionManager",
    "PermissionMode",
    "PermissionRule",
    "SettingSource",
    "SettingsManager",
    "matches_rule",
]
