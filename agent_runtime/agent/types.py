"""
Type definitions for the agent loop.

Includes:
- AgentEvent types yielded by the loop for real-time consumers
- ResultSubtype for the terminal outcome of a run
- AgentLoopOptions: resolved dependencies of one loop run
- QueryOptions: user-facing configuration of ``query()``
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Literal, Optional

from langchain_core.tools import BaseTool
from pydantic import BaseModel, ConfigDict, Field

from agent_runtime.agents.types import AgentDefinition
from agent_runtime.cancellation import CancellationToken
from agent_runtime.config import get_settings
from agent_runtime.hooks import HookEvent, HookManager, HookMatcher
from agent_runtime.mcp import McpClientManager, McpServerConfig
from agent_runtime.model.provider import ProviderAdapter
from agent_runtime.model.types import ContentBlock, Message, ModelUsage, TokenUsage
from agent_runtime.permissions import (
    CanUseTool,
    PermissionManager,
    PermissionMode,
    PermissionRule,
    SettingSource,
)
from agent_runtime.tools.registry import Tool, ToolRegistry

# async (role, content) -> entry id
SessionSink = Callable[[Literal["user", "assistant"], str | list[ContentBlock]], Awaitable[str]]


class ResultSubtype(str, Enum):
    SUCCESS = "success"
    ABORTED = "aborted"
    ERROR_MAX_TURNS = "error_max_turns"
    ERROR_MAX_BUDGET = "error_max_budget"
    ERROR_EXECUTION = "error_execution"


# ============================================================================
# Agent Events (for async generator yielding)
# ============================================================================


@dataclass
class InitEvent:
    """First event of every run."""

    type: Literal["init"] = "init"
    session_id: str = ""
    model: str = ""
    provider: str = ""
    tools: list[str] = field(default_factory=list)
    cwd: str = ""
    permission_mode: str = PermissionMode.DEFAULT.value


@dataclass
class TextEvent:
    """Assistant text of one completed model turn."""

    type: Literal["text"] = "text"
    text: str = ""


@dataclass
class ToolUseEvent:
    """Emitted right before an approved tool call executes."""

    type: Literal["tool_use"] = "tool_use"
    id: str = ""
    name: str = ""
    input: Any = None


@dataclass
class ToolResultEvent:
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str = ""
    name: str = ""
    content: str = ""
    is_error: bool = False
    duration: int = 0  # milliseconds


@dataclass
class StreamEvent:
    """Incremental provider output, only when ``include_stream_events`` is set."""

    type: Literal["stream"] = "stream"
    subtype: Literal["text_delta", "thinking_delta"] = "text_delta"
    text: str = ""


@dataclass
class ResultEvent:
    """Last event of every run."""

    type: Literal["result"] = "result"
    subtype: ResultSubtype = ResultSubtype.SUCCESS
    text: str = ""
    errors: list[str] = field(default_factory=list)
    turns: int = 0
    cost_usd: float = 0.0
    duration_ms: int = 0
    duration_api_ms: int = 0
    session_id: str = ""
    stop_reason: Optional[str] = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    model_usage: dict[str, ModelUsage] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.subtype != ResultSubtype.SUCCESS


# Union type for all events
AgentEvent = InitEvent | TextEvent | ToolUseEvent | ToolResultEvent | StreamEvent | ResultEvent


# ============================================================================
# Loop Options
# ============================================================================


@dataclass
class AgentLoopOptions:
    provider: ProviderAdapter
    model: str
    tools: ToolRegistry
    permissions: PermissionManager
    session_id: str
    hooks: Optional[HookManager] = None
    system_prompt: Optional[str] = None
    cwd: str = "."
    max_turns: int = 10
    max_budget_usd: float = 0.0
    include_stream_events: bool = False
    cancel_token: Optional[CancellationToken] = None
    env: dict[str, str] = field(default_factory=dict)
    previous_messages: list[Message] = field(default_factory=list)
    session_logger: Optional[SessionSink] = None
    mcp_client: Optional[McpClientManager] = None


# ============================================================================
# Query Options
# ============================================================================


def _default(name: str) -> Callable[[], Any]:
    return lambda: getattr(get_settings(), name)


class QueryOptions(BaseModel):
    """Configuration of one ``query()`` run. Unset defaults come from the environment."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    provider: str | ProviderAdapter = Field(default_factory=_default("provider"))
    model: str = Field(default_factory=_default("model"))
    cwd: str = Field(".", description="Working directory handed to tools")
    system_prompt: Optional[str] = Field(None, description="Replaces the default prompt")
    append_system_prompt: Optional[str] = Field(None, description="Appended to the prompt")
    max_turns: int = Field(default_factory=_default("max_turns"), ge=1)
    max_budget_usd: float = Field(
        default_factory=_default("max_budget_usd"), description="<= 0 disables the ceiling"
    )

    tools: list[Tool | BaseTool] = Field(default_factory=list)
    disallowed_tools: list[str] = Field(default_factory=list)
    allowed_tools: list[str] = Field(
        default_factory=list, description="Pre-approved allow rules, e.g. 'Bash(npm test)'"
    )

    permission_mode: PermissionMode = PermissionMode.DEFAULT
    can_use_tool: Optional[CanUseTool] = None
    allow_rules: list[str | PermissionRule] = Field(default_factory=list)
    deny_rules: list[str | PermissionRule] = Field(default_factory=list)
    setting_sources: list[SettingSource] = Field(
        default_factory=list, description="Settings files to read permission rules from"
    )

    hooks: dict[HookEvent, list[HookMatcher]] = Field(default_factory=dict)
    agents: dict[str, AgentDefinition] = Field(default_factory=dict)
    mcp_servers: dict[str, McpServerConfig] = Field(
        default_factory=dict, description="MCP servers whose tools are added at run start"
    )

    include_stream_events: bool = False
    session_id: Optional[str] = None
    resume: Optional[str] = Field(None, description="Session id to resume")
    continue_session: bool = Field(False, description="Resume the most recent session")
    persist_session: bool = True
    env: dict[str, str] = Field(default_factory=dict)
    cancel_token: Optional[CancellationToken] = None
