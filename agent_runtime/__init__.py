"""
agent-runtime: an embeddable asyncio runtime for tool-using agents.
"""

from agent_runtime.agent import (
    AgentEvent,
    AgentLoopOptions,
    InitEvent,
    Query,
    QueryOptions,
    ResultEvent,
    ResultSubtype,
    StreamEvent,
    TextEvent,
    ToolResultEvent,
    ToolUseEvent,
    agent_loop,
    query,
)
from agent_runtime.agents import AgentDefinition, BackgroundTask, TaskManager, TaskStatus
from agent_runtime.cancellation import CancellationToken
from agent_runtime.errors import (
    AgentRuntimeError,
    ConfigurationError,
    OperationCancelled,
    ProviderError,
    ToolExecutionError,
)
from agent_runtime.hooks import HookEvent, HookInput, HookManager, HookMatcher, HookOutput
from agent_runtime.mcp import (
    McpClientManager,
    McpHttpConfig,
    McpSdkConfig,
    McpServerStatus,
    McpSseConfig,
    McpStdioConfig,
)
from agent_runtime.model import get_provider, register_provider
from agent_runtime.permissions import (
    PermissionAllow,
    PermissionDeny,
    PermissionManager,
    PermissionMode,
    PermissionRule,
)
from agent_runtime.tools import FunctionTool, LangChainTool, Tool, ToolContext, ToolRegistry, ToolResult

__all__ = [
    "AgentDefinition",
    "AgentEvent",
    "AgentLoopOptions",
    "AgentRuntimeError",
    "BackgroundTask",
    "CancellationToken",
    "ConfigurationError",
    "FunctionTool",
    "HookEvent",
    "HookInput",
    "HookManager",
    "HookMatcher",
    "HookOutput",
    "InitEvent",
    "LangChainTool",
    "McpClientManager",
    "McpHttpConfig",
    "McpSdkConfig",
    "McpServerStatus",
    "McpSseConfig",
    "McpStdioConfig",
    "OperationCancelled",
    "PermissionAllow",
    "PermissionDeny",
    "PermissionManager",
    "PermissionMode",
    "PermissionRule",
    "ProviderError",
    "Query",
    "QueryOptions",
    "ResultEvent",
    "ResultSubtype",
    "StreamEvent",
    "TaskManager",
    "TaskStatus",
    "TextEvent",
    "Tool",
    "ToolContext",
    "ToolExecutionError",
    "ToolRegistry",
    "ToolResult",
    "ToolResultEvent",
    "ToolUseEvent",
    "agent_loop",
    "get_provider",
    "query",
    "register_provider",
]
