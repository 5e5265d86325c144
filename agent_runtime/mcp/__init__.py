from agent_runtime.mcp.client import McpClientManager, McpTool
from agent_runtime.mcp.tools import (
    ListMcpResourcesTool,
    ReadMcpResourceTool,
    create_mcp_resource_tools,
)
from agent_runtime.mcp.types import (
    McpHttpConfig,
    McpResourceInfo,
    McpSdkConfig,
    McpServerConfig,
    McpServerStatus,
    McpSseConfig,
    McpStdioConfig,
    McpToolInfo,
)

__all__ = [
    "ListMcpResourcesTool",
    "McpClientManager",
    "McpHttpConfig",
    "McpResourceInfo",
    "McpSdkConfig",
    "McpServerConfig",
    "McpServerStatus",
    "McpSseConfig",
    "McpStdioConfig",
    "McpTool",
    "McpToolInfo",
    "ReadMcpResourceTool",
    "create_mcp_resource_tools",
]
