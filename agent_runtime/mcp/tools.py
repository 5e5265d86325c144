"""
Resource tools backed by the MCP client manager.
"""

from typing import Any

from agent_runtime.mcp.client import McpClientManager
from agent_runtime.tools.registry import Tool, ToolContext, ToolResult


class ListMcpResourcesTool(Tool):
    name = "mcp__list_resources"
    description = "List available resources from MCP servers."
    input_schema = {
        "type": "object",
        "properties": {
            "server": {
                "type": "string",
                "description": "Optional server name to filter by. If omitted, lists resources from all servers.",
            },
        },
    }

    def __init__(self, manager: McpClientManager) -> None:
        self.manager = manager

    async def execute(self, input: Any, ctx: ToolContext) -> ToolResult:
        server = (input or {}).get("server")
        try:
            resources = await self.manager.list_resources(server)
        except Exception as e:
            return ToolResult(content=f"Error listing resources: {e}", is_error=True)

        if not resources:
            return ToolResult(content="No resources available.")
        lines = [
            f"[{r.server}] {r.uri} - {r.name}" + (f": {r.description}" if r.description else "")
            for r in resources
        ]
        return ToolResult(content="\n".join(lines))


class ReadMcpResourceTool(Tool):
    name = "mcp__read_resource"
    description = "Read a specific resource from an MCP server by URI."
    input_schema = {
        "type": "object",
        "properties": {
            "server": {"type": "string", "description": "The MCP server name that hosts the resource."},
            "uri": {"type": "string", "description": "The resource URI to read."},
        },
        "required": ["server", "uri"],
    }

    def __init__(self, manager: McpClientManager) -> None:
        self.manager = manager

    async def execute(self, input: Any, ctx: ToolContext) -> ToolResult:
        input = input or {}
        server, uri = input.get("server"), input.get("uri")
        if not server or not uri:
            return ToolResult(content="Both 'server' and 'uri' are required.", is_error=True)
        try:
            content = await self.manager.read_resource(server, uri)
        except Exception as e:
            return ToolResult(content=f"Error reading resource: {e}", is_error=True)
        return ToolResult(content=content)


def create_mcp_resource_tools(manager: McpClientManager) -> list[Tool]:
    return [ListMcpResourcesTool(manager), ReadMcpResourceTool(manager)]
