"""
MCP client manager.

Connects to the configured MCP servers and exposes their tools to the
runtime as ``Tool`` objects named ``<prefix>__<tool>`` (prefix defaults to the
server name; an empty prefix keeps the bare tool name).

Each server connection is owned by its own asyncio task: the transport and
``ClientSession`` contexts are entered and exited in that task, and other
tasks only send requests through the session.
"""

import asyncio
from contextlib import AsyncExitStack
from typing import Any, Optional

from mcp import ClientSession, StdioServerParameters

from agent_runtime.mcp.types import (
    McpHttpConfig,
    McpResourceInfo,
    McpSdkConfig,
    McpServerConfig,
    McpServerStatus,
    McpSseConfig,
    McpToolInfo,
)
from agent_runtime.tools.registry import Tool, ToolContext, ToolResult
from agent_runtime.utils.logger import get_logger

log = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 5.0
HTTP_TIMEOUT_SECONDS = 30.0


async def _open_session(stack: AsyncExitStack, config: McpServerConfig) -> ClientSession:
    """Open the transport for ``config`` and return an initialized session."""
    if isinstance(config, McpSdkConfig):
        from mcp.shared.memory import create_connected_server_and_client_session

        # FastMCP wraps a low-level Server; the memory transport wants the latter
        server = getattr(config.instance, "_mcp_server", config.instance)
        return await stack.enter_async_context(create_connected_server_and_client_session(server))

    if isinstance(config, McpSseConfig):
        from mcp.client.sse import sse_client

        read, write = await stack.enter_async_context(
            sse_client(config.url, headers=config.headers or None)
        )
    elif isinstance(config, McpHttpConfig):
        import httpx
        from mcp.client.streamable_http import streamable_http_client

        http_client = await stack.enter_async_context(
            httpx.AsyncClient(headers=config.headers, timeout=httpx.Timeout(HTTP_TIMEOUT_SECONDS))
        )
        read, write, _ = await stack.enter_async_context(
            streamable_http_client(config.url, http_client=http_client)
        )
    else:
        from mcp.client.stdio import get_default_environment, stdio_client

        params = StdioServerParameters(
            command=config.command,
            args=config.args,
            env={**get_default_environment(), **config.env} if config.env else None,
        )
        read, write = await stack.enter_async_context(stdio_client(params))

    session = await stack.enter_async_context(ClientSession(read, write))
    await session.initialize()
    return session


class _ServerConnection:
    """One live server session, held open by a dedicated task until closed."""

    def __init__(self, name: str, config: McpServerConfig) -> None:
        self.name = name
        self.config = config
        self.session: Optional[ClientSession] = None
        self.tools: list[McpToolInfo] = []
        self._error: Optional[BaseException] = None
        self._ready = asyncio.Event()
        self._closing = asyncio.Event()
        self._runner: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self._runner = asyncio.create_task(self._run(), name=f"mcp-{self.name}")
        await self._ready.wait()
        if self.session is None:
            raise self._error or ConnectionError(f'MCP server "{self.name}" closed during startup')

    async def _run(self) -> None:
        try:
            async with AsyncExitStack() as stack:
                session = await _open_session(stack, self.config)
                listed = await session.list_tools()
                self.tools = [
                    McpToolInfo(name=t.name, description=t.description, input_schema=t.inputSchema)
                    for t in listed.tools
                ]
                self.session = session
                self._ready.set()
                await self._closing.wait()
        except Exception as e:
            self._error = e
            if self._ready.is_set():
                log.warning(f'MCP server "{self.name}" connection lost: {e}')
        finally:
            self.session = None
            self._ready.set()

    async def close(self) -> None:
        self._closing.set()
        if self._runner is None:
            return
        try:
            await asyncio.wait_for(self._runner, timeout=CLOSE_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            log.warning(f'MCP server "{self.name}" did not close in time, cancelled')


class McpTool(Tool):
    """A server tool proxied through the manager."""

    def __init__(self, manager: "McpClientManager", server: str, info: McpToolInfo, name: str) -> None:
        self.manager = manager
        self.server = server
        self.tool_name = info.name
        self.name = name
        self.description = info.description or f"MCP tool {info.name} from {server}"
        self.input_schema = info.input_schema or {"type": "object", "properties": {}}

    async def execute(self, input: Any, ctx: ToolContext) -> ToolResult:
        return await self.manager.call_tool(self.server, self.tool_name, input)


class McpClientManager:
    """Connects MCP servers and proxies their tools and resources."""

    def __init__(self, configs: dict[str, McpServerConfig]) -> None:
        self.configs = dict(configs)
        self._connections: dict[str, _ServerConnection] = {}
        self._errors: dict[str, str] = {}
        self._disabled: set[str] = set()

    async def connect_all(self) -> None:
        """Connect every enabled server not already connected. Failures are recorded, not raised."""
        pending = [
            name
            for name in self.configs
            if name not in self._disabled and not self._is_connected(name)
        ]
        await asyncio.gather(*(self._connect_one(name) for name in pending))

    async def _connect_one(self, name: str) -> None:
        connection = _ServerConnection(name, self.configs[name])
        try:
            await connection.start()
        except Exception as e:
            self._errors[name] = str(e) or type(e).__name__
            log.warning(f'Failed to connect MCP server "{name}": {self._errors[name]}')
            await connection.close()
            return
        self._errors.pop(name, None)
        self._connections[name] = connection
        log.info(f'Connected MCP server "{name}" with {len(connection.tools)} tools')

    def _is_connected(self, name: str) -> bool:
        connection = self._connections.get(name)
        return connection is not None and connection.session is not None

    def _session(self, name: str) -> Optional[ClientSession]:
        connection = self._connections.get(name)
        return connection.session if connection is not None else None

    def get_tools(self) -> list[Tool]:
        tools: list[Tool] = []
        for name, connection in self._connections.items():
            if connection.session is None:
                continue
            prefix = self.configs[name].tool_prefix
            if prefix is None:
                prefix = name
            for info in connection.tools:
                tool_name = f"{prefix}__{info.name}" if prefix else info.name
                tools.append(McpTool(self, name, info, tool_name))
        return tools

    async def call_tool(self, server: str, tool_name: str, input: Any) -> ToolResult:
        session = self._session(server)
        if session is None:
            return ToolResult(content=f'MCP server "{server}" is not connected', is_error=True)

        try:
            result = await session.call_tool(tool_name, arguments=input or {})
        except Exception as e:
            log.warning(f"MCP tool {server}/{tool_name} failed: {e}")
            return ToolResult(content=f"MCP tool error: {e}", is_error=True)

        content = "".join(getattr(item, "text", "") or "" for item in result.content)
        return ToolResult(content=content, is_error=bool(result.isError))

    async def list_resources(self, server: Optional[str] = None) -> list[McpResourceInfo]:
        names = [server] if server else list(self._connections)
        resources: list[McpResourceInfo] = []
        for name in names:
            session = self._session(name)
            if session is None:
                continue
            try:
                listed = await session.list_resources()
            except Exception as e:
                # Servers without resource support answer with an error
                log.debug(f'MCP server "{name}" does not list resources: {e}')
                continue
            resources.extend(
                McpResourceInfo(
                    server=name,
                    uri=str(r.uri),
                    name=r.name,
                    description=r.description,
                    mime_type=r.mimeType,
                )
                for r in listed.resources
            )
        return resources

    async def read_resource(self, server: str, uri: str) -> str:
        session = self._session(server)
        if session is None:
            raise ConnectionError(f'MCP server "{server}" is not connected')

        result = await session.read_resource(uri)
        parts: list[str] = []
        for item in result.contents:
            text = getattr(item, "text", None)
            if text is not None:
                parts.append(text)
            elif getattr(item, "blob", None) is not None:
                parts.append(f"[binary data: {item.mimeType or 'unknown'}]")
        return "".join(parts)

    def status(self) -> list[McpServerStatus]:
        statuses: list[McpServerStatus] = []
        for name in self.configs:
            if name in self._disabled:
                statuses.append(McpServerStatus(name=name, status="disabled"))
            elif self._is_connected(name):
                tools = self._connections[name].tools
                statuses.append(McpServerStatus(name=name, status="connected", tools=tools))
            elif name in self._errors:
                statuses.append(McpServerStatus(name=name, status="failed", error=self._errors[name]))
            else:
                statuses.append(McpServerStatus(name=name, status="pending"))
        return statuses

    async def reconnect_server(self, name: str) -> None:
        if name not in self.configs:
            raise KeyError(f'MCP server "{name}" is not configured')
        await self._close_one(name)
        await self._connect_one(name)
        if not self._is_connected(name):
            raise ConnectionError(self._errors.get(name, f'Failed to reconnect MCP server "{name}"'))

    async def toggle_server(self, name: str, enabled: bool) -> None:
        if name not in self.configs:
            raise KeyError(f'MCP server "{name}" is not configured')
        if not enabled:
            self._disabled.add(name)
            await self._close_one(name)
            return
        self._disabled.discard(name)
        await self.reconnect_server(name)

    async def _close_one(self, name: str) -> None:
        connection = self._connections.pop(name, None)
        if connection is not None:
            await connection.close()

    async def close_all(self) -> None:
        for name in list(self._connections):
            await self._close_one(name)
        self._errors.clear()
