"""
单元测试用于测试 mcp/ 模块

测试覆盖：
- 连接进程内 MCP server，工具以 server__tool 命名注册
- 工具调用、资源列表与读取
- 连接失败、禁用与重连
- 循环启动时注册 MCP 工具，query() 结束时关闭连接
"""

from unittest.mock import patch

import pytest
import pytest_asyncio
from mcp.server.fastmcp import FastMCP

from agent_runtime.agent.api import query
from agent_runtime.agent.loop import agent_loop
from agent_runtime.agent.types import InitEvent, QueryOptions, ToolResultEvent
from agent_runtime.cancellation import CancellationToken
from agent_runtime.mcp import (
    McpClientManager,
    McpSdkConfig,
    McpStdioConfig,
    create_mcp_resource_tools,
)
from agent_runtime.tools.registry import ToolContext, ToolRegistry

from conftest import MockProvider, collect, text_response, tool_response


def build_server() -> FastMCP:
    server = FastMCP("calc")

    @server.tool()
    def add(a: int, b: int) -> int:
        """Add two integers."""
        return a + b

    @server.resource("note://readme")
    def readme() -> str:
        """Project notes."""
        return "hello from notes"

    return server


@pytest_asyncio.fixture
async def manager():
    manager = McpClientManager({"calc": McpSdkConfig(name="calc", instance=build_server())})
    yield manager
    await manager.close_all()


@pytest.fixture
def ctx() -> ToolContext:
    return ToolContext(cwd=".", cancel_token=CancellationToken(), session_id="s")


# ======================================================================
# 连接与工具测试
# ======================================================================


class TestMcpClientManager:
    """测试连接管理与工具代理"""

    @pytest.mark.asyncio
    async def test_connect_and_list_tools(self, manager):
        """测试连接后工具以 server__tool 命名"""
        assert manager.status()[0].status == "pending"

        await manager.connect_all()

        status = manager.status()[0]
        assert status.status == "connected"
        assert [t.name for t in status.tools] == ["add"]

        tools = manager.get_tools()
        assert [t.name for t in tools] == ["calc__add"]
        assert tools[0].description == "Add two integers."
        assert set(tools[0].input_schema["properties"]) == {"a", "b"}

    @pytest.mark.asyncio
    async def test_call_tool_through_registry(self, manager, ctx):
        """测试通过注册表调用 MCP 工具"""
        await manager.connect_all()
        registry = ToolRegistry(manager.get_tools())

        result = await registry.execute("calc__add", {"a": 2, "b": 3}, ctx)
        assert not result.is_error
        assert result.content == "5"

    @pytest.mark.asyncio
    async def test_empty_prefix_keeps_bare_name(self):
        """测试空前缀保留原始工具名"""
        manager = McpClientManager(
            {"calc": McpSdkConfig(name="calc", instance=build_server(), tool_prefix="")}
        )
        try:
            await manager.connect_all()
            assert [t.name for t in manager.get_tools()] == ["add"]
        finally:
            await manager.close_all()

    @pytest.mark.asyncio
    async def test_connection_failure_recorded(self):
        """测试连接失败记为 failed，不抛出"""

        async def refuse(stack, config):
            raise ConnectionError("connection refused")

        manager = McpClientManager({"broken": McpStdioConfig(command="does-not-matter")})
        with patch("agent_runtime.mcp.client._open_session", refuse):
            await manager.connect_all()

        status = manager.status()[0]
        assert status.status == "failed"
        assert status.error == "connection refused"
        assert manager.get_tools() == []

        result = await manager.call_tool("broken", "anything", {})
        assert result.is_error
        assert result.content == 'MCP server "broken" is not connected'

    @pytest.mark.asyncio
    async def test_toggle_and_reconnect(self, manager):
        """测试禁用后调用失败，重新启用后恢复"""
        await manager.connect_all()

        await manager.toggle_server("calc", False)
        assert manager.status()[0].status == "disabled"
        assert manager.get_tools() == []
        result = await manager.call_tool("calc", "add", {"a": 1, "b": 1})
        assert result.is_error

        # 禁用的 server 不会被 connect_all 连接
        await manager.connect_all()
        assert manager.status()[0].status == "disabled"

        await manager.toggle_server("calc", True)
        assert manager.status()[0].status == "connected"
        result = await manager.call_tool("calc", "add", {"a": 1, "b": 1})
        assert result.content == "2"

    @pytest.mark.asyncio
    async def test_unknown_server_controls(self, manager):
        """测试未配置的 server"""
        with pytest.raises(KeyError):
            await manager.reconnect_server("ghost")
        with pytest.raises(KeyError):
            await manager.toggle_server("ghost", True)

    @pytest.mark.asyncio
    async def test_close_all(self, manager):
        """测试关闭后状态回到 pending"""
        await manager.connect_all()
        await manager.close_all()
        assert manager.status()[0].status == "pending"
        assert manager.get_tools() == []


# ======================================================================
# 资源工具测试
# ======================================================================


class TestMcpResourceTools:
    """测试资源列表与读取"""

    @pytest.mark.asyncio
    async def test_list_and_read(self, manager, ctx):
        """测试列出并读取资源"""
        await manager.connect_all()
        list_tool, read_tool = create_mcp_resource_tools(manager)

        listed = await list_tool.execute({}, ctx)
        assert listed.content.startswith("[calc] note://readme - ")

        read = await read_tool.execute({"server": "calc", "uri": "note://readme"}, ctx)
        assert not read.is_error
        assert read.content == "hello from notes"

    @pytest.mark.asyncio
    async def test_list_without_servers(self, ctx):
        """测试没有可用 server 时的提示"""
        list_tool, _ = create_mcp_resource_tools(McpClientManager({}))
        result = await list_tool.execute({}, ctx)
        assert result.content == "No resources available."

    @pytest.mark.asyncio
    async def test_read_requires_server_and_uri(self, manager, ctx):
        """测试缺少参数"""
        _, read_tool = create_mcp_resource_tools(manager)
        result = await read_tool.execute({"uri": "note://readme"}, ctx)
        assert result.is_error
        assert result.content == "Both 'server' and 'uri' are required."

    @pytest.mark.asyncio
    async def test_read_from_disconnected_server(self, manager, ctx):
        """测试读取未连接 server 的资源"""
        _, read_tool = create_mcp_resource_tools(manager)
        result = await read_tool.execute({"server": "calc", "uri": "note://readme"}, ctx)
        assert result.is_error
        assert result.content == 'Error reading resource: MCP server "calc" is not connected'


# ======================================================================
# 与循环集成测试
# ======================================================================


class TestMcpInLoop:
    """测试运行启动时注册 MCP 工具"""

    @pytest.mark.asyncio
    async def test_loop_registers_mcp_tools(self, manager, make_options):
        """测试首轮之前注册工具，模型可调用"""
        provider = MockProvider(
            [tool_response("calc__add", {"a": 20, "b": 22}), text_response("42")]
        )
        options = make_options(provider, mcp_client=manager)
        events = await collect(agent_loop("Add", options))

        init = events[0]
        assert isinstance(init, InitEvent)
        assert init.tools == ["calc__add", "mcp__list_resources", "mcp__read_resource"]
        assert [t.name for t in provider.requests[0].tools] == init.tools

        results = [e for e in events if isinstance(e, ToolResultEvent)]
        assert results[0].content == "42"
        assert events[-1].text == "42"

    @pytest.mark.asyncio
    async def test_query_closes_servers(self, tmp_path, monkeypatch):
        """测试 query() 运行结束后关闭 MCP 连接"""
        monkeypatch.setenv("AGENT_RUNTIME_HOME", str(tmp_path))
        provider = MockProvider([tool_response("calc__add", {"a": 1, "b": 2}), text_response("3")])
        q = query(
            "Add",
            QueryOptions(
                provider=provider,
                model="mock-model",
                mcp_servers={"calc": McpSdkConfig(name="calc", instance=build_server())},
            ),
        )
        events = await collect(q)

        results = [e for e in events if isinstance(e, ToolResultEvent)]
        assert results[0].content == "3"
        assert [s.status for s in q.mcp_server_status()] == ["pending"]

    def test_query_without_mcp(self):
        """测试未配置 MCP 时状态为空"""
        q = query("Hi", QueryOptions(provider=MockProvider(), model="mock-model"))
        assert q.mcp_client is None
        assert q.mcp_server_status() == []
