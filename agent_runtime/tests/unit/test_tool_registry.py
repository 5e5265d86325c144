"""
单元测试用于测试 tools/registry.py 模块

测试覆盖：
- 注册、查询、子集
- 执行：成功、未知工具、异常、取消
- LangChain 工具包装
"""

import asyncio
from typing import Any

import pytest
from langchain_core.tools import tool
from pydantic import BaseModel

from agent_runtime.cancellation import CancellationToken
from agent_runtime.errors import OperationCancelled, ToolExecutionError
from agent_runtime.tools.registry import (
    FunctionTool,
    LangChainTool,
    ToolContext,
    ToolRegistry,
    ToolResult,
    format_tool_output,
)


@tool
def add_numbers(a: int, b: int) -> int:
    """Add two integers."""
    return a + b


@pytest.fixture
def ctx() -> ToolContext:
    return ToolContext(cwd=".", cancel_token=CancellationToken(), session_id="s")


def make_tool(name: str, fn) -> FunctionTool:
    return FunctionTool(name=name, description=f"{name} tool", fn=fn)


class TestToolRegistry:
    """测试注册与查询"""

    def test_register_and_list(self, echo_tool):
        """测试注册后可查询"""
        registry = ToolRegistry([echo_tool])
        assert registry.has("echo")
        assert registry.get("echo") is echo_tool
        assert registry.list() == ["echo"]

        definition = registry.get_definitions()[0]
        assert definition.name == "echo"
        assert definition.input_schema["required"] == ["text"]

    def test_unregister(self, echo_tool):
        """测试移除工具"""
        registry = ToolRegistry([echo_tool])
        registry.unregister("echo")
        registry.unregister("missing")
        assert registry.list() == []

    def test_subset(self, echo_tool):
        """测试按名称与排除列表取子集"""

        async def noop(input, ctx):
            return "ok"

        registry = ToolRegistry([echo_tool, make_tool("a", noop), make_tool("b", noop)])
        assert registry.subset().list() == ["echo", "a", "b"]
        assert registry.subset(["a", "missing"]).list() == ["a"]
        assert registry.subset(exclude=["echo"]).list() == ["a", "b"]
        assert registry.subset(["a", "b"], exclude=["b"]).list() == ["a"]

    def test_langchain_tool_wrapped(self):
        """测试 LangChain 工具自动包装"""
        registry = ToolRegistry([add_numbers])
        wrapped = registry.get("add_numbers")
        assert isinstance(wrapped, LangChainTool)
        assert "a" in wrapped.input_schema["properties"]
        assert wrapped.description == "Add two integers."


class TestToolRegistryExecute:
    """测试执行"""

    @pytest.mark.asyncio
    async def test_execute_success(self, echo_tool, ctx):
        """测试成功执行"""
        result = await ToolRegistry([echo_tool]).execute("echo", {"text": "hi"}, ctx)
        assert result == ToolResult(content="echo: hi")

    @pytest.mark.asyncio
    async def test_unknown_tool(self, ctx):
        """测试未知工具"""
        result = await ToolRegistry().execute("nope", {}, ctx)
        assert result.is_error
        assert result.content == "Unknown tool: nope"

    @pytest.mark.asyncio
    async def test_exception_becomes_failed_result(self, ctx):
        """测试工具异常转为失败结果"""

        async def broken(input, ctx):
            raise RuntimeError("disk full")

        result = await ToolRegistry([make_tool("broken", broken)]).execute("broken", {}, ctx)
        assert result.is_error
        assert result.content == "Tool error: disk full"

    @pytest.mark.asyncio
    async def test_tool_execution_error(self, ctx):
        """测试 ToolExecutionError 转为失败结果"""

        async def failing(input, ctx):
            raise ToolExecutionError("failing", "bad input")

        result = await ToolRegistry([make_tool("failing", failing)]).execute("failing", {}, ctx)
        assert result.is_error
        assert result.content == "Tool error: bad input"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, ctx):
        """测试取消异常不会被吞掉"""

        async def cancelled(input, ctx):
            raise OperationCancelled("stop")

        with pytest.raises(OperationCancelled):
            await ToolRegistry([make_tool("c", cancelled)]).execute("c", {}, ctx)

    @pytest.mark.asyncio
    async def test_tool_result_passthrough(self, ctx):
        """测试工具直接返回 ToolResult"""

        async def custom(input, ctx):
            return ToolResult(content="partial", is_error=True, metadata={"k": 1})

        result = await ToolRegistry([make_tool("custom", custom)]).execute("custom", {}, ctx)
        assert result.is_error
        assert result.metadata == {"k": 1}

    @pytest.mark.asyncio
    async def test_langchain_tool_execute(self, ctx):
        """测试执行 LangChain 工具"""
        result = await ToolRegistry([add_numbers]).execute("add_numbers", {"a": 2, "b": 3}, ctx)
        assert result.content == "5"

    @pytest.mark.asyncio
    async def test_context_passed(self, ctx):
        """测试工具收到执行上下文"""
        seen = []

        async def capture(input: Any, tool_ctx: ToolContext):
            seen.append(tool_ctx)
            await asyncio.sleep(0)
            return {"ok": True}

        result = await ToolRegistry([make_tool("capture", capture)]).execute("capture", None, ctx)
        assert seen == [ctx]
        assert result.content == '{"ok": true}'


class TestFormatToolOutput:
    """测试输出序列化"""

    def test_formats(self):
        """测试各类返回值的序列化"""

        class Point(BaseModel):
            x: int

        assert format_tool_output("text") == "text"
        assert format_tool_output({"a": [1, 2]}) == '{"a": [1, 2]}'
        assert format_tool_output(Point(x=1)) == '{"x":1}'
        assert format_tool_output(7) == "7"
