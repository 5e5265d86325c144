"""
Tool registry for registering, describing and executing tools.

This module provides:
- ToolResult / ToolContext: what a tool returns and what it receives
- Tool: base class for native tools
- FunctionTool: wrap a plain async function as a tool
- LangChainTool: wrap any LangChain ``BaseTool`` (e.g. ``@tool`` functions)
- ToolRegistry: name -> tool map that never raises on tool failure
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from langchain_core.tools import BaseTool
from pydantic import BaseModel, Field

from agent_runtime.cancellation import CancellationToken
from agent_runtime.errors import OperationCancelled, ToolExecutionError
from agent_runtime.model.provider import ToolDefinition
from agent_runtime.utils.logger import get_logger

log = get_logger(__name__)


class ToolResult(BaseModel):
    content: str = Field(..., description="Result text reported back to the model")
    is_error: bool = Field(False, description="Whether the tool failed")
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Extra data for the runtime, not sent to the model"
    )


@dataclass
class ToolContext:
    cwd: str
    cancel_token: CancellationToken
    session_id: str
    env: dict[str, str] = field(default_factory=dict)


def format_tool_output(raw: Any) -> str:
    """Serialize whatever a tool returned into result text."""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, BaseModel):
        return raw.model_dump_json()
    try:
        return json.dumps(raw, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(raw)


# ======================================================================
## Tool Implementations
# ======================================================================


class Tool(ABC):
    """Base class for tools executed by the runtime."""

    name: str
    description: str
    input_schema: dict[str, Any]

    @abstractmethod
    async def execute(self, input: Any, ctx: ToolContext) -> ToolResult:
        pass

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
        )


class FunctionTool(Tool):
    """
    Adapts ``async def fn(input, ctx)`` into a tool.

    The function may return a ``ToolResult`` or any value, which is then
    serialized as the result text.
    """

    def __init__(
        self,
        name: str,
        description: str,
        fn: Callable[[Any, ToolContext], Awaitable[Any]],
        input_schema: Optional[dict[str, Any]] = None,
    ) -> None:
        self.name = name
        self.description = description
        self.input_schema = input_schema or {"type": "object", "properties": {}}
        self._fn = fn

    async def execute(self, input: Any, ctx: ToolContext) -> ToolResult:
        raw = await self._fn(input, ctx)
        if isinstance(raw, ToolResult):
            return raw
        return ToolResult(content=format_tool_output(raw))


class LangChainTool(Tool):
    """Runs a LangChain tool through ``ainvoke``."""

    def __init__(self, tool: BaseTool) -> None:
        self.tool = tool
        self.name = tool.name
        self.description = tool.description
        self.input_schema = tool.get_input_schema().model_json_schema()

    async def execute(self, input: Any, ctx: ToolContext) -> ToolResult:
        raw = await self.tool.ainvoke(input if input is not None else {})
        return ToolResult(content=format_tool_output(raw))


# ======================================================================
## Registry
# ======================================================================


class ToolRegistry:
    def __init__(self, tools: Optional[list[Tool | BaseTool]] = None) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool | BaseTool) -> None:
        if isinstance(tool, BaseTool):
            tool = LangChainTool(tool)
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list(self) -> list[str]:
        return list(self._tools.keys())

    def get_definitions(self) -> list[ToolDefinition]:
        return [tool.definition() for tool in self._tools.values()]

    def subset(
        self,
        names: Optional[list[str]] = None,
        exclude: Optional[list[str]] = None,
    ) -> "ToolRegistry":
        """A new registry holding ``names`` (all when None) minus ``exclude``."""
        excluded = set(exclude or [])
        selected = names if names is not None else self.list()
        return ToolRegistry(
            [self._tools[n] for n in selected if n in self._tools and n not in excluded]
        )

    async def execute(self, name: str, input: Any, ctx: ToolContext) -> ToolResult:
        """
        Execute a tool by name.

        Failures are returned as ``is_error`` results; only cancellation
        propagates.
        """
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(content=f"Unknown tool: {name}", is_error=True)

        start_time = time.time()
        try:
            result = await tool.execute(input, ctx)
        except OperationCancelled:
            raise
        except ToolExecutionError as e:
            log.warning(f"Tool {name} failed: {e}")
            return ToolResult(content=f"Tool error: {e}", is_error=True)
        except Exception as e:
            log.error(f"Tool {name} raised {type(e).__name__}: {e}")
            return ToolResult(content=f"Tool error: {e}", is_error=True)

        duration = int((time.time() - start_time) * 1000)
        log.debug(
            f"Tool {name} finished in {duration}ms "
            f"(is_error={result.is_error}, result_len={len(result.content)})"
        )
        return result
