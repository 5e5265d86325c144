"""
单元测试共享的 fixtures

- MockProvider: 按脚本依次返回响应的 provider
- text_response / tool_response: 构造脚本响应
- echo_tool: 原样返回输入文本的工具
- make_options: 构造 AgentLoopOptions
"""

import asyncio
from typing import Any, Optional

import pytest

from agent_runtime.agent.types import AgentLoopOptions
from agent_runtime.model.provider import (
    ChatRequest,
    DoneChunk,
    TextDelta,
    ToolCallChunk,
    UsageChunk,
)
from agent_runtime.model.types import TokenUsage
from agent_runtime.permissions import PermissionManager, PermissionMode
from agent_runtime.tools.registry import FunctionTool, ToolContext, ToolRegistry


def text_response(text: str) -> list:
    return [
        TextDelta(text=text),
        UsageChunk(usage=TokenUsage(input_tokens=10, output_tokens=5)),
        DoneChunk(stop_reason="end_turn"),
    ]


def tool_response(name: str, input: Any, id: str = "call_1", text: str = "") -> list:
    chunks: list = [TextDelta(text=text)] if text else []
    chunks += [
        ToolCallChunk(id=id, name=name, input=input),
        UsageChunk(usage=TokenUsage(input_tokens=10, output_tokens=5)),
        DoneChunk(stop_reason="tool_use"),
    ]
    return chunks


class MockProvider:
    """
    按顺序返回脚本中的响应

    每个响应是 chunk 列表或一个异常；脚本用完后返回 "done" 文本。
    """

    name = "mock"

    def __init__(
        self,
        responses: Optional[list] = None,
        cost_per_call: float = 0.0,
        delay: float = 0.0,
        repeat_last: bool = False,
    ):
        self.responses = list(responses or [])
        self.cost_per_call = cost_per_call
        self.delay = delay
        self.repeat_last = repeat_last
        self.requests: list[ChatRequest] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def _next_response(self):
        if not self.responses:
            return text_response("done")
        if self.repeat_last and len(self.responses) == 1:
            return self.responses[0]
        return self.responses.pop(0)

    async def chat(self, request: ChatRequest):
        self.requests.append(request)
        response = self._next_response()
        if isinstance(response, Exception):
            raise response
        for chunk in response:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk

    def calculate_cost(self, model: str, usage: TokenUsage) -> float:
        return self.cost_per_call


async def collect(events) -> list:
    return [event async for event in events]


@pytest.fixture
def echo_tool() -> FunctionTool:
    async def echo(input: Any, ctx: ToolContext) -> str:
        return f"echo: {input.get('text', '')}"

    return FunctionTool(
        name="echo",
        description="Echo the given text back.",
        fn=echo,
        input_schema={
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
    )


@pytest.fixture
def make_options():
    def _make(provider, tools=None, **overrides) -> AgentLoopOptions:
        options = dict(
            provider=provider,
            model="mock-model",
            tools=ToolRegistry(tools or []),
            permissions=PermissionManager(PermissionMode.DEFAULT),
            session_id="test-session",
            max_turns=10,
        )
        options.update(overrides)
        return AgentLoopOptions(**options)

    return _make
