from agent_runtime.agent.types import (
    AgentEvent,
    AgentLoopOptions,
    InitEvent,
    QueryOptions,
    ResultEvent,
    ResultSubtype,
    StreamEvent,
    TextEvent,
    ToolResultEvent,
    ToolUseEvent,
)
from agent_runtime.agent.loop import agent_loop
from agent_runtime.agent.api import Query, query

__all__ = [
    "AgentEvent",
    "AgentLoopOptions",
    "InitEvent",
    "Query",
    "QueryOptions",
    "ResultEvent",
    "ResultSubtype",
    "StreamEvent",
    "TextEvent",
    "ToolResultEvent",
    "ToolUseEvent",
    "agent_loop",
    "query",
]
