from agent_runtime.tools.registry import (
    FunctionTool,
    LangChainTool,
    Tool,
    ToolContext,
    ToolRegistry,
    ToolResult,
)

__all__ = [
    "FunctionTool",
    "LangChainTool",
    "Tool",
    "ToolContext",
    "ToolRegistry",
    "ToolResult",
]
