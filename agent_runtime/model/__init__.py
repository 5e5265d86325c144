from agent_runtime.model.provider import (
    ChatChunk,
    ChatRequest,
    DoneChunk,
    ProviderAdapter,
    TextDelta,
    ThinkingDelta,
    ToolCallChunk,
    ToolDefinition,
    UsageChunk,
    get_provider,
    list_providers,
    register_provider,
)
from agent_runtime.model.types import (
    ContentBlock,
    Message,
    ModelUsage,
    TokenUsage,
)

__all__ = [
    "ChatChunk",
    "ChatRequest",
    "ContentBlock",
    "DoneChunk",
    "Message",
    "ModelUsage",
    "ProviderAdapter",
    "TextDelta",
    "ThinkingDelta",
    "TokenUsage",
    "ToolCallChunk",
    "ToolDefinition",
    "UsageChunk",
    "get_provider",
    "list_providers",
    "register_provider",
]
