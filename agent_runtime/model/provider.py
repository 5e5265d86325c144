"""
Provider adapter contract.

A provider turns a conversation into a lazy, finite stream of normalized
chunks. The loop never sees a provider's wire format, only these chunks:

- TextDelta / ThinkingDelta: incremental output
- ToolCallChunk: a complete tool invocation with parsed input
- UsageChunk: token usage for the call
- DoneChunk: terminal chunk with the stop reason

Failures are raised, never yielded.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Literal, Optional, Protocol, runtime_checkable

from agent_runtime.cancellation import CancellationToken
from agent_runtime.errors import ConfigurationError
from agent_runtime.model.types import Message, TokenUsage
from agent_runtime.utils.logger import get_logger

log = get_logger(__name__)

StopReason = Literal["end_turn", "tool_use", "max_tokens", "stop_sequence"]


# ============================================================================
# Request
# ============================================================================


@dataclass
class ToolDefinition:
    name: str
    description: str
    input_schema: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatRequest:
    model: str
    messages: list[Message]
    tools: Optional[list[ToolDefinition]] = None
    system_prompt: Optional[str] = None
    max_tokens: Optional[int] = None
    cancel_token: Optional[CancellationToken] = None


# ============================================================================
# Stream Chunks
# ============================================================================


@dataclass
class TextDelta:
    type: Literal["text_delta"] = "text_delta"
    text: str = ""


@dataclass
class ThinkingDelta:
    type: Literal["thinking_delta"] = "thinking_delta"
    text: str = ""


@dataclass
class ToolCallChunk:
    type: Literal["tool_call"] = "tool_call"
    id: str = ""
    name: str = ""
    input: Any = None


@dataclass
class UsageChunk:
    type: Literal["usage"] = "usage"
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class DoneChunk:
    type: Literal["done"] = "done"
    stop_reason: StopReason = "end_turn"


ChatChunk = TextDelta | ThinkingDelta | ToolCallChunk | UsageChunk | DoneChunk


@runtime_checkable
class ProviderAdapter(Protocol):
    """What the orchestration loop needs from a model provider."""

    name: str

    def chat(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        """Stream one model response. Must honor ``request.cancel_token``."""
        ...

    def calculate_cost(self, model: str, usage: TokenUsage) -> float:
        """Monetary cost (USD) of ``usage`` on ``model``."""
        ...


# ============================================================================
# Provider Registry
# ============================================================================

_providers: dict[str, ProviderAdapter] = {}

# Names served by the LangChain ChatOpenAI adapter
OPENAI_COMPATIBLE = {"openai", "openrouter"}


def register_provider(name: str, adapter: ProviderAdapter) -> None:
    _providers[name] = adapter
    log.debug(f"Registered provider '{name}'")


def get_provider(
    name: str,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
) -> ProviderAdapter:
    """
    Resolve a provider by name.

    Registered adapters win. OpenAI-compatible names are created lazily; when
    explicit credentials are given a fresh, uncached adapter is returned.
    """
    if api_key is None and base_url is None and name in _providers:
        return _providers[name]

    if name in OPENAI_COMPATIBLE:
        from agent_runtime.model.llm import LangChainProvider

        adapter = LangChainProvider(name=name, api_key=api_key, base_url=base_url)
        if api_key is None and base_url is None:
            _providers[name] = adapter
        return adapter

    raise ConfigurationError(
        f'Unknown provider: "{name}". Register it with register_provider() first.'
    )


def list_providers() -> list[str]:
    return list(_providers.keys())
