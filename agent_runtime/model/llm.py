"""
LangChain-backed provider adapter.

Wraps ``ChatOpenAI`` (OpenAI or any OpenAI-compatible endpoint such as
OpenRouter) and translates between the runtime's conversation/chunk types and
LangChain messages.

Environment:
- OPENAI_API_KEY: API key (required unless passed explicitly)
- OPENAI_BASE_URL: endpoint override
"""

import os
import uuid
from typing import Any, AsyncIterator, Optional

from dotenv import load_dotenv
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field

from agent_runtime.errors import ConfigurationError, ProviderError
from agent_runtime.model.provider import (
    ChatChunk,
    ChatRequest,
    DoneChunk,
    StopReason,
    TextDelta,
    ThinkingDelta,
    ToolCallChunk,
    ToolDefinition,
    UsageChunk,
)
from agent_runtime.model.types import Message, TokenUsage
from agent_runtime.utils.logger import get_logger

load_dotenv()

log = get_logger(__name__)

DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
}

FINISH_REASONS: dict[str, StopReason] = {
    "stop": "end_turn",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
    "length": "max_tokens",
    "content_filter": "stop_sequence",
}


class ModelPricing(BaseModel):
    """Per-million-token prices for one model, supplied by the caller."""

    input_per_million: float = Field(..., description="USD per 1M input tokens")
    output_per_million: float = Field(..., description="USD per 1M output tokens")
    cache_read_per_million: Optional[float] = Field(
        None, description="USD per 1M cache-read tokens, defaults to input price"
    )
    cache_write_per_million: Optional[float] = Field(
        None, description="USD per 1M cache-write tokens, defaults to input price"
    )


def _get_chat_llm(
    model: str,
    api_key: Optional[str],
    base_url: Optional[str],
    timeout: float,
) -> ChatOpenAI:
    """初始化并配置 LangChain ChatOpenAI 实例"""
    api_key = api_key or os.getenv("OPENAI_API_KEY", "")
    if not api_key:
        raise ConfigurationError("OPENAI_API_KEY environment variable is not set.")

    return ChatOpenAI(
        model=model,
        api_key=api_key,
        base_url=base_url,
        timeout=timeout,
        stream_usage=True,
    )


def to_langchain_messages(
    messages: list[Message],
    system_prompt: Optional[str] = None,
) -> list[BaseMessage]:
    """Convert a runtime conversation into LangChain messages."""
    converted: list[BaseMessage] = []

    if system_prompt:
        converted.append(SystemMessage(content=system_prompt))

    for message in messages:
        if isinstance(message.content, str):
            if message.role == "user":
                converted.append(HumanMessage(content=message.content))
            else:
                converted.append(AIMessage(content=message.content))
            continue

        if message.role == "assistant":
            text = "".join(b.text or "" for b in message.content if b.type == "text")
            tool_calls = [
                {
                    "id": b.id,
                    "name": b.name,
                    "args": b.input if isinstance(b.input, dict) else {"input": b.input},
                    "type": "tool_call",
                }
                for b in message.content
                if b.type == "tool_use"
            ]
            converted.append(AIMessage(content=text, tool_calls=tool_calls))
            continue

        # Tool results must directly follow the assistant turn that requested them
        texts: list[str] = []
        for block in message.content:
            if block.type == "tool_result":
                converted.append(
                    ToolMessage(
                        content=block.content or "",
                        tool_call_id=block.tool_use_id or "",
                        status="error" if block.is_error else "success",
                    )
                )
            elif block.type == "text" and block.text:
                texts.append(block.text)
        if texts:
            converted.append(HumanMessage(content="\n".join(texts)))

    return converted


def to_openai_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema or {"type": "object", "properties": {}},
            },
        }
        for tool in tools
    ]


def _split_content(chunk: AIMessageChunk) -> tuple[str, str]:
    """Return (text, thinking) carried by one streamed chunk."""
    text_parts: list[str] = []
    thinking_parts: list[str] = []

    content = chunk.content
    if isinstance(content, str):
        text_parts.append(content)
    elif isinstance(content, list):
        for block in content:
            if isinstance(block, str):
                text_parts.append(block)
            elif isinstance(block, dict):
                kind = block.get("type")
                if kind == "text":
                    text_parts.append(block.get("text", ""))
                elif kind in ("thinking", "reasoning"):
                    thinking_parts.append(
                        block.get("thinking") or block.get("reasoning") or ""
                    )

    reasoning = chunk.additional_kwargs.get("reasoning_content")
    if isinstance(reasoning, str):
        thinking_parts.append(reasoning)

    return "".join(text_parts), "".join(thinking_parts)


def _usage_from_metadata(metadata: Optional[dict[str, Any]]) -> TokenUsage:
    if not metadata:
        return TokenUsage()
    details = metadata.get("input_token_details") or {}
    cache_read = details.get("cache_read") or 0
    cache_creation = details.get("cache_creation") or 0
    return TokenUsage(
        input_tokens=max(0, metadata.get("input_tokens", 0) - cache_read - cache_creation),
        output_tokens=metadata.get("output_tokens", 0),
        cache_read_input_tokens=cache_read,
        cache_creation_input_tokens=cache_creation,
    )


class LangChainProvider:
    """Provider adapter over LangChain's ``ChatOpenAI``."""

    def __init__(
        self,
        name: str = "openai",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        pricing: Optional[dict[str, ModelPricing]] = None,
        timeout: float = 60,
    ) -> None:
        self.name = name
        self.api_key = api_key
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL") or DEFAULT_BASE_URLS.get(name)
        self.pricing = pricing or {}
        self.timeout = timeout

    async def chat(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        llm = _get_chat_llm(request.model, self.api_key, self.base_url, self.timeout)
        if request.max_tokens:
            llm = llm.bind(max_tokens=request.max_tokens)
        if request.tools:
            llm = llm.bind_tools(to_openai_tools(request.tools))

        messages = to_langchain_messages(request.messages, request.system_prompt)
        log.debug(
            f"Streaming {request.model} via {self.name}: {len(messages)} messages, "
            f"{len(request.tools or [])} tools"
        )

        gathered: Optional[AIMessageChunk] = None
        try:
            async for chunk in llm.astream(messages):
                text, thinking = _split_content(chunk)
                if thinking:
                    yield ThinkingDelta(text=thinking)
                if text:
                    yield TextDelta(text=text)
                gathered = chunk if gathered is None else gathered + chunk
        except (ConfigurationError, ProviderError):
            raise
        except Exception as e:
            raise ProviderError(f"{type(e).__name__}: {e}", provider=self.name) from e

        if gathered is None:
            raise ProviderError("Provider returned an empty stream", provider=self.name)

        if gathered.invalid_tool_calls:
            bad = gathered.invalid_tool_calls[0]
            raise ProviderError(
                f"Malformed tool call '{bad.get('name')}': {bad.get('error')}",
                provider=self.name,
            )

        for call in gathered.tool_calls:
            yield ToolCallChunk(
                id=call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                name=call["name"],
                input=call.get("args", {}),
            )

        yield UsageChunk(usage=_usage_from_metadata(gathered.usage_metadata))

        finish_reason = gathered.response_metadata.get("finish_reason", "stop")
        stop_reason = FINISH_REASONS.get(finish_reason, "end_turn")
        if gathered.tool_calls:
            stop_reason = "tool_use"
        yield DoneChunk(stop_reason=stop_reason)

    def calculate_cost(self, model: str, usage: TokenUsage) -> float:
        pricing = self._find_pricing(model)
        if pricing is None:
            return 0.0

        cache_read_price = pricing.cache_read_per_million
        cache_write_price = pricing.cache_write_per_million
        return (
            usage.input_tokens * pricing.input_per_million
            + usage.output_tokens * pricing.output_per_million
            + usage.cache_read_input_tokens
            * (cache_read_price if cache_read_price is not None else pricing.input_per_million)
            + usage.cache_creation_input_tokens
            * (cache_write_price if cache_write_price is not None else pricing.input_per_million)
        ) / 1_000_000

    def _find_pricing(self, model: str) -> Optional[ModelPricing]:
        if model in self.pricing:
            return self.pricing[model]
        # Dated variants: "gpt-4.1-mini-2025-04-14" -> longest matching key
        best = ""
        for key in self.pricing:
            if model.startswith(key) and len(key) > len(best):
                best = key
        return self.pricing.get(best) if best else None
