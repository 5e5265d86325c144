"""
Conversation and usage types shared by the loop, providers and session store.

Message layout follows the Anthropic MessageParam shape: a role plus either
plain text or a list of content blocks (text, tool_use, tool_result).
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Conversation
# ============================================================================


class ContentBlock(BaseModel):
    """
    One content segment of a message.

    - text:        ``text``
    - tool_use:    ``id``, ``name``, ``input``
    - tool_result: ``tool_use_id``, ``content``, ``is_error``
    """

    type: Literal["text", "tool_use", "tool_result"] = Field(
        ..., description="Type: text, tool_use, or tool_result"
    )
    text: Optional[str] = Field(default=None, description="Text content (type=text)")
    id: Optional[str] = Field(default=None, description="Invocation id (type=tool_use)")
    name: Optional[str] = Field(default=None, description="Tool name (type=tool_use)")
    input: Any = Field(default=None, description="Parsed tool input (type=tool_use)")
    tool_use_id: Optional[str] = Field(
        default=None, description="Invocation this result answers (type=tool_result)"
    )
    content: Optional[str] = Field(
        default=None, description="Result text (type=tool_result)"
    )
    is_error: Optional[bool] = Field(
        default=None, description="Whether the tool failed (type=tool_result)"
    )

    @classmethod
    def text_block(cls, text: str) -> "ContentBlock":
        return cls(type="text", text=text)

    @classmethod
    def tool_use(cls, id: str, name: str, input: Any) -> "ContentBlock":
        return cls(type="tool_use", id=id, name=name, input=input)

    @classmethod
    def tool_result(cls, tool_use_id: str, content: str, is_error: bool = False) -> "ContentBlock":
        return cls(
            type="tool_result",
            tool_use_id=tool_use_id,
            content=content,
            is_error=is_error,
        )


class Message(BaseModel):
    role: Literal["user", "assistant"] = Field(..., description="Role: user or assistant")
    content: str | list[ContentBlock] = Field(
        ..., description="Plain text or a list of content blocks"
    )

    def blocks(self) -> list[ContentBlock]:
        if isinstance(self.content, str):
            return [ContentBlock.text_block(self.content)]
        return list(self.content)


# ============================================================================
# Token Usage
# ============================================================================


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_read_input_tokens=self.cache_read_input_tokens
            + other.cache_read_input_tokens,
            cache_creation_input_tokens=self.cache_creation_input_tokens
            + other.cache_creation_input_tokens,
        )


class ModelUsage(TokenUsage):
    """Usage broken out for a single model id."""

    total_cost_usd: float = 0.0

    def record(self, usage: TokenUsage, cost_usd: float) -> None:
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens
        self.cache_read_input_tokens += usage.cache_read_input_tokens
        self.cache_creation_input_tokens += usage.cache_creation_input_tokens
        self.total_cost_usd += cost_usd


def merge_model_usage(
    target: dict[str, ModelUsage], source: dict[str, ModelUsage]
) -> None:
    """Fold one per-model breakdown into another, in place."""
    for model, usage in source.items():
        target.setdefault(model, ModelUsage()).record(usage, usage.total_cost_usd)
