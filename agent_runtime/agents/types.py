"""
Subagent definitions and background task records.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from agent_runtime.cancellation import CancellationToken
from agent_runtime.model.types import ModelUsage
from agent_runtime.utils.session import now_ms


class AgentDefinition(BaseModel):
    """A named kind of subagent the model can delegate to through the Task tool."""

    description: str = Field(..., description="When to use this agent")
    prompt: str = Field(..., description="System prompt of the subagent")
    tools: Optional[list[str]] = Field(
        None, description="Tool names available to the subagent, None inherits all"
    )
    disallowed_tools: list[str] = Field(default_factory=list, description="Tools removed")
    model: Optional[str] = Field(None, description="Model override, defaults to the parent's")
    provider: Optional[str] = Field(None, description="Provider override")
    max_turns: Optional[int] = Field(None, ge=1, description="Turn ceiling override")


class TaskStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass
class BackgroundTask:
    """
    A delegated run tracked by id.

    Status leaves RUNNING at most once; ``done`` is set when it does.
    """

    id: str
    agent_type: str
    description: str = ""
    status: TaskStatus = TaskStatus.RUNNING
    result: Optional[str] = None
    error: Optional[str] = None
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    done: asyncio.Event = field(default_factory=asyncio.Event)
    started_at: int = field(default_factory=now_ms)
    ended_at: Optional[int] = None
    # Spend of the nested run, filled in when it finishes
    cost_usd: float = 0.0
    model_usage: dict[str, ModelUsage] = field(default_factory=dict)
    runner: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def is_running(self) -> bool:
        return self.status == TaskStatus.RUNNING
