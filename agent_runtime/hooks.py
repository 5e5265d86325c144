"""
Lifecycle hooks.

Hooks let the embedding application observe and intervene at fixed points of
a run:

- PreToolUse: before a tool executes (may deny it or replace its input)
- PostToolUse / PostToolUseFailure: after a tool succeeded / failed or was denied
- UserPromptSubmit, SessionStart, SessionEnd: run lifecycle
- Stop: before the final result (may override the stop reason)
- Notification: informational, e.g. the end of each model turn
- SubagentStart / SubagentStop: nested agent lifecycle

Callbacks registered for one event are run sequentially and their outputs
merged into a single ``HookOutput``.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict

from agent_runtime.cancellation import CancellationToken
from agent_runtime.utils.logger import get_logger

log = get_logger(__name__)


class HookEvent(str, Enum):
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    POST_TOOL_USE_FAILURE = "PostToolUseFailure"
    NOTIFICATION = "Notification"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    SESSION_START = "SessionStart"
    SESSION_END = "SessionEnd"
    STOP = "Stop"
    SUBAGENT_START = "SubagentStart"
    SUBAGENT_STOP = "SubagentStop"


TOOL_EVENTS = frozenset(
    {HookEvent.PRE_TOOL_USE, HookEvent.POST_TOOL_USE, HookEvent.POST_TOOL_USE_FAILURE}
)


class HookInput(BaseModel):
    """Immutable description of one lifecycle occurrence; extra fields are kept."""

    model_config = ConfigDict(frozen=True, extra="allow")

    event: HookEvent
    tool_name: Optional[str] = None
    tool_input: Any = None
    tool_result: Optional[str] = None
    tool_error: Optional[bool] = None
    session_id: Optional[str] = None
    agent_type: Optional[str] = None
    stop_reason: Optional[str] = None
    text: Optional[str] = None


class HookOutput(BaseModel):
    permission_decision: Optional[Literal["allow", "deny"]] = None
    # Reason reported with a deny
    reason: Optional[str] = None
    updated_input: Any = None
    additional_context: Optional[str] = None
    stop_reason: Optional[str] = None
    interrupt: bool = False


HookCallback = Callable[
    [HookInput, Optional[str], CancellationToken], Awaitable[Optional[HookOutput]]
]


@dataclass
class HookMatcher:
    """Callback group; ``matcher`` is a regex tested against the tool name."""

    hooks: list[HookCallback] = field(default_factory=list)
    matcher: Optional[str] = None


class HookManager:
    def __init__(self, hooks: Optional[dict[HookEvent | str, list[HookMatcher]]] = None):
        self._hooks: dict[HookEvent, list[HookMatcher]] = {
            HookEvent(event): matchers for event, matchers in (hooks or {}).items()
        }

    def has_hooks(self, event: HookEvent) -> bool:
        return bool(self._hooks.get(event))

    def _matches(self, group: HookMatcher, event: HookEvent, tool_name: Optional[str]) -> bool:
        if event not in TOOL_EVENTS or not group.matcher:
            return True
        try:
            return re.search(group.matcher, tool_name or "") is not None
        except re.error as e:
            log.warning(f"Skipping hook group with invalid matcher {group.matcher!r}: {e}")
            return False

    async def fire(
        self,
        event: HookEvent,
        input: HookInput,
        tool_use_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Optional[HookOutput]:
        """
        Run every matching callback for ``event`` and merge their outputs.

        Merge rules: the first deny wins over any allow, the last
        ``updated_input`` and ``stop_reason`` win, ``additional_context`` is
        joined with newlines, ``interrupt`` is OR-ed.

        Returns:
            The merged output, or None when no callback produced one.
        """
        groups = self._hooks.get(event)
        if not groups:
            return None

        token = cancel_token or CancellationToken()
        merged = HookOutput()
        has_output = False

        for group in groups:
            if not self._matches(group, event, input.tool_name):
                continue

            for callback in group.hooks:
                try:
                    result = await callback(input, tool_use_id, token)
                except Exception as e:
                    log.error(f"{event.value} hook {getattr(callback, '__name__', callback)} failed: {e}")
                    continue
                if result is None:
                    continue

                has_output = True
                if result.permission_decision and merged.permission_decision != "deny":
                    merged.permission_decision = result.permission_decision
                    merged.reason = result.reason
                if result.updated_input is not None:
                    merged.updated_input = result.updated_input
                if result.additional_context:
                    merged.additional_context = (
                        f"{merged.additional_context}\n{result.additional_context}"
                        if merged.additional_context
                        else result.additional_context
                    )
                if result.stop_reason:
                    merged.stop_reason = result.stop_reason
                merged.interrupt = merged.interrupt or result.interrupt

        return merged if has_output else None
