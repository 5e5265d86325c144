from datetime import datetime
from typing import Optional

from agent_runtime.agents.types import AgentDefinition

# ======================================================================
# Helper Time Function
# ======================================================================


def get_current_time() -> str:
    """Returns the current data formatted for prompts.

    Returns:
        str: such as 'Thursday, January 22, 2026'
    """
    return datetime.now().strftime("%A, %B %d, %Y")


# ======================================================================
# Default System Prompt
# ======================================================================

DEFAULT_SYSTEM_PROMPT = """You are an autonomous agent that completes tasks by using the tools available to you.

Work step by step. Call a tool whenever it helps you make progress, read its result carefully and continue until the task is done.
When a tool call is denied or fails, adapt your approach instead of repeating the same call.
When the task is complete, reply with a concise final answer and do not call any more tools.
"""


def build_system_prompt(
    tool_names: list[str],
    cwd: str,
    system_prompt: Optional[str] = None,
    append_system_prompt: Optional[str] = None,
) -> str:
    """Build the system prompt for a run.

    A caller-supplied ``system_prompt`` replaces the default one entirely;
    ``append_system_prompt`` is added at the end either way.
    """
    if system_prompt is not None:
        parts = [system_prompt]
    else:
        parts = [
            DEFAULT_SYSTEM_PROMPT.strip(),
            f"Current date: {get_current_time()}",
            f"Working directory: {cwd}",
        ]
        if tool_names:
            parts.append("Available tools: " + ", ".join(tool_names))

    if append_system_prompt:
        parts.append(append_system_prompt)
    return "\n\n".join(parts)


# ======================================================================
# Subagent Prompt
# ======================================================================


def build_subagent_prompt(
    agent_type: str,
    definition: AgentDefinition,
    description: str,
    name: Optional[str] = None,
) -> str:
    parts = [
        definition.prompt,
        f'You are a subagent of type "{agent_type}". {definition.description}',
        f"Task summary: {description}",
    ]
    if name:
        parts.append(f"Subagent name: {name}")
    return "\n\n".join(parts)
