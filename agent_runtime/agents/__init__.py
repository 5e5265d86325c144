"""
Subagents and background tasks.

- types: AgentDefinition, BackgroundTask, TaskStatus
- task_manager: TaskManager
- tools: Task / TaskOutput / TaskStop (agent_runtime.agents.tools)
"""

from agent_runtime.agents.task_manager import TaskManager
from agent_runtime.agents.types import AgentDefinition, BackgroundTask, TaskStatus

__all__ = [
    "AgentDefinition",
    "BackgroundTask",
    "TaskManager",
    "TaskStatus",
]
