"""
Subagent tools: Task, TaskOutput, TaskStop.

``Task`` runs a nested agent loop for one of the configured agent
definitions, either to completion (foreground) or as a tracked background
task. ``TaskOutput`` and ``TaskStop`` expose the background task registry to
the model.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from agent_runtime.agent.loop import agent_loop
from agent_runtime.agent.prompts import build_subagent_prompt
from agent_runtime.agent.types import AgentLoopOptions, ResultEvent, ResultSubtype
from agent_runtime.agents.task_manager import TaskManager
from agent_runtime.agents.types import AgentDefinition, BackgroundTask
from agent_runtime.cancellation import CancellationToken
from agent_runtime.errors import AgentRuntimeError, OperationCancelled
from agent_runtime.hooks import HookEvent, HookInput, HookManager
from agent_runtime.model.provider import ProviderAdapter, get_provider
from agent_runtime.permissions import DELEGATE_TOOLS, PermissionManager
from agent_runtime.tools.registry import Tool, ToolContext, ToolRegistry, ToolResult
from agent_runtime.utils.logger import get_logger
from agent_runtime.utils.session import new_session_id

log = get_logger(__name__)

DEFAULT_SUBAGENT_MAX_TURNS = 10
NO_OUTPUT_MESSAGE = "Subagent completed with no text output."


@dataclass
class AgentContext:
    """What a subagent inherits from the run that spawned it."""

    agents: dict[str, AgentDefinition]
    provider: ProviderAdapter
    model: str
    tools: ToolRegistry
    permissions: PermissionManager
    task_manager: TaskManager
    hooks: Optional[HookManager] = None
    cwd: str = "."
    env: dict[str, str] = field(default_factory=dict)
    max_budget_usd: float = 0.0


class TaskTool(Tool):
    name = "Task"
    description = (
        "Launch a subagent to handle a task. Specify the agent type and a prompt "
        "describing what to do. Set run_in_background to get a task id immediately "
        "and collect the result later with TaskOutput."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "description": {
                "type": "string",
                "description": "A short description of the task (3-5 words).",
            },
            "prompt": {
                "type": "string",
                "description": "The detailed task prompt for the subagent.",
            },
            "subagent_type": {
                "type": "string",
                "description": "The type of agent to use. Must match a registered agent definition.",
            },
            "model": {"type": "string", "description": "Optional model id for this subagent."},
            "run_in_background": {
                "type": "boolean",
                "description": "If true, run the task in the background and return a task ID.",
            },
            "max_turns": {
                "type": "integer",
                "description": "Maximum number of turns for the subagent.",
            },
            "name": {
                "type": "string",
                "description": "Optional display name for the spawned subagent.",
            },
        },
        "required": ["description", "prompt", "subagent_type"],
    }

    def __init__(self, context: AgentContext) -> None:
        self.context = context

    async def execute(self, input: Any, ctx: ToolContext) -> ToolResult:
        input = input or {}
        subagent_type = input.get("subagent_type", "")
        prompt = input.get("prompt", "")
        description = input.get("description", "")

        definition = self.context.agents.get(subagent_type)
        if definition is None:
            available = ", ".join(self.context.agents) or "none"
            return ToolResult(
                content=f'Unknown agent type "{subagent_type}". Available: {available}',
                is_error=True,
            )

        await self._fire(HookEvent.SUBAGENT_START, subagent_type, ctx, description=description)

        provider = (
            get_provider(definition.provider) if definition.provider else self.context.provider
        )
        model = input.get("model") or definition.model or self.context.model
        max_turns = input.get("max_turns") or definition.max_turns or DEFAULT_SUBAGENT_MAX_TURNS
        tools = self.context.tools.subset(
            definition.tools,
            exclude=[*definition.disallowed_tools, *DELEGATE_TOOLS],
        )
        system_prompt = build_subagent_prompt(
            subagent_type, definition, description, name=input.get("name")
        )

        def make_options(token: CancellationToken) -> AgentLoopOptions:
            return AgentLoopOptions(
                provider=provider,
                model=model,
                tools=tools,
                permissions=self.context.permissions,
                hooks=self.context.hooks,
                session_id=new_session_id(),
                system_prompt=system_prompt,
                cwd=self.context.cwd,
                max_turns=max_turns,
                max_budget_usd=self.context.max_budget_usd,
                cancel_token=token,
                env=self.context.env,
            )

        log.info(
            f"Starting subagent {subagent_type} (model={model}, max_turns={max_turns}, "
            f"background={bool(input.get('run_in_background'))})"
        )

        if input.get("run_in_background"):
            return self._start_background(subagent_type, prompt, description, make_options, ctx)

        result = await run_subagent(prompt, make_options(ctx.cancel_token.child()))
        await self._fire(HookEvent.SUBAGENT_STOP, subagent_type, ctx)

        metadata = {"model_usage": result.model_usage, "cost_usd": result.cost_usd}
        if result.subtype == ResultSubtype.SUCCESS:
            return ToolResult(content=result.text or NO_OUTPUT_MESSAGE, metadata=metadata)
        return ToolResult(
            content=f"Subagent error: {'; '.join(result.errors) or result.subtype.value}",
            is_error=True,
            metadata=metadata,
        )

    def _start_background(self, subagent_type, prompt, description, make_options, ctx) -> ToolResult:
        spawned: list[BackgroundTask] = []

        async def run(token: CancellationToken) -> str:
            result = await run_subagent(prompt, make_options(token))
            # Recorded before the outcome so it is visible once the task is done
            spawned[0].cost_usd = result.cost_usd
            spawned[0].model_usage = result.model_usage
            if result.subtype == ResultSubtype.SUCCESS:
                return result.text or NO_OUTPUT_MESSAGE
            message = "; ".join(result.errors) or result.subtype.value
            if result.subtype == ResultSubtype.ABORTED:
                raise OperationCancelled(message)
            raise AgentRuntimeError(message)

        async def on_finish(task: BackgroundTask) -> None:
            await self._fire(HookEvent.SUBAGENT_STOP, subagent_type, ctx, task_id=task.id)

        task = self.context.task_manager.spawn(
            subagent_type,
            run,
            description=description,
            parent_token=ctx.cancel_token,
            on_finish=on_finish,
        )
        # The runner has not started yet; it reads the record from here
        spawned.append(task)
        return ToolResult(
            content=f"Background task started with ID: {task.id}. Use TaskOutput to check results.",
            metadata={"task_id": task.id},
        )

    async def _fire(self, event: HookEvent, agent_type: str, ctx: ToolContext, **extra) -> None:
        hooks = self.context.hooks
        if hooks is None or not hooks.has_hooks(event):
            return
        await hooks.fire(
            event,
            HookInput(event=event, agent_type=agent_type, session_id=ctx.session_id, **extra),
            cancel_token=ctx.cancel_token,
        )


class TaskOutputTool(Tool):
    name = "TaskOutput"
    description = "Get the output from a background task."
    input_schema = {
        "type": "object",
        "properties": {
            "task_id": {"type": "string", "description": "The ID of the background task."},
            "block": {
                "type": "boolean",
                "description": "Whether to wait for the task to complete. Default: true.",
            },
            "timeout": {
                "type": "integer",
                "description": "Max wait time in milliseconds. Default: 30000.",
            },
        },
        "required": ["task_id"],
    }

    def __init__(self, task_manager: TaskManager) -> None:
        self.task_manager = task_manager

    async def execute(self, input: Any, ctx: ToolContext) -> ToolResult:
        input = input or {}
        output = await self.task_manager.get_output(
            input.get("task_id", ""),
            block=input.get("block", True),
            timeout_ms=input.get("timeout", 30000),
        )
        return ToolResult(content=output)


class TaskStopTool(Tool):
    name = "TaskStop"
    description = "Stop a running background task."
    input_schema = {
        "type": "object",
        "properties": {
            "task_id": {"type": "string", "description": "The ID of the background task to stop."},
        },
        "required": ["task_id"],
    }

    def __init__(self, task_manager: TaskManager) -> None:
        self.task_manager = task_manager

    async def execute(self, input: Any, ctx: ToolContext) -> ToolResult:
        task_id = (input or {}).get("task_id", "")
        if self.task_manager.stop(task_id):
            return ToolResult(content=f'Task "{task_id}" has been stopped.')
        task = self.task_manager.get(task_id)
        if task is None:
            return ToolResult(content=f'Task "{task_id}" not found.', is_error=True)
        return ToolResult(content=f'Task "{task_id}" is already {task.status.value}.')


async def run_subagent(prompt: str, options: AgentLoopOptions) -> ResultEvent:
    """Drive a nested loop to its terminal event."""
    result: Optional[ResultEvent] = None
    async for event in agent_loop(prompt, options):
        if isinstance(event, ResultEvent):
            result = event
    if result is None:
        raise AgentRuntimeError("Subagent produced no result")
    return result


def create_subagent_tools(context: AgentContext) -> list[Tool]:
    return [
        TaskTool(context),
        TaskOutputTool(context.task_manager),
        TaskStopTool(context.task_manager),
    ]
