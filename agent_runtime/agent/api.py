"""
Public entry point.

``query()`` resolves ``QueryOptions`` into the loop's dependencies and returns
a ``Query`` handle: an async iterable of events plus run controls.

    q = query("Summarize README.md", QueryOptions(tools=[read_tool]))
    async for event in q:
        if isinstance(event, ResultEvent):
            print(event.text)
"""

from typing import AsyncGenerator, AsyncIterator, Optional

from agent_runtime.agent.loop import agent_loop
from agent_runtime.agent.prompts import build_system_prompt
from agent_runtime.agent.types import AgentEvent, AgentLoopOptions, QueryOptions
from agent_runtime.agents import tools as subagent_tools
from agent_runtime.agents.task_manager import TaskManager
from agent_runtime.agents.types import BackgroundTask
from agent_runtime.cancellation import CancellationToken
from agent_runtime.config import get_settings
from agent_runtime.hooks import HookManager
from agent_runtime.mcp import McpClientManager, McpServerStatus
from agent_runtime.model.provider import get_provider
from agent_runtime.permissions import (
    PermissionManager,
    PermissionMode,
    PermissionRule,
    SettingsManager,
)
from agent_runtime.tools.registry import ToolRegistry
from agent_runtime.utils.logger import get_logger
from agent_runtime.utils.session import SessionStore, new_session_id

log = get_logger(__name__)


class Query:
    """Handle of one run started by ``query()``; iterate it to drive the run."""

    def __init__(self, prompt: str, options: QueryOptions):
        self.prompt = prompt
        self.options = options
        settings = get_settings()

        self.cancel_token = options.cancel_token or CancellationToken()
        self.provider = (
            get_provider(options.provider) if isinstance(options.provider, str) else options.provider
        )
        self.task_manager = TaskManager()
        self.store = SessionStore(settings.sessions_dir)

        allow_rules: list[str | PermissionRule] = [*options.allowed_tools, *options.allow_rules]
        deny_rules: list[str | PermissionRule] = list(options.deny_rules)
        if options.setting_sources:
            settings_allow, settings_deny = SettingsManager(
                options.cwd, settings.home_dir
            ).load_rules(options.setting_sources)
            allow_rules.extend(settings_allow)
            deny_rules.extend(settings_deny)
        self.permissions = PermissionManager(
            options.permission_mode,
            can_use_tool=options.can_use_tool,
            allow_rules=allow_rules,
            deny_rules=deny_rules,
        )

        self.hooks = HookManager(options.hooks) if options.hooks else None
        self.mcp_client = McpClientManager(options.mcp_servers) if options.mcp_servers else None

        self.tools = ToolRegistry(options.tools)
        if options.agents:
            context = subagent_tools.AgentContext(
                agents=options.agents,
                provider=self.provider,
                model=options.model,
                tools=self.tools,
                permissions=self.permissions,
                task_manager=self.task_manager,
                hooks=self.hooks,
                cwd=options.cwd,
                env=options.env,
                max_budget_usd=options.max_budget_usd,
            )
            for tool in subagent_tools.create_subagent_tools(context):
                self.tools.register(tool)
        for name in options.disallowed_tools:
            self.tools.unregister(name)

        self.session_id: Optional[str] = None
        self._events: Optional[AsyncGenerator[AgentEvent, None]] = None

    def __aiter__(self) -> AsyncIterator[AgentEvent]:
        if self._events is None:
            self._events = self._run()
        return self._events

    async def _run(self) -> AsyncGenerator[AgentEvent, None]:
        opts = self.options

        session_id = opts.resume or opts.session_id
        if session_id is None and opts.continue_session:
            session_id = self.store.latest_session()
            if session_id is None:
                log.info("No previous session to continue, starting a new one")

        previous_messages = []
        if session_id is not None and (opts.resume or opts.continue_session):
            previous_messages = await self.store.load(session_id)
            log.info(f"Resuming session {session_id} with {len(previous_messages)} messages")

        self.session_id = session_id or new_session_id()
        session_logger = None
        if opts.persist_session:
            # Loaded entries let the logger continue the existing chain
            await self.store.load_entries(self.session_id)
            session_logger = self.store.create_logger(self.session_id, cwd=opts.cwd, model=opts.model)

        loop_options = AgentLoopOptions(
            provider=self.provider,
            model=opts.model,
            tools=self.tools,
            permissions=self.permissions,
            hooks=self.hooks,
            session_id=self.session_id,
            system_prompt=build_system_prompt(
                self.tools.list(),
                opts.cwd,
                system_prompt=opts.system_prompt,
                append_system_prompt=opts.append_system_prompt,
            ),
            cwd=opts.cwd,
            max_turns=opts.max_turns,
            max_budget_usd=opts.max_budget_usd,
            include_stream_events=opts.include_stream_events,
            cancel_token=self.cancel_token,
            env=opts.env,
            previous_messages=previous_messages,
            session_logger=session_logger,
            mcp_client=self.mcp_client,
        )
        try:
            async for event in agent_loop(self.prompt, loop_options):
                yield event
        finally:
            if self.mcp_client is not None:
                await self.mcp_client.close_all()

    # ========================================================================
    # Controls
    # ========================================================================

    def interrupt(self) -> None:
        """Cancel the run; in-flight model and tool calls are interrupted."""
        self.cancel_token.cancel("Interrupted by user")

    def set_permission_mode(self, mode: PermissionMode | str) -> None:
        self.permissions.set_mode(mode)

    @property
    def permission_mode(self) -> PermissionMode:
        return self.permissions.mode

    def register_task(self, task: BackgroundTask) -> None:
        self.task_manager.register(task)

    def stop_task(self, task_id: str) -> bool:
        return self.task_manager.stop(task_id)

    async def get_task_output(self, task_id: str, block: bool = True, timeout_ms: int = 30000) -> str:
        return await self.task_manager.get_output(task_id, block=block, timeout_ms=timeout_ms)

    def list_tasks(self) -> list[BackgroundTask]:
        return self.task_manager.list()

    def mcp_server_status(self) -> list[McpServerStatus]:
        return self.mcp_client.status() if self.mcp_client is not None else []

    async def reconnect_mcp_server(self, name: str) -> None:
        if self.mcp_client is None:
            raise KeyError(f'MCP server "{name}" is not configured')
        await self.mcp_client.reconnect_server(name)

    async def toggle_mcp_server(self, name: str, enabled: bool) -> None:
        if self.mcp_client is None:
            raise KeyError(f'MCP server "{name}" is not configured')
        await self.mcp_client.toggle_server(name, enabled)


def query(prompt: str, options: Optional[QueryOptions] = None) -> Query:
    """Start a run. Nothing happens until the returned handle is iterated."""
    return Query(prompt, options or QueryOptions())
