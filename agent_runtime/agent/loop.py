"""
Orchestration loop.

Drives one run: call the model, execute the tools it requests, feed the
results back, repeat until the model stops, a ceiling is hit, or the run is
cancelled. Every step is yielded as an ``AgentEvent``; the last event is
always exactly one ``ResultEvent``.

    async for event in agent_loop("List the files", options):
        print(event)
"""

import time
from typing import AsyncGenerator, AsyncIterator, Optional

from agent_runtime.agent.types import (
    AgentEvent,
    AgentLoopOptions,
    InitEvent,
    ResultEvent,
    ResultSubtype,
    StreamEvent,
    TextEvent,
    ToolResultEvent,
    ToolUseEvent,
)
from agent_runtime.cancellation import CancellationToken
from agent_runtime.errors import OperationCancelled
from agent_runtime.hooks import HookEvent, HookInput, HookOutput
from agent_runtime.mcp import create_mcp_resource_tools
from agent_runtime.model.provider import (
    ChatChunk,
    ChatRequest,
    DoneChunk,
    TextDelta,
    ThinkingDelta,
    ToolCallChunk,
    UsageChunk,
)
from agent_runtime.model.types import (
    ContentBlock,
    Message,
    ModelUsage,
    TokenUsage,
    merge_model_usage,
)
from agent_runtime.tools.registry import ToolContext
from agent_runtime.utils.logger import get_logger

SKIPPED_MESSAGE = "Skipped: run interrupted"


async def _next_chunk(stream: AsyncIterator[ChatChunk]) -> Optional[ChatChunk]:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return None


def agent_loop(prompt: str, options: AgentLoopOptions) -> AsyncGenerator[AgentEvent, None]:
    """Run the agent on ``prompt`` and yield its events."""
    return AgentRun(options).run(prompt)


class AgentRun:
    """
    State of a single loop run.

    Owns the conversation, turn counter and usage accumulators; nothing here
    is shared with other runs.
    """

    def __init__(self, options: AgentLoopOptions):
        self.options = options
        self.token = options.cancel_token or CancellationToken()
        self.log = get_logger(__name__, session_id=options.session_id)

        self.messages: list[Message] = list(options.previous_messages)
        self.turns = 0
        self.cost_usd = 0.0
        self.api_ms = 0
        self.usage = TokenUsage()
        self.model_usage: dict[str, ModelUsage] = {}
        self.started_at = time.time()

        # Per-turn tool results and the denial that interrupted the turn, if any
        self._results: list[ContentBlock] = []
        self._interrupt_message: Optional[str] = None

        self.ctx = ToolContext(
            cwd=options.cwd,
            cancel_token=self.token,
            session_id=options.session_id,
            env=options.env,
        )

    # ========================================================================
    # Main Loop
    # ========================================================================

    async def run(self, prompt: str) -> AsyncGenerator[AgentEvent, None]:
        opts = self.options
        self.log.info(
            f"Starting run: prompt='{prompt[:50]}' model={opts.model} "
            f"max_turns={opts.max_turns} resumed_messages={len(self.messages)}"
        )

        self.messages.append(Message(role="user", content=prompt))
        await self._log_turn("user", prompt)

        if opts.mcp_client is not None:
            await self._register_mcp_tools()

        yield InitEvent(
            session_id=opts.session_id,
            model=opts.model,
            provider=opts.provider.name,
            tools=opts.tools.list(),
            cwd=opts.cwd,
            permission_mode=opts.permissions.mode.value,
        )
        await self._fire(HookEvent.USER_PROMPT_SUBMIT, text=prompt)
        await self._fire(HookEvent.SESSION_START)

        tool_definitions = opts.tools.get_definitions()

        while True:
            if self.token.cancelled:
                yield self._result(ResultSubtype.ABORTED, errors=[self.token.reason or "Aborted"])
                return

            if self.turns >= opts.max_turns:
                yield self._result(
                    ResultSubtype.ERROR_MAX_TURNS,
                    errors=[f"Reached maximum turns ({opts.max_turns})"],
                )
                return

            if opts.max_budget_usd > 0 and self.cost_usd >= opts.max_budget_usd:
                yield self._result(
                    ResultSubtype.ERROR_MAX_BUDGET,
                    errors=[f"Reached budget limit (${opts.max_budget_usd})"],
                )
                return

            # Call the model
            text_parts: list[str] = []
            tool_calls: list[ToolCallChunk] = []
            turn_usage = TokenUsage()
            stop_reason = "end_turn"

            request = ChatRequest(
                model=opts.model,
                messages=list(self.messages),
                tools=tool_definitions or None,
                system_prompt=opts.system_prompt,
                cancel_token=self.token,
            )
            self.log.debug(f"Turn {self.turns + 1}/{opts.max_turns}: calling {opts.provider.name}")

            api_start = time.time()
            stream = opts.provider.chat(request)
            try:
                while True:
                    chunk = await self.token.race(_next_chunk(stream))
                    if chunk is None:
                        break
                    if isinstance(chunk, TextDelta):
                        text_parts.append(chunk.text)
                        if opts.include_stream_events:
                            yield StreamEvent(subtype="text_delta", text=chunk.text)
                    elif isinstance(chunk, ThinkingDelta):
                        if opts.include_stream_events:
                            yield StreamEvent(subtype="thinking_delta", text=chunk.text)
                    elif isinstance(chunk, ToolCallChunk):
                        tool_calls.append(chunk)
                    elif isinstance(chunk, UsageChunk):
                        turn_usage = turn_usage + chunk.usage
                    elif isinstance(chunk, DoneChunk):
                        stop_reason = chunk.stop_reason
            except OperationCancelled as e:
                self.log.info(f"Run cancelled during model call: {e}")
                yield self._result(ResultSubtype.ABORTED, errors=[str(e)])
                return
            except Exception as e:
                self.log.error(f"Provider call failed: {e}")
                yield self._result(ResultSubtype.ERROR_EXECUTION, errors=[f"API error: {e}"])
                return
            finally:
                self.api_ms += int((time.time() - api_start) * 1000)
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

            text = "".join(text_parts)

            # Record the assistant turn
            assistant_content: list[ContentBlock] = []
            if text:
                assistant_content.append(ContentBlock.text_block(text))
            assistant_content.extend(
                ContentBlock.tool_use(call.id, call.name, call.input) for call in tool_calls
            )
            self.messages.append(Message(role="assistant", content=assistant_content))

            self.turns += 1
            turn_cost = opts.provider.calculate_cost(opts.model, turn_usage)
            self.usage = self.usage + turn_usage
            self.cost_usd += turn_cost
            self.model_usage.setdefault(opts.model, ModelUsage()).record(turn_usage, turn_cost)
            self.log.debug(
                f"Turn {self.turns} done: stop_reason={stop_reason} "
                f"tool_calls={len(tool_calls)} cost=${turn_cost:.6f}"
            )

            await self._log_turn("assistant", assistant_content)
            if text:
                yield TextEvent(text=text)
            await self._fire(HookEvent.NOTIFICATION, text=text, notification_type="turn_end")

            # No tool calls = done
            if not tool_calls:
                stop_output = await self._fire(HookEvent.STOP, stop_reason=stop_reason, text=text)
                if stop_output and stop_output.stop_reason:
                    stop_reason = stop_output.stop_reason
                await self._fire(HookEvent.SESSION_END)
                yield self._result(ResultSubtype.SUCCESS, text=text, stop_reason=stop_reason)
                return

            # Execute tools and yield events
            self._results = []
            self._interrupt_message = None
            try:
                async for event in self._execute_tool_calls(tool_calls):
                    yield event
            except OperationCancelled as e:
                self.log.info(f"Run cancelled during tool execution: {e}")
                yield self._result(ResultSubtype.ABORTED, errors=[str(e)])
                return

            self.messages.append(Message(role="user", content=self._results))
            await self._log_turn("user", self._results)

            if self._interrupt_message is not None:
                self.log.warning(f"Run interrupted by denial: {self._interrupt_message}")
                yield self._result(ResultSubtype.ABORTED, errors=[self._interrupt_message])
                return

    # ========================================================================
    # Tool Execution
    # ========================================================================

    async def _execute_tool_calls(
        self, tool_calls: list[ToolCallChunk]
    ) -> AsyncGenerator[AgentEvent, None]:
        """Execute tool calls in request order, filling ``self._results``."""
        for call in tool_calls:
            if self._interrupt_message is not None:
                self._results.append(
                    ContentBlock.tool_result(call.id, SKIPPED_MESSAGE, is_error=True)
                )
                continue
            async for event in self._execute_tool_call(call):
                yield event

    async def _execute_tool_call(self, call: ToolCallChunk) -> AsyncGenerator[AgentEvent, None]:
        tool_input = call.input

        pre = await self._fire(
            HookEvent.PRE_TOOL_USE, call.id, tool_name=call.name, tool_input=tool_input
        )
        if pre and pre.permission_decision == "deny":
            message = f"Denied by hook: {pre.reason}" if pre.reason else "Denied by hook"
            yield await self._deny(call, tool_input, message, pre.interrupt)
            return
        if pre and pre.updated_input is not None:
            tool_input = pre.updated_input

        try:
            decision = await self.options.permissions.check(call.name, tool_input, call.id)
        except OperationCancelled:
            raise
        except Exception as e:
            self.log.error(f"Permission check for {call.name} failed: {e}")
            yield await self._deny(call, tool_input, f"Permission check failed: {e}", False)
            return
        if decision.behavior == "deny":
            interrupt = decision.interrupt or bool(pre and pre.interrupt)
            yield await self._deny(
                call, tool_input, f"Permission denied: {decision.message}", interrupt
            )
            return
        if decision.updated_input is not None:
            tool_input = decision.updated_input

        yield ToolUseEvent(id=call.id, name=call.name, input=tool_input)

        start_time = time.time()
        result = await self.token.race(
            self.options.tools.execute(call.name, tool_input, self.ctx)
        )
        duration = int((time.time() - start_time) * 1000)
        self.log.info(f"Tool {call.name} finished in {duration}ms (is_error={result.is_error})")

        # Foreground subagents report their spend through result metadata
        nested_usage = result.metadata.get("model_usage")
        if nested_usage:
            merge_model_usage(self.model_usage, nested_usage)
            self.cost_usd += result.metadata.get("cost_usd", 0.0)

        content = result.content
        if result.is_error:
            await self._fire(
                HookEvent.POST_TOOL_USE_FAILURE,
                call.id,
                tool_name=call.name,
                tool_input=tool_input,
                tool_result=content,
                tool_error=True,
            )
        else:
            post = await self._fire(
                HookEvent.POST_TOOL_USE,
                call.id,
                tool_name=call.name,
                tool_input=tool_input,
                tool_result=content,
                tool_error=False,
            )
            if post and post.additional_context:
                content = f"{content}\n{post.additional_context}"

        self._results.append(ContentBlock.tool_result(call.id, content, result.is_error))
        yield ToolResultEvent(
            tool_use_id=call.id,
            name=call.name,
            content=content,
            is_error=result.is_error,
            duration=duration,
        )

    async def _deny(
        self, call: ToolCallChunk, tool_input, message: str, interrupt: bool
    ) -> ToolResultEvent:
        """Record a denied call as a failed result; it never reaches the executor."""
        self.log.info(f"Tool {call.name} denied: {message}")
        await self._fire(
            HookEvent.POST_TOOL_USE_FAILURE,
            call.id,
            tool_name=call.name,
            tool_input=tool_input,
            tool_result=message,
            tool_error=True,
        )
        self._results.append(ContentBlock.tool_result(call.id, message, is_error=True))
        if interrupt:
            self._interrupt_message = message
        return ToolResultEvent(tool_use_id=call.id, name=call.name, content=message, is_error=True)

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _register_mcp_tools(self) -> None:
        mcp_client = self.options.mcp_client
        await mcp_client.connect_all()
        tools = [*mcp_client.get_tools(), *create_mcp_resource_tools(mcp_client)]
        for tool in tools:
            self.options.tools.register(tool)
        self.log.info(f"Registered {len(tools)} MCP tools")

    async def _fire(
        self, event: HookEvent, tool_use_id: Optional[str] = None, **fields
    ) -> Optional[HookOutput]:
        hooks = self.options.hooks
        if hooks is None or not hooks.has_hooks(event):
            return None
        hook_input = HookInput(event=event, session_id=self.options.session_id, **fields)
        return await hooks.fire(event, hook_input, tool_use_id, self.token)

    async def _log_turn(self, role, content) -> None:
        if self.options.session_logger is None:
            return
        try:
            await self.options.session_logger(role, content)
        except Exception as e:
            self.log.warning(f"Failed to persist {role} turn: {e}")

    def _result(
        self,
        subtype: ResultSubtype,
        text: str = "",
        errors: Optional[list[str]] = None,
        stop_reason: Optional[str] = None,
    ) -> ResultEvent:
        duration_ms = int((time.time() - self.started_at) * 1000)
        self.log.info(
            f"Run finished: {subtype.value} turns={self.turns} "
            f"cost=${self.cost_usd:.6f} duration={duration_ms}ms"
        )
        return ResultEvent(
            subtype=subtype,
            text=text,
            errors=errors or [],
            turns=self.turns,
            cost_usd=self.cost_usd,
            duration_ms=duration_ms,
            duration_api_ms=self.api_ms,
            session_id=self.options.session_id,
            stop_reason=stop_reason,
            usage=self.usage,
            model_usage=self.model_usage,
        )
