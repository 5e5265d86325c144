"""
Background task registry.

Tracks subagent runs started in the background. The record map is guarded by
one lock; a record leaves RUNNING through compare-and-set so a stop request
racing a natural completion never writes two terminal states.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from typing import Awaitable, Callable, Optional

from agent_runtime.agents.types import BackgroundTask, TaskStatus
from agent_runtime.cancellation import CancellationToken
from agent_runtime.errors import OperationCancelled
from agent_runtime.utils.logger import get_logger
from agent_runtime.utils.session import now_ms

log = get_logger(__name__)


class TaskManager:
    def __init__(self) -> None:
        self._tasks: dict[str, BackgroundTask] = {}
        self._lock = threading.Lock()

    def register(self, task: BackgroundTask) -> None:
        with self._lock:
            self._tasks[task.id] = task
        log.info(f"Registered background task {task.id} ({task.agent_type})")

    def get(self, task_id: str) -> Optional[BackgroundTask]:
        with self._lock:
            return self._tasks.get(task_id)

    def list(self) -> list[BackgroundTask]:
        with self._lock:
            return list(self._tasks.values())

    def _transition(
        self,
        task_id: str,
        status: TaskStatus,
        result: Optional[str] = None,
        error: Optional[str] = None,
    ) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.status != TaskStatus.RUNNING:
                return False
            task.status = status
            task.result = result
            task.error = error
            task.ended_at = now_ms()
        task.done.set()
        return True

    def complete(self, task_id: str, result: str) -> bool:
        return self._transition(task_id, TaskStatus.COMPLETED, result=result)

    def fail(self, task_id: str, error: str) -> bool:
        return self._transition(task_id, TaskStatus.FAILED, error=error)

    def stop(self, task_id: str) -> bool:
        """Stop a running task and cancel its run. False if unknown or not running."""
        if not self._transition(task_id, TaskStatus.STOPPED):
            return False
        task = self.get(task_id)
        if task is not None:
            task.cancel_token.cancel("Task stopped")
        log.info(f"Stopped background task {task_id}")
        return True

    async def get_output(self, task_id: str, block: bool = True, timeout_ms: int = 30000) -> str:
        task = self.get(task_id)
        if task is None:
            return f'Task "{task_id}" not found.'

        if task.is_running:
            if not block:
                return f'Task "{task_id}" is still running.'
            try:
                await asyncio.wait_for(task.done.wait(), timeout=timeout_ms / 1000)
            except asyncio.TimeoutError:
                return f'Task "{task_id}" is still running (timed out after {timeout_ms}ms).'

        return self._format_output(task)

    def _format_output(self, task: BackgroundTask) -> str:
        if task.status == TaskStatus.FAILED:
            return f'Task "{task.id}" failed: {task.error or "unknown error"}'
        if task.status == TaskStatus.STOPPED:
            return f'Task "{task.id}" was stopped.'
        return task.result or f'Task "{task.id}" completed with no output.'

    def spawn(
        self,
        agent_type: str,
        run: Callable[[CancellationToken], Awaitable[str]],
        description: str = "",
        parent_token: Optional[CancellationToken] = None,
        on_finish: Optional[Callable[[BackgroundTask], Awaitable[None]]] = None,
    ) -> BackgroundTask:
        """
        Start ``run`` as a background asyncio task and track it.

        ``run`` receives the task's cancellation handle (a child of
        ``parent_token`` when given) and returns the final text. Its outcome
        is written back to the record exactly once: a return completes the
        task, OperationCancelled stops it, any other exception fails it.
        """
        token = parent_token.child() if parent_token else CancellationToken()
        task = BackgroundTask(
            id=str(uuid.uuid4()),
            agent_type=agent_type,
            description=description,
            cancel_token=token,
        )
        self.register(task)

        async def _runner() -> None:
            try:
                result = await run(token)
            except OperationCancelled:
                self._transition(task.id, TaskStatus.STOPPED)
            except Exception as e:
                log.error(f"Background task {task.id} failed: {e}")
                self.fail(task.id, str(e))
            else:
                self.complete(task.id, result)

            if on_finish is not None:
                try:
                    await on_finish(task)
                except Exception as e:
                    log.error(f"Background task {task.id} finish callback failed: {e}")

        task.runner = asyncio.create_task(_runner())
        return task
