"""
Hierarchical cancellation handle.

A token wraps an ``asyncio.Event``. Children created with ``child()`` are
cancelled whenever their parent is, but cancelling a child never reaches the
parent. ``race()`` runs an awaitable and interrupts it as soon as the token
fires, so a slow provider stream or tool call is aborted rather than merely
prevented from starting.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from agent_runtime.errors import OperationCancelled

T = TypeVar("T")


class CancellationToken:
    def __init__(self, parent: Optional["CancellationToken"] = None) -> None:
        self._event = asyncio.Event()
        self._children: list[CancellationToken] = []
        self.reason: Optional[str] = None
        if parent is not None:
            parent._children.append(self)
            if parent.cancelled:
                self.cancel(parent.reason)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        if self._event.is_set():
            return
        self.reason = reason or "Aborted"
        self._event.set()
        for child in self._children:
            child.cancel(self.reason)

    def child(self) -> "CancellationToken":
        """Create a handle that is cancelled together with this one."""
        return CancellationToken(parent=self)

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self.reason or "Aborted")

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Raises:
            OperationCancelled: the token fired before the work finished; the
                work itself has been cancelled.
        """
        self.raise_if_cancelled()

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        try:
            await work
        except (asyncio.CancelledError, Exception):
            # 已取消的任务的结果不再需要
            pass
        raise OperationCancelled(self.reason or "Aborted")
