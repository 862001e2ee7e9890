"""Countdown barrier used to gate pipeline stages."""

import asyncio
import logging
import weakref
from functools import partial
from typing import Awaitable, List, Optional, Set

from acipoll.models.errors import ProtocolViolation
from acipoll.monitoring.logger import StructuredLogger


class _HandleState:
    """Completion flag shared between a handle and its finalizer."""
    __slots__ = ("label", "done")

    def __init__(self, label: str):
        self.label = label
        self.done = False


class CompletionHandle:
    """One registered unit of work. ``done()`` must be called exactly once."""

    def __init__(self, barrier: "CompletionBarrier", state: _HandleState):
        self._barrier = barrier
        self._state = state

    @property
    def label(self) -> str:
        return self._state.label

    @property
    def is_done(self) -> bool:
        return self._state.done

    def done(self) -> None:
        if self._state.done:
            raise ProtocolViolation(
                f"done() called twice on handle {self._state.label!r} "
                f"of barrier {self._barrier.name!r}"
            )
        self._state.done = True
        self._barrier._complete_one()


class CompletionBarrier:
    """
    Countdown coordinator for one pipeline stage.

    ``begin()`` registers a pending unit and returns a handle; each handle's
    ``done()`` decrements the count; ``wait()`` yields to the event loop until
    the count reaches zero. Barriers track completion only, never success:
    a failing unit still completes its handle.

    Cancelling ``wait()`` cancels the spawned tasks before the
    cancellation propagates, so no unit outlives its stage.

    A barrier is single use. Registering work after ``wait()`` resolved, a
    second ``done()`` on the same handle, and a handle dropped without
    ``done()`` are all reported as ProtocolViolation.
    """

    def __init__(self, name: str, logger: Optional[StructuredLogger] = None):
        self.name = name
        self.logger = logger
        self.failures: List[BaseException] = []
        self._pending = 0
        self._registered = 0
        self._resolved = False
        self._violation: Optional[ProtocolViolation] = None
        self._event = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def registered(self) -> int:
        """Total number of units ever registered."""
        return self._registered

    @property
    def resolved(self) -> bool:
        return self._resolved

    def begin(self, label: Optional[str] = None) -> CompletionHandle:
        """Register one pending unit of work."""
        if self._resolved:
            raise ProtocolViolation(f"barrier {self.name!r} already resolved")

        self._registered += 1
        state = _HandleState(label or f"{self.name}#{self._registered}")
        handle = CompletionHandle(self, state)
        finalizer = weakref.finalize(handle, self._abandoned, state)
        finalizer.atexit = False

        self._pending += 1
        self._event.clear()
        return handle

    def spawn(self, coro: Awaitable, label: Optional[str] = None) -> asyncio.Task:
        """
        Run ``coro`` as a task whose completion is bound to a new handle.

        The handle completes when the task finishes, whatever the outcome.
        An exception raised by the task is logged and kept in ``failures``;
        it never fails the barrier.
        """
        handle = self.begin(label)
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(partial(self._task_finished, handle))
        return task

    async def wait(self) -> None:
        """
        Suspend until every registered unit has completed.

        Cancelling the waiter cancels every task spawned on this barrier,
        including tasks spawned while the cancellation is in progress.
        """
        try:
            while True:
                if self._violation is not None:
                    raise self._violation
                if self._pending == 0:
                    break
                await self._event.wait()
        except asyncio.CancelledError:
            await self.cancel()
            raise
        self._resolved = True

    async def cancel(self) -> None:
        """Cancel every task spawned on this barrier and wait for them to finish."""
        while self._tasks:
            tasks = list(self._tasks)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._tasks.difference_update(tasks)

    def _complete_one(self) -> None:
        self._pending -= 1
        if self._pending == 0:
            self._event.set()

    def _abandoned(self, state: _HandleState) -> None:
        if state.done:
            return
        self._violation = ProtocolViolation(
            f"handle {state.label!r} of barrier {self.name!r} "
            f"was discarded without calling done()"
        )
        self._event.set()

    def _task_finished(self, handle: CompletionHandle, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            exc = task.exception()
            self.failures.append(exc)
            if self.logger:
                self.logger.log(
                    "task_failed", logging.ERROR,
                    barrier=self.name, task=handle.label, error=repr(exc)
                )
        handle.done()
