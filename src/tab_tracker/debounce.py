"""Per-key debouncing of tab state transitions on the asyncio loop."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

from .models import StateUpdate

logger = logging.getLogger(__name__)

TransitionHandler = Callable[[int, int, StateUpdate], Awaitable[None]]


class CancellableTimer:
    """Owns at most one scheduled callback on the running event loop."""

    def __init__(self, delay: timedelta) -> None:
        self.delay = delay
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def start(self, callback: Callable[..., Any], *args: Any) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(
            self.delay.total_seconds(), self._fire, callback, args
        )

    def cancel(self) -> bool:
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    def _fire(self, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self._handle = None
        callback(*args)


class Debouncer:
    """Coalesces bursts of updates per resource id into one transition.

    Only the latest update scheduled within the window survives; earlier ones
    are discarded rather than merged.
    """

    def __init__(self, delay: timedelta, handler: TransitionHandler) -> None:
        self.delay = delay
        self._handler = handler
        self._timers: dict[int, CancellableTimer] = {}
        self._pending: dict[int, tuple[int, StateUpdate]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def schedule(self, resource_id: int, now: int, update: StateUpdate) -> None:
        self._pending[resource_id] = (now, update)
        timer = self._timers.get(resource_id)
        if timer is None:
            timer = self._timers[resource_id] = CancellableTimer(self.delay)
        timer.start(self._fire, resource_id)

    def cancel(self, resource_id: int) -> bool:
        self._pending.pop(resource_id, None)
        timer = self._timers.pop(resource_id, None)
        return timer.cancel() if timer else False

    def cancel_all(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._pending.clear()

    def pending_ids(self) -> list[int]:
        return list(self._pending)

    def pending_update(self, resource_id: int) -> Optional[StateUpdate]:
        entry = self._pending.get(resource_id)
        return entry[1] if entry else None

    async def drain(self) -> None:
        """Wait for handler runs that have already started."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, resource_id: int) -> None:
        self._timers.pop(resource_id, None)
        entry = self._pending.pop(resource_id, None)
        if entry is None:
            return
        now, update = entry
        task = asyncio.ensure_future(self._handler(resource_id, now, update))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "State transition handler failed", exc_info=(type(exc), exc, exc.__traceback__)
            )
