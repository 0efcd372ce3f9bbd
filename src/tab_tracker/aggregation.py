"""Batches accounting deltas in memory and flushes them to a durable store."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Callable, Optional

from .clock import now_ms
from .debounce import CancellableTimer
from .models import AccountingDelta, PageData, PendingEntry, TrackedData
from .store import DurableStore, StoreError

logger = logging.getLogger(__name__)

# day -> hostname -> resource_key -> PendingEntry
PendingAggregate = dict[str, dict[str, dict[str, PendingEntry]]]


class Aggregator:
    """Accumulates deltas and writes them out on a single global timer.

    A flush swaps the pending map for an empty one before touching the store,
    so deltas recorded while a write is in flight land in the next cycle. A
    failed write drops its cycle instead of re-queueing it.
    """

    def __init__(
        self,
        store: DurableStore,
        flush_delay: timedelta = timedelta(seconds=2),
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._clock = clock
        self._pending: PendingAggregate = {}
        self._timer = CancellableTimer(flush_delay)
        self._io_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[None]] = set()
        self._safety_task: Optional[asyncio.Task[None]] = None
        self.error_count = 0
        self.last_error: Optional[str] = None

    @property
    def pending_count(self) -> int:
        return sum(len(pages) for hosts in self._pending.values() for pages in hosts.values())

    def record(self, delta: AccountingDelta) -> None:
        pages = self._pending.setdefault(delta.day, {}).setdefault(delta.hostname, {})
        entry = pages.get(delta.resource_key)
        if entry is None:
            entry = pages[delta.resource_key] = PendingEntry(
                first_seen_at=delta.first_seen_at,
                last_seen_at=delta.last_seen_at,
                title=delta.title,
            )
        entry.add(delta)
        self._timer.start(self._on_timer)

    async def flush(self) -> None:
        pending, self._pending = self._pending, {}
        if not pending:
            return
        count = sum(len(pages) for hosts in pending.values() for pages in hosts.values())
        async with self._io_lock:
            try:
                current = await asyncio.to_thread(
                    self._store.get_range, min(pending), max(pending)
                )
                touched = merge_pending(current, pending, self._clock())
                await asyncio.to_thread(self._store.set, touched)
            except StoreError as exc:
                self._note_error(exc)
                logger.exception("Flush failed; dropped %d pending pages.", count)
                return
        logger.debug("Flushed %d pages.", count)

    async def force_flush(self) -> None:
        self._timer.cancel()
        await self.flush()

    async def clear_all(self) -> None:
        self._timer.cancel()
        self._pending = {}
        async with self._io_lock:
            await asyncio.to_thread(self._store.clear)
        logger.info("Cleared all tracking data.")

    async def read_range(self, start_day: str, end_day: str) -> TrackedData:
        """Return persisted pages for the inclusive day range after a flush.

        A store that cannot be read yields an empty result; the failure is
        counted in :attr:`error_count` instead of being raised.
        """
        await self.force_flush()
        async with self._io_lock:
            try:
                return await asyncio.to_thread(self._store.get_range, start_day, end_day)
            except StoreError as exc:
                self._note_error(exc)
                logger.exception("Failed to read %s..%s from the store.", start_day, end_day)
                return {}

    def start_safety_flush(self, interval: timedelta) -> None:
        if self._safety_task is None:
            self._safety_task = asyncio.create_task(self._safety_loop(interval.total_seconds()))

    async def stop_safety_flush(self) -> None:
        task, self._safety_task = self._safety_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def close(self) -> None:
        await self.stop_safety_flush()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.force_flush()

    def _note_error(self, exc: StoreError) -> None:
        self.error_count += 1
        self.last_error = str(exc)

    def _on_timer(self) -> None:
        task = asyncio.ensure_future(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._flush_done)

    def _flush_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            exc = task.exception()
            logger.error("Scheduled flush failed", exc_info=(type(exc), exc, exc.__traceback__))

    async def _safety_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if self._pending:
                logger.debug("Periodic safety flush.")
                await self.force_flush()


def merge_pending(current: TrackedData, pending: PendingAggregate, now: int) -> TrackedData:
    """Merge pending entries into persisted pages, returning only touched pages."""
    touched: TrackedData = {}
    for day, hosts in pending.items():
        for hostname, entries in hosts.items():
            existing_pages = current.get(day, {}).get(hostname, {})
            out = touched.setdefault(day, {}).setdefault(hostname, {})
            for key, entry in entries.items():
                page = existing_pages.get(key)
                if page is None:
                    page = PageData.from_pending(entry, now)
                else:
                    page.merge(entry, now)
                out[key] = page
    return touched
