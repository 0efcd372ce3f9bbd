"""Tab collector: turns host tab events into persisted per-page time."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .accounting import account_previous
from .aggregation import Aggregator
from .clock import now_ms
from .config import TrackerSettings
from .debounce import Debouncer
from .models import ResourceState, StateUpdate, TrackedData
from .registry import ResourceRegistry
from .source import ResourceGone, ResourceSource, TabInfo
from .store import DurableStore

logger = logging.getLogger(__name__)


class TabCollector:
    """Wires host events through the debouncer, registry and aggregator.

    All handlers must run on the same event loop. Reads for reporting go
    through :meth:`get_aggregate_for_range`, which flushes first.
    """

    def __init__(
        self,
        source: ResourceSource,
        store: DurableStore,
        settings: Optional[TrackerSettings] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.settings = settings or TrackerSettings()
        self.source = source
        self.registry = ResourceRegistry()
        self.aggregator = Aggregator(store, self.settings.flush_delay, clock=clock)
        self.debouncer = Debouncer(self.settings.transition_debounce, self._handle_transition)
        self._clock = clock
        self._focused_container: Optional[int] = None
        self._system_idle = False
        self._active_by_container: dict[int, int] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        now = self._clock()
        self._focused_container = await self.source.focused_container()
        for info in await self.source.list_resources():
            self._register(info, now)
        if self.settings.safety_flush_interval is not None:
            self.aggregator.start_safety_flush(self.settings.safety_flush_interval)
        self._running = True
        logger.info("Collector started; %d tabs tracked.", len(self.registry))

    async def shutdown(self) -> None:
        """Account every open tab as of now and flush."""
        self._running = False
        self.debouncer.cancel_all()
        await self.debouncer.drain()
        now = self._clock()
        for _, state in self.registry.snapshot_all():
            self._account(state, now)
        self.registry.rebase(now)
        await self.aggregator.close()
        logger.info("Collector stopped.")

    async def created(self, tab_id: int) -> None:
        try:
            info = await self.source.get_resource(tab_id)
        except ResourceGone:
            logger.debug("Tab %s vanished before it could be registered.", tab_id)
            return
        self._register(info, self._clock())

    async def updated(self, tab_id: int, fields: StateUpdate) -> None:
        if fields.is_active is False:
            self._forget_active(tab_id)
        self._schedule(tab_id, self._clock(), fields)

    async def activated(self, tab_id: int, container_id: int) -> None:
        now = self._clock()
        previous_ids = {
            self.registry.find_active_in_container(container_id),
            self._active_by_container.get(container_id),
        }
        for previous_id in previous_ids - {None, tab_id}:
            self._schedule(previous_id, now, StateUpdate(is_active=False))
        self._set_active(tab_id, container_id)
        self._schedule(
            tab_id,
            now,
            StateUpdate(
                is_active=True,
                container_id=container_id,
                is_focused=container_id == self._focused_container,
            ),
        )

    async def removed(self, tab_id: int) -> None:
        self.debouncer.cancel(tab_id)
        self._forget_active(tab_id)
        self._finalize(tab_id, self._clock())

    async def container_focus_changed(self, container_id: Optional[int]) -> None:
        now = self._clock()
        self._focused_container = container_id
        for tab_id, state in self.registry.snapshot_all():
            pending = self.debouncer.pending_update(tab_id) or StateUpdate()
            tab_container = _pick(pending.container_id, state.container_id)
            focused = container_id is not None and tab_container == container_id
            if _pick(pending.is_focused, state.is_focused) != focused:
                self._schedule(tab_id, now, StateUpdate(is_focused=focused))

    async def system_idle_changed(self, is_idle: bool) -> None:
        now = self._clock()
        self._system_idle = is_idle
        for tab_id, state in self.registry.snapshot_all():
            pending = self.debouncer.pending_update(tab_id) or StateUpdate()
            if _pick(pending.is_idle, state.is_idle) != is_idle:
                self._schedule(tab_id, now, StateUpdate(is_idle=is_idle))

    async def get_aggregate_for_range(self, start_day: str, end_day: str) -> TrackedData:
        return await self.aggregator.read_range(start_day, end_day)

    async def request_clear(self) -> None:
        self.debouncer.cancel_all()
        await self.aggregator.clear_all()
        self.registry.rebase(self._clock())
        self._active_by_container = {
            state.container_id: tab_id
            for tab_id, state in self.registry.snapshot_all()
            if state.is_active
        }

    async def _handle_transition(self, tab_id: int, now: int, update: StateUpdate) -> None:
        if tab_id not in self.registry:
            try:
                info = await self.source.get_resource(tab_id)
            except ResourceGone:
                logger.debug("Tab %s is gone; treating update as removal.", tab_id)
                self._finalize(tab_id, now)
                return
            self._register(info, now)
        previous = self.registry.transition(tab_id, update, now)
        if previous is not None:
            self._account(previous, now)

    def _register(self, info: TabInfo, now: int) -> None:
        previous = self.registry.upsert(
            info.tab_id,
            StateUpdate(
                url=info.url,
                title=info.title,
                container_id=info.window_id,
                is_active=info.active,
                is_focused=(
                    self._focused_container is not None
                    and info.window_id == self._focused_container
                ),
                is_idle=self._system_idle,
            ),
            now,
        )
        if previous is not None:
            self._account(previous, now)
        if info.active and info.tab_id in self.registry:
            self._active_by_container.setdefault(info.window_id, info.tab_id)

    def _schedule(self, tab_id: int, now: int, update: StateUpdate) -> None:
        # Fields already waiting for this tab survive unless the new update sets them.
        pending = self.debouncer.pending_update(tab_id)
        if pending is not None:
            update = pending.merge(update)
        self.debouncer.schedule(tab_id, now, update)

    def _set_active(self, tab_id: int, container_id: int) -> None:
        self._forget_active(tab_id)
        self._active_by_container[container_id] = tab_id

    def _forget_active(self, tab_id: int) -> None:
        for container_id, active_id in list(self._active_by_container.items()):
            if active_id == tab_id:
                del self._active_by_container[container_id]

    def _finalize(self, tab_id: int, now: int) -> None:
        final = self.registry.remove(tab_id)
        if final is not None:
            self._account(final, now)

    def _account(self, previous: ResourceState, end_time: int) -> None:
        delta = account_previous(previous, end_time, self.settings.track_focus_and_idle)
        if delta is not None:
            self.aggregator.record(delta)


def _pick(pending, current):
    return current if pending is None else pending
