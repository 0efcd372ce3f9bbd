"""In-memory registry of tracked tab states."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from .models import ResourceState, StateUpdate
from .normalization import (
    EXCLUDED_HOSTNAMES,
    derive_hostname,
    normalize_title,
    resource_key,
)

logger = logging.getLogger(__name__)

NO_CONTAINER = -1


class ResourceRegistry:
    """Maps resource ids to their current state.

    Every method is synchronous, so a mutation completes before any other
    coroutine on the loop can observe the registry. Unknown ids are reported as
    ``None`` rather than raised.
    """

    def __init__(self) -> None:
        self._states: dict[int, ResourceState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._states

    def get(self, resource_id: int) -> Optional[ResourceState]:
        state = self._states.get(resource_id)
        return replace(state) if state else None

    def upsert(
        self, resource_id: int, observed: StateUpdate, now: int
    ) -> Optional[ResourceState]:
        """Record a first or refreshed observation of a resource.

        A refresh of a tracked resource goes through :meth:`transition`, so the
        state it ends is returned for accounting like any other transition.
        """
        if resource_id in self._states:
            return self.transition(resource_id, observed, now)

        hostname = derive_hostname(observed.url)
        if hostname in EXCLUDED_HOSTNAMES:
            logger.debug(
                "Ignoring resource %s with unsupported hostname type %s",
                resource_id,
                hostname,
            )
            return None

        self._states[resource_id] = self._fresh_state(
            resource_id, observed.url, observed, None, now
        )
        logger.debug("Tracking resource %s at %s", resource_id, observed.url)
        return None

    def transition(
        self, resource_id: int, update: StateUpdate, now: int
    ) -> Optional[ResourceState]:
        """Apply a state change and return the state that just ended.

        Returns ``None`` when the resource is untracked or when the update does
        not change anything that affects accounting.
        """
        current = self._states.get(resource_id)
        if current is None:
            return None
        previous = replace(current)
        start = max(now, current.state_start_time)

        new_url = update.url if update.url is not None else current.url
        hostname = derive_hostname(new_url)
        if hostname in EXCLUDED_HOSTNAMES:
            del self._states[resource_id]
            logger.info(
                "Resource %s moved to unsupported type %s; final time goes to %s",
                resource_id,
                hostname,
                previous.url,
            )
            return previous

        if new_url != current.url:
            self._states[resource_id] = self._fresh_state(
                resource_id, new_url, update, current, start
            )
            logger.debug(
                "Resource %s navigated from %s to %s", resource_id, current.url, new_url
            )
            return previous

        changes = update.changes()
        changes.pop("url", None)
        if "title" in changes:
            changes["title"] = normalize_title(changes["title"], new_url)
        merged = replace(current, **changes)

        if not _meaningful_change(current, merged):
            if merged.container_id != current.container_id:
                current.container_id = merged.container_id
            return None

        merged.state_start_time = start
        merged.first_seen_at = current.first_seen_at
        self._states[resource_id] = merged
        return previous

    def remove(self, resource_id: int) -> Optional[ResourceState]:
        state = self._states.pop(resource_id, None)
        if state is None:
            logger.debug("Attempted to remove untracked resource %s", resource_id)
        return state

    def snapshot_all(self) -> list[tuple[int, ResourceState]]:
        """Return copies of every state, safe to hold across later mutations."""
        return [(resource_id, replace(state)) for resource_id, state in self._states.items()]

    def find_active_in_container(self, container_id: int) -> Optional[int]:
        for resource_id, state in self._states.items():
            if state.container_id == container_id and state.is_active:
                return resource_id
        return None

    def rebase(self, now: int) -> None:
        """Restart every state's clock, discarding time not yet accounted."""
        for state in self._states.values():
            state.state_start_time = max(now, state.state_start_time)
            state.first_seen_at = state.state_start_time

    @staticmethod
    def _fresh_state(
        resource_id: int,
        url: str,
        update: StateUpdate,
        previous: Optional[ResourceState],
        now: int,
    ) -> ResourceState:
        def pick(name: str, default):
            value = getattr(update, name)
            if value is not None:
                return value
            if previous is not None:
                return getattr(previous, name)
            return default

        return ResourceState(
            resource_id=resource_id,
            url=url,
            hostname=derive_hostname(url),
            resource_key=resource_key(url),
            title=normalize_title(update.title, url),
            container_id=pick("container_id", NO_CONTAINER),
            state_start_time=now,
            first_seen_at=now,
            is_active=pick("is_active", False),
            is_focused=pick("is_focused", False),
            is_idle=pick("is_idle", False),
        )


def _meaningful_change(before: ResourceState, after: ResourceState) -> bool:
    return (
        before.is_active != after.is_active
        or before.is_focused != after.is_focused
        or before.is_idle != after.is_idle
        or before.title != after.title
    )
