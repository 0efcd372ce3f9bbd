"""Domain models for tracked tabs and the time attributed to them."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any, Optional


class ActivityCategory(str, Enum):
    INACTIVE = "inactive"
    IDLE = "idle"
    ACTIVE_UNFOCUSED = "active_unfocused"
    ACTIVE_FOCUSED = "active_focused"

    @property
    def counts_as_active(self) -> bool:
        return self is not ActivityCategory.INACTIVE


@dataclass(slots=True)
class ResourceState:
    """Current state of one tracked tab.

    ``state_start_time`` marks when the current combination of flags and title
    began; ``first_seen_at`` marks when the current URL was first observed.
    """

    resource_id: int
    url: str
    hostname: str
    resource_key: str
    title: str
    container_id: int
    state_start_time: int
    first_seen_at: int
    is_active: bool = False
    is_focused: bool = False
    is_idle: bool = False


@dataclass(slots=True, frozen=True)
class StateUpdate:
    """Partial update of a tab's observed fields. ``None`` means unchanged."""

    url: Optional[str] = None
    title: Optional[str] = None
    container_id: Optional[int] = None
    is_active: Optional[bool] = None
    is_focused: Optional[bool] = None
    is_idle: Optional[bool] = None

    def changes(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def merge(self, newer: StateUpdate) -> StateUpdate:
        """Overlay the fields ``newer`` sets on top of this update."""
        return replace(self, **newer.changes())


@dataclass(slots=True, frozen=True)
class AccountingDelta:
    """Time attributable to one tab state that has just ended."""

    day: str
    hostname: str
    resource_key: str
    duration_ms: int
    category: ActivityCategory
    last_seen_at: int
    first_seen_at: int
    title: str


@dataclass(slots=True)
class PendingEntry:
    """Unflushed totals for one (day, hostname, resource_key)."""

    first_seen_at: int
    last_seen_at: int
    title: str
    delta_ms: int = 0
    focused_ms: int = 0
    unfocused_ms: int = 0
    idle_ms: int = 0

    def add(self, delta: AccountingDelta) -> None:
        if delta.category is ActivityCategory.ACTIVE_FOCUSED:
            self.focused_ms += delta.duration_ms
        elif delta.category is ActivityCategory.ACTIVE_UNFOCUSED:
            self.unfocused_ms += delta.duration_ms
        elif delta.category is ActivityCategory.IDLE:
            self.idle_ms += delta.duration_ms
        if delta.category.counts_as_active:
            self.delta_ms += delta.duration_ms
        self.last_seen_at = max(self.last_seen_at, delta.last_seen_at)
        self.first_seen_at = min(self.first_seen_at, delta.first_seen_at)
        if delta.title:
            self.title = delta.title


@dataclass(slots=True)
class PageData:
    """Persisted totals for one page on one day."""

    first_seen: int
    last_seen: int
    last_updated: int
    title: str
    active_ms: int = 0
    focused_ms: int = 0
    unfocused_ms: int = 0
    idle_ms: int = 0

    def merge(self, pending: PendingEntry, now: int) -> None:
        self.active_ms += pending.delta_ms
        self.focused_ms += pending.focused_ms
        self.unfocused_ms += pending.unfocused_ms
        self.idle_ms += pending.idle_ms
        self.first_seen = min(self.first_seen, pending.first_seen_at)
        self.last_seen = max(self.last_seen, pending.last_seen_at)
        self.last_updated = now
        if pending.title:
            self.title = pending.title

    @classmethod
    def from_pending(cls, pending: PendingEntry, now: int) -> "PageData":
        return cls(
            first_seen=pending.first_seen_at,
            last_seen=pending.last_seen_at,
            last_updated=now,
            title=pending.title,
            active_ms=pending.delta_ms,
            focused_ms=pending.focused_ms,
            unfocused_ms=pending.unfocused_ms,
            idle_ms=pending.idle_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# day -> hostname -> resource_key -> PageData
TrackedData = dict[str, dict[str, dict[str, PageData]]]


def tracked_data_to_dict(data: TrackedData) -> dict[str, Any]:
    return {
        day: {
            hostname: {key: page.to_dict() for key, page in pages.items()}
            for hostname, pages in hosts.items()
        }
        for day, hosts in data.items()
    }
