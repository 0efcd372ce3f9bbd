"""Shared fixtures for the tab tracker tests."""

from __future__ import annotations

from typing import Optional

import pytest

from tab_tracker.models import ResourceState
from tab_tracker.normalization import derive_hostname, resource_key
from tab_tracker.store import MemoryStore, StoreError

# 2023-11-14 22:13:20 UTC; tests derive day buckets from it rather than hardcoding.
T0 = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FailingStore(MemoryStore):
    """Memory store whose writes fail while ``failing`` is set.

    Reads fail while ``failing_reads`` is set; ``range_calls`` records every
    ``get_range`` request.
    """

    def __init__(self) -> None:
        super().__init__()
        self.failing = False
        self.failing_reads = False
        self.set_calls = 0
        self.range_calls: list[tuple[str, str]] = []

    def get_range(self, start_day: str, end_day: str):
        self.range_calls.append((start_day, end_day))
        if self.failing_reads:
            raise StoreError("database is locked")
        return super().get_range(start_day, end_day)

    def set(self, root) -> None:
        self.set_calls += 1
        if self.failing:
            raise StoreError("disk unavailable")
        super().set(root)


def make_state(
    *,
    resource_id: int = 1,
    url: str = "https://a.test/x",
    title: Optional[str] = "Page X",
    container_id: int = 1,
    start: int = T0,
    first_seen: Optional[int] = None,
    is_active: bool = True,
    is_focused: bool = True,
    is_idle: bool = False,
) -> ResourceState:
    return ResourceState(
        resource_id=resource_id,
        url=url,
        hostname=derive_hostname(url),
        resource_key=resource_key(url),
        title=title or url,
        container_id=container_id,
        state_start_time=start,
        first_seen_at=start if first_seen is None else first_seen,
        is_active=is_active,
        is_focused=is_focused,
        is_idle=is_idle,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()
