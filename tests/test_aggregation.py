"""Tests for the Aggregator's batching and flush semantics."""

import asyncio
from datetime import timedelta

from conftest import T0

from tab_tracker.aggregation import Aggregator, merge_pending
from tab_tracker.clock import day_bucket
from tab_tracker.models import AccountingDelta, ActivityCategory, PageData, PendingEntry

DAY = day_bucket(T0)


def delta(
    duration_ms: int,
    *,
    key: str = "/x",
    hostname: str = "a.test",
    category: ActivityCategory = ActivityCategory.ACTIVE_FOCUSED,
    first_seen: int = T0,
    last_seen: int = T0 + 1000,
    title: str = "Page X",
) -> AccountingDelta:
    return AccountingDelta(
        day=DAY,
        hostname=hostname,
        resource_key=key,
        duration_ms=duration_ms,
        category=category,
        last_seen_at=last_seen,
        first_seen_at=first_seen,
        title=title,
    )


class TestRecord:
    def test_pending_entries_merge(self, memory_store, clock) -> None:
        async def scenario() -> None:
            aggregator = Aggregator(memory_store, timedelta(seconds=60), clock=clock)
            aggregator.record(delta(1000, first_seen=T0 + 50, last_seen=T0 + 1000))
            aggregator.record(
                delta(
                    400,
                    category=ActivityCategory.IDLE,
                    first_seen=T0,
                    last_seen=T0 + 900,
                    title="Renamed",
                )
            )
            aggregator.record(
                delta(300, category=ActivityCategory.INACTIVE, last_seen=T0 + 2000, title="")
            )
            assert aggregator.pending_count == 1
            await aggregator.force_flush()

        asyncio.run(scenario())
        page = memory_store.get_all()[DAY]["a.test"]["/x"]
        assert page.active_ms == 1400
        assert page.focused_ms == 1000
        assert page.idle_ms == 400
        assert page.first_seen == T0
        assert page.last_seen == T0 + 2000
        assert page.title == "Renamed"
        assert page.last_updated == clock.now

    def test_timer_flushes_after_delay(self, memory_store, clock) -> None:
        async def scenario() -> None:
            aggregator = Aggregator(memory_store, timedelta(milliseconds=20), clock=clock)
            aggregator.record(delta(500))
            assert memory_store.get_all() == {}
            await asyncio.sleep(0.2)
            assert aggregator.pending_count == 0

        asyncio.run(scenario())
        assert memory_store.get_all()[DAY]["a.test"]["/x"].active_ms == 500


class TestFlush:
    def test_merge_across_flush_cycles(self, memory_store, clock) -> None:
        async def scenario() -> None:
            aggregator = Aggregator(memory_store, timedelta(seconds=60), clock=clock)
            aggregator.record(delta(1200, first_seen=T0 + 300, last_seen=T0 + 1500))
            await aggregator.flush()
            aggregator.record(delta(800, first_seen=T0 + 100, last_seen=T0 + 5000))
            await aggregator.flush()

        asyncio.run(scenario())
        page = memory_store.get_all()[DAY]["a.test"]["/x"]
        assert page.active_ms == 2000
        assert page.first_seen == T0 + 100
        assert page.last_seen == T0 + 5000

    def test_second_flush_is_a_noop(self, failing_store, clock) -> None:
        async def scenario() -> None:
            aggregator = Aggregator(failing_store, timedelta(seconds=60), clock=clock)
            aggregator.record(delta(1000))
            await aggregator.flush()
            before = failing_store.get_all()
            await aggregator.flush()
            assert failing_store.get_all() == before

        asyncio.run(scenario())
        assert failing_store.set_calls == 1

    def test_store_failure_drops_cycle_without_requeue(self, failing_store, clock) -> None:
        async def scenario() -> Aggregator:
            aggregator = Aggregator(failing_store, timedelta(seconds=60), clock=clock)
            failing_store.failing = True
            aggregator.record(delta(1000, key="/lost"))
            await aggregator.flush()
            assert aggregator.pending_count == 0

            failing_store.failing = False
            aggregator.record(delta(250, key="/kept"))
            await aggregator.flush()
            return aggregator

        aggregator = asyncio.run(scenario())
        pages = failing_store.get_all()[DAY]["a.test"]
        assert "/lost" not in pages
        assert pages["/kept"].active_ms == 250
        assert aggregator.error_count == 1
        assert "disk unavailable" in aggregator.last_error

    def test_clear_all_discards_pending_and_store(self, memory_store, clock) -> None:
        async def scenario() -> None:
            aggregator = Aggregator(memory_store, timedelta(seconds=60), clock=clock)
            aggregator.record(delta(1000))
            await aggregator.flush()
            aggregator.record(delta(500, key="/y"))
            await aggregator.clear_all()
            assert aggregator.pending_count == 0
            await aggregator.flush()

        asyncio.run(scenario())
        assert memory_store.get_all() == {}

    def test_read_range_flushes_first(self, memory_store, clock) -> None:
        async def scenario():
            aggregator = Aggregator(memory_store, timedelta(seconds=60), clock=clock)
            aggregator.record(delta(1000))
            inside = await aggregator.read_range(DAY, DAY)
            outside = await aggregator.read_range("1999-01-01", "1999-12-31")
            return inside, outside

        inside, outside = asyncio.run(scenario())
        assert inside[DAY]["a.test"]["/x"].active_ms == 1000
        assert outside == {}

    def test_flush_reads_only_the_pending_days(self, failing_store, clock) -> None:
        old_page = PageData(first_seen=0, last_seen=0, last_updated=0, title="Old", active_ms=5)
        failing_store.set({"1999-01-01": {"old.test": {"/": old_page}}})

        async def scenario() -> None:
            aggregator = Aggregator(failing_store, timedelta(seconds=60), clock=clock)
            aggregator.record(delta(1000))
            await aggregator.flush()

        asyncio.run(scenario())
        assert failing_store.range_calls == [(DAY, DAY)]
        assert failing_store.get_all()["1999-01-01"]["old.test"]["/"] == old_page

    def test_read_failure_returns_empty_and_is_counted(self, failing_store, clock) -> None:
        async def scenario():
            aggregator = Aggregator(failing_store, timedelta(seconds=60), clock=clock)
            failing_store.failing_reads = True
            data = await aggregator.read_range(DAY, DAY)
            return aggregator, data

        aggregator, data = asyncio.run(scenario())
        assert data == {}
        assert aggregator.error_count == 1
        assert "database is locked" in aggregator.last_error

    def test_safety_flush_writes_periodically(self, memory_store, clock) -> None:
        async def scenario() -> None:
            aggregator = Aggregator(memory_store, timedelta(seconds=60), clock=clock)
            aggregator.start_safety_flush(timedelta(milliseconds=20))
            aggregator.record(delta(700))
            await asyncio.sleep(0.2)
            await aggregator.stop_safety_flush()

        asyncio.run(scenario())
        assert memory_store.get_all()[DAY]["a.test"]["/x"].active_ms == 700


class TestMergePending:
    def test_only_touched_pages_are_returned(self) -> None:
        current = {
            DAY: {
                "a.test": {
                    "/x": PageData(first_seen=T0, last_seen=T0 + 10, last_updated=T0, title="X"),
                    "/other": PageData(first_seen=T0, last_seen=T0, last_updated=T0, title="O"),
                }
            }
        }
        pending = {
            DAY: {"a.test": {"/x": PendingEntry(first_seen_at=T0 + 5, last_seen_at=T0 + 50, title="", delta_ms=40)}}
        }

        touched = merge_pending(current, pending, T0 + 60)

        assert list(touched[DAY]["a.test"]) == ["/x"]
        page = touched[DAY]["a.test"]["/x"]
        assert page.active_ms == 40
        assert page.title == "X"
        assert page.first_seen == T0
        assert page.last_updated == T0 + 60
