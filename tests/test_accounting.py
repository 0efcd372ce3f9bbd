"""Tests for the time-accounting functions."""

from conftest import T0, make_state

from tab_tracker.accounting import account_previous, classify
from tab_tracker.clock import day_bucket
from tab_tracker.models import ActivityCategory, StateUpdate
from tab_tracker.registry import ResourceRegistry


class TestClassify:
    def test_detailed_categories(self) -> None:
        assert classify(make_state(is_active=False)) is ActivityCategory.INACTIVE
        assert classify(make_state(is_idle=True)) is ActivityCategory.IDLE
        assert classify(make_state(is_focused=False)) is ActivityCategory.ACTIVE_UNFOCUSED
        assert classify(make_state()) is ActivityCategory.ACTIVE_FOCUSED

    def test_idle_wins_over_unfocused(self) -> None:
        state = make_state(is_focused=False, is_idle=True)
        assert classify(state) is ActivityCategory.IDLE

    def test_simple_mode_is_binary(self) -> None:
        assert classify(make_state(is_focused=False, is_idle=True), detailed=False) is (
            ActivityCategory.ACTIVE_FOCUSED
        )
        assert classify(make_state(is_active=False), detailed=False) is ActivityCategory.INACTIVE


class TestAccountPrevious:
    def test_delta_fields(self) -> None:
        state = make_state(start=T0, first_seen=T0 - 100)
        delta = account_previous(state, T0 + 2500)

        assert delta is not None
        assert delta.duration_ms == 2500
        assert delta.day == day_bucket(T0 + 2500)
        assert delta.hostname == "a.test"
        assert delta.resource_key == "/x"
        assert delta.category is ActivityCategory.ACTIVE_FOCUSED
        assert delta.last_seen_at == T0 + 2500
        assert delta.first_seen_at == T0 - 100
        assert delta.title == "Page X"

    def test_clock_regression_is_dropped(self, caplog) -> None:
        state = make_state(start=T0)
        assert account_previous(state, T0 - 1) is None
        assert "Clock regression" in caplog.text

    def test_zero_duration_is_dropped(self) -> None:
        assert account_previous(make_state(start=T0), T0) is None

    def test_malformed_state_is_dropped(self) -> None:
        state = make_state()
        state.url = ""
        assert account_previous(state, T0 + 10) is None
        assert account_previous(None, T0 + 10) is None

    def test_inactive_state_still_yields_metadata(self) -> None:
        delta = account_previous(make_state(is_active=False), T0 + 700)
        assert delta is not None
        assert delta.category is ActivityCategory.INACTIVE
        assert delta.last_seen_at == T0 + 700
        assert delta.title == "Page X"


class TestDurationConservation:
    def test_sum_of_deltas_spans_first_to_last_timestamp(self) -> None:
        registry = ResourceRegistry()
        registry.upsert(
            1, StateUpdate(url="https://a.test/x", title="X", container_id=1, is_active=True), T0
        )
        updates = [
            (T0 + 1_000, StateUpdate(is_focused=True)),
            (T0 + 2_500, StateUpdate(is_idle=True)),
            (T0 + 2_500, StateUpdate(is_idle=True)),
            (T0 + 4_000, StateUpdate(is_active=False)),
            (T0 + 7_000, StateUpdate(url="https://a.test/y")),
            (T0 + 7_200, StateUpdate(is_active=True, is_idle=False)),
            (T0 + 9_000, StateUpdate(title="Y, renamed")),
        ]
        deltas = []
        for now, update in updates:
            previous = registry.transition(1, update, now)
            if previous is not None:
                deltas.append(account_previous(previous, now))
        deltas.append(account_previous(registry.remove(1), T0 + 12_000))

        assert all(delta is not None for delta in deltas)
        assert sum(delta.duration_ms for delta in deltas) == 12_000

        inactive = sum(
            d.duration_ms for d in deltas if d.category is ActivityCategory.INACTIVE
        )
        active = sum(d.duration_ms for d in deltas if d.category.counts_as_active)
        assert inactive == 3_200
        assert active == 12_000 - 3_200
