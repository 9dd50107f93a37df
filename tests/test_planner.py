"""Tests for window planning."""
from datetime import date

from samharvest.fetch.endpoints import DateWindow
from samharvest.jobs.planner import (
    HarvestSettings,
    backfill_cursor,
    incremental_window,
    next_backfill_window,
    plan_run,
)
from samharvest.store.models import CallContext, Checkpoint

TODAY = date(2024, 6, 13)
SETTINGS = HarvestSettings(incremental_days=3, backfill_window_days=3, max_catchup_days=30)


def test_incremental_window_trails_today():
    assert incremental_window(TODAY, SETTINGS) == DateWindow(date(2024, 6, 10), TODAY)


def test_incremental_window_catches_up_gap():
    """Test that a missed run widens the window back to the last incremental date."""
    window = incremental_window(TODAY, SETTINGS, last_incremental=date(2024, 6, 1))
    assert window == DateWindow(date(2024, 6, 1), TODAY)


def test_incremental_catch_up_bounded():
    window = incremental_window(TODAY, SETTINGS, last_incremental=date(2023, 1, 1))
    assert window == DateWindow(date(2024, 5, 14), TODAY)


def test_backfill_cursor_precedence():
    checkpoint = Checkpoint(backfill_cursor=date(2024, 1, 4))
    incremental_start = date(2024, 6, 10)
    assert backfill_cursor(Checkpoint(), incremental_start) == incremental_start
    assert backfill_cursor(checkpoint, incremental_start) == date(2024, 1, 4)
    assert backfill_cursor(checkpoint, incremental_start, override=date(2023, 5, 31)) == date(2023, 6, 1)


def test_next_backfill_window_ends_before_cursor():
    window = next_backfill_window(date(2024, 1, 4), SETTINGS, date(2024, 6, 10))
    assert window == DateWindow(date(2024, 1, 1), date(2024, 1, 3))


def test_backfill_never_overlaps_incremental():
    window = next_backfill_window(date(2024, 6, 20), SETTINGS, date(2024, 6, 10))
    assert window.end == date(2024, 6, 9)


def test_backfill_clipped_to_floor():
    settings = HarvestSettings(backfill_window_days=90, backfill_floor=date(2018, 1, 1))
    window = next_backfill_window(date(2018, 1, 10), settings, TODAY)
    assert window == DateWindow(date(2018, 1, 1), date(2018, 1, 9))


def test_backfill_done_at_floor():
    settings = HarvestSettings(backfill_window_days=90, backfill_floor=date(2018, 1, 1))
    assert next_backfill_window(date(2018, 1, 1), settings, TODAY) is None


def test_plan_run_one_window_per_call():
    plan = plan_run(Checkpoint(backfill_cursor=date(2024, 1, 4)), TODAY, SETTINGS, max_calls=3)
    assert [(p.context, p.window) for p in plan] == [
        (CallContext.INCREMENTAL, DateWindow(date(2024, 6, 10), TODAY)),
        (CallContext.BACKFILL, DateWindow(date(2024, 1, 1), date(2024, 1, 3))),
        (CallContext.BACKFILL, DateWindow(date(2023, 12, 29), date(2023, 12, 31))),
    ]


def test_plan_run_zero_budget():
    assert plan_run(Checkpoint(), TODAY, SETTINGS, max_calls=0) == []


def test_plan_run_backfill_complete():
    plan = plan_run(Checkpoint(backfill_complete=True), TODAY, SETTINGS, max_calls=5)
    assert [p.context for p in plan] == [CallContext.INCREMENTAL]


def test_planned_window_to_dict():
    plan = plan_run(Checkpoint(), TODAY, SETTINGS, max_calls=1)
    assert plan[0].to_dict() == {"context": "incremental", "from": "2024-06-10", "to": "2024-06-13"}
