"""Window planning for incremental and backfill harvesting."""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from samharvest.config import config
from samharvest.fetch.endpoints import DateWindow
from samharvest.parse.normalize import parse_iso_date
from samharvest.store.models import CallContext, Checkpoint

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class HarvestSettings:
    """Tunables of the harvest schedule."""

    max_api_calls: int = 10
    incremental_days: int = 3
    backfill_window_days: int = 90
    backfill_floor: Optional[date] = None
    max_catchup_days: int = 30
    lock_ttl_minutes: int = 60

    @classmethod
    def from_config(cls) -> "HarvestSettings":
        return cls(
            max_api_calls=config.MAX_API_CALLS,
            incremental_days=config.INCREMENTAL_DAYS,
            backfill_window_days=config.BACKFILL_WINDOW_DAYS,
            backfill_floor=parse_iso_date(config.BACKFILL_FLOOR) if config.BACKFILL_FLOOR else None,
            max_catchup_days=config.MAX_CATCHUP_DAYS,
            lock_ttl_minutes=config.LOCK_TTL_MINUTES,
        )


@dataclass(frozen=True)
class PlannedWindow:
    context: CallContext
    window: DateWindow

    def to_dict(self) -> dict:
        return {
            "context": self.context.value,
            "from": self.window.start.isoformat(),
            "to": self.window.end.isoformat(),
        }


def incremental_window(
    today: date,
    settings: HarvestSettings,
    last_incremental: Optional[date] = None,
) -> DateWindow:
    """Trailing window ending today.

    When the previous incremental run is older than the window start, the
    window reaches back to it (at most ``max_catchup_days``) so no gap opens
    between incremental runs.
    """
    start = today - timedelta(days=settings.incremental_days)
    if last_incremental is not None and last_incremental < start:
        catchup_limit = today - timedelta(days=settings.max_catchup_days)
        start = min(start, max(last_incremental, catchup_limit))
    return DateWindow(start, today)


def backfill_cursor(
    checkpoint: Checkpoint,
    incremental_start: date,
    override: Optional[date] = None,
) -> date:
    """Cursor the backfill phase starts from.

    An override names the first date to backfill (inclusive); otherwise the
    persisted cursor is used, or the incremental window start on a first run.
    """
    if override is not None:
        return override + ONE_DAY
    if checkpoint.backfill_cursor is not None:
        return checkpoint.backfill_cursor
    return incremental_start


def next_backfill_window(
    cursor: date,
    settings: HarvestSettings,
    incremental_start: date,
) -> Optional[DateWindow]:
    """Window ending the day before ``cursor``, or None once the floor is reached.

    The window never reaches into the incremental window, which always takes
    precedence.
    """
    end = min(cursor, incremental_start) - ONE_DAY
    floor = settings.backfill_floor
    if floor is not None and end < floor:
        return None
    start = end - timedelta(days=settings.backfill_window_days - 1)
    if floor is not None and start < floor:
        start = floor
    return DateWindow(start, end)


def plan_run(
    checkpoint: Checkpoint,
    today: date,
    settings: HarvestSettings,
    max_calls: int,
    override: Optional[date] = None,
) -> list[PlannedWindow]:
    """Windows a run would fetch, assuming one call per window."""
    plan: list[PlannedWindow] = []
    if max_calls <= 0:
        return plan

    incremental = incremental_window(today, settings, checkpoint.last_incremental)
    plan.append(PlannedWindow(CallContext.INCREMENTAL, incremental))

    if checkpoint.backfill_complete and override is None:
        return plan

    cursor = backfill_cursor(checkpoint, incremental.start, override)
    while len(plan) < max_calls:
        window = next_backfill_window(cursor, settings, incremental.start)
        if window is None:
            break
        plan.append(PlannedWindow(CallContext.BACKFILL, window))
        cursor = window.start
    return plan
