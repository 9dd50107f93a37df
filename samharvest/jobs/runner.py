"""Harvest scheduler: incremental sync plus budgeted backfill."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from samharvest.errors import FetchError, RateLimited, StoreError
from samharvest.fetch.endpoints import DateWindow, SourceFilters
from samharvest.fetch.fetcher import Fetcher, FetchResult
from samharvest.jobs.planner import (
    HarvestSettings,
    PlannedWindow,
    backfill_cursor,
    incremental_window,
    next_backfill_window,
    plan_run,
)
from samharvest.jobs.run_control import RunControl
from samharvest.jobs.run_report import RunReportExporter
from samharvest.parse.models import Opportunity
from samharvest.store.models import CallContext, CallLogEntry, Checkpoint
from samharvest.store.records import RecordStore
from samharvest.store.state import StateDB

logger = logging.getLogger(__name__)


@dataclass
class SyncSummary:
    """Outcome of one scheduler invocation."""

    run_id: str
    dry_run: bool = False
    api_calls_used: int = 0
    records_synced: int = 0
    windows_completed: int = 0
    rate_limited: bool = False
    stop_reason: Optional[str] = None
    backfill_cursor: Optional[date] = None
    backfill_complete: bool = False
    last_incremental: Optional[date] = None
    planned: list[PlannedWindow] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "dry_run": self.dry_run,
            "api_calls_used": self.api_calls_used,
            "records_synced": self.records_synced,
            "windows_completed": self.windows_completed,
            "rate_limited": self.rate_limited,
            "stop_reason": self.stop_reason,
            "backfill_cursor": self.backfill_cursor.isoformat() if self.backfill_cursor else None,
            "backfill_complete": self.backfill_complete,
            "last_incremental": self.last_incremental.isoformat() if self.last_incremental else None,
            "planned": [p.to_dict() for p in self.planned],
            "errors": self.errors,
        }


class HarvestScheduler:
    """Drives the fetcher window by window and commits each window before moving on.

    The checkpoint is loaded once per run, threaded through the phases as a
    value and saved only after the window it describes has been committed.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        records: RecordStore,
        state: StateDB,
        settings: Optional[HarvestSettings] = None,
        exporter: Optional[RunReportExporter] = None,
    ):
        self.fetcher = fetcher
        self.records = records
        self.state = state
        self.settings = settings or HarvestSettings.from_config()
        self.exporter = exporter
        self._control: Optional[RunControl] = None
        self._run_id: Optional[str] = None

    def request_stop(self) -> None:
        """Stop the active run at the next window boundary."""
        if self._control is not None:
            self._control.request_stop()

    async def run(
        self,
        max_calls: Optional[int] = None,
        dry_run: bool = False,
        backfill_from: Optional[date] = None,
        today: Optional[date] = None,
    ) -> SyncSummary:
        """Run one harvesting invocation."""
        today = today or date.today()
        budget = self.settings.max_api_calls if max_calls is None else max_calls
        summary = SyncSummary(run_id=str(uuid.uuid4()), dry_run=dry_run)
        logger.info(f"Run ID: {summary.run_id} (budget {budget} calls)")

        if dry_run:
            return await self._dry_run(summary, budget, backfill_from, today)

        await self.state.acquire_run_lock(summary.run_id, self.settings.lock_ttl_minutes)
        control = RunControl(max_calls=budget)
        self._control = control
        self._run_id = summary.run_id
        checkpoint = Checkpoint()
        try:
            checkpoint = await self.state.load_checkpoint()
            checkpoint = await self._incremental_phase(checkpoint, today, control)
            checkpoint = await self._backfill_phase(checkpoint, today, control, backfill_from)
        finally:
            self._control = None
            self._run_id = None
            try:
                await self.state.release_run_lock(summary.run_id)
            except StoreError as e:
                logger.error(f"Could not release harvest lock for run {summary.run_id}: {e}")

        _, reason = control.should_stop()
        summary.stop_reason = reason or "Backfill complete"
        summary.api_calls_used = control.calls_used
        summary.records_synced = control.records_synced
        summary.windows_completed = control.windows_completed
        summary.rate_limited = control.rate_limited
        summary.errors = list(control.errors)
        summary.backfill_cursor = checkpoint.backfill_cursor
        summary.backfill_complete = checkpoint.backfill_complete
        summary.last_incremental = checkpoint.last_incremental

        await self._final_report(summary, control)
        return summary

    async def _save(self, checkpoint: Checkpoint) -> None:
        await self.state.save_checkpoint(checkpoint, run_id=self._run_id)

    async def _dry_run(
        self,
        summary: SyncSummary,
        budget: int,
        backfill_from: Optional[date],
        today: date,
    ) -> SyncSummary:
        """Plan the windows a run would fetch without calling the source or writing."""
        checkpoint = await self.state.load_checkpoint()
        summary.planned = plan_run(checkpoint, today, self.settings, budget, backfill_from)
        for planned in summary.planned:
            logger.info(f"  [dry-run] Would fetch {planned.context.value} window {planned.window}")
        summary.api_calls_used = 0
        summary.stop_reason = "Dry run"
        summary.backfill_cursor = checkpoint.backfill_cursor
        summary.backfill_complete = checkpoint.backfill_complete
        summary.last_incremental = checkpoint.last_incremental
        return summary

    async def _incremental_phase(
        self, checkpoint: Checkpoint, today: date, control: RunControl
    ) -> Checkpoint:
        window = incremental_window(today, self.settings, checkpoint.last_incremental)
        should_stop, reason = control.should_stop()
        if should_stop:
            logger.info(f"Skipping incremental window {window}: {reason}")
            return checkpoint

        logger.info(f"Incremental sync: {window}")
        if not await self._fetch_and_commit(CallContext.INCREMENTAL, window, control):
            return checkpoint

        checkpoint = checkpoint.with_incremental(window.end)
        await self._save(checkpoint)
        return checkpoint

    async def _backfill_phase(
        self,
        checkpoint: Checkpoint,
        today: date,
        control: RunControl,
        override: Optional[date],
    ) -> Checkpoint:
        should_stop, reason = control.should_stop()
        if should_stop:
            logger.info(f"No backfill this run: {reason}")
            return checkpoint
        if checkpoint.backfill_complete and override is None:
            logger.info("Backfill already complete")
            return checkpoint

        incremental_start = incremental_window(today, self.settings, checkpoint.last_incremental).start
        cursor = backfill_cursor(checkpoint, incremental_start, override)
        floor = self.settings.backfill_floor
        if override is not None:
            logger.info(f"Backfill starting from override {override.isoformat()}")
        logger.info(f"Backfill: {control.remaining} API calls remaining, cursor {cursor.isoformat()}")

        while True:
            should_stop, reason = control.should_stop()
            if should_stop:
                logger.info(f"Stopping backfill: {reason}")
                break

            window = next_backfill_window(cursor, self.settings, incremental_start)
            if window is None:
                logger.info(f"Backfill reached floor {floor}")
                if override is None and not checkpoint.backfill_complete:
                    checkpoint = checkpoint.mark_complete()
                    await self._save(checkpoint)
                break

            logger.info(f"  Backfill window: {window}")
            if not await self._fetch_and_commit(CallContext.BACKFILL, window, control):
                break

            cursor = window.start
            if override is None:
                checkpoint = checkpoint.with_cursor(cursor, floor)
                await self._save(checkpoint)

        if override is not None and control.completed_normally:
            if checkpoint.backfill_cursor is None or cursor < checkpoint.backfill_cursor:
                previous = checkpoint.backfill_cursor or incremental_start
                checkpoint = checkpoint.with_cursor(cursor, floor)
                await self._save(checkpoint)
                logger.info(f"Override run moved the backfill cursor to {cursor.isoformat()}")
                skipped_from = override + timedelta(days=1)
                if skipped_from < previous:
                    logger.warning(
                        f"Dates {skipped_from.isoformat()}..{(previous - timedelta(days=1)).isoformat()} "
                        f"lie between the override and the previous cursor and will not be backfilled"
                    )
        return checkpoint

    async def _fetch_and_commit(
        self, context: CallContext, window: DateWindow, control: RunControl
    ) -> bool:
        """Fetch one window, commit what came back and log the call.

        Returns True only if the window was fetched in full and committed; the
        caller may then advance the checkpoint past it.
        """
        if self._run_id is not None:
            await self.state.renew_run_lock(self._run_id)

        error: Optional[str] = None
        rate_limited = False
        try:
            result = await self.fetcher.fetch_window(window, max_pages=control.remaining)
        except FetchError as e:
            result = e.result or FetchResult()
            error = str(e)
            rate_limited = isinstance(e, RateLimited)
            logger.warning(f"{context.value} window {window} failed: {error}")

        control.record_calls(result.pages_consumed)
        await self._commit(context, window, result, error, rate_limited, control)

        logger.info(
            f"    {result.records_returned} records ({result.pages_consumed} API call"
            f"{'' if result.pages_consumed == 1 else 's'})"
        )

        if error is not None:
            control.record_error(f"{context.value} {window}: {error}", rate_limited=rate_limited)
            return False
        if not result.complete:
            logger.info(f"Window {window} left incomplete; it will be fetched again next run")
            return False
        control.record_window()
        return True

    async def _commit(
        self,
        context: CallContext,
        window: Optional[DateWindow],
        result: FetchResult,
        error: Optional[str],
        rate_limited: bool,
        control: Optional[RunControl] = None,
    ) -> None:
        """Upsert the fetched records, then append the call log entry.

        The call log entry is written even when the upsert fails, and a store
        failure propagates after it has been logged.
        """
        store_error: Optional[StoreError] = None
        if result.records:
            try:
                written = await self.records.upsert_batch(result.records)
                if control is not None:
                    control.record_records(written)
            except StoreError as e:
                store_error = e

        note = error
        if store_error is not None:
            note = f"{note}; {store_error}" if note else str(store_error)
        elif note is None and result.truncated:
            note = f"Truncated at {result.records_returned} of {result.total_available} records"

        await self.state.append_call_log(
            CallLogEntry(
                context=context,
                window_from=window.start if window else None,
                window_to=window.end if window else None,
                pages_consumed=result.pages_consumed,
                records_returned=result.records_returned,
                rate_limited=rate_limited,
                error=note,
            )
        )
        if store_error is not None:
            logger.error(f"Aborting run: {store_error}")
            raise store_error

    async def fetch_notice(self, notice_id: str) -> Optional[Opportunity]:
        """Look up one opportunity at the source, store it and return it."""
        try:
            result = await self.fetcher.fetch_notice(notice_id)
        except FetchError as e:
            await self._commit(
                CallContext.MANUAL, None, e.result or FetchResult(), str(e), isinstance(e, RateLimited)
            )
            raise
        await self._commit(CallContext.MANUAL, None, result, None, False)
        return result.records[0] if result.records else None

    async def fetch_manual(
        self,
        window: DateWindow,
        filters: Optional[SourceFilters] = None,
        max_calls: Optional[int] = None,
    ) -> FetchResult:
        """Fetch an explicit window with source filters, store the results.

        Does not touch the checkpoint.
        """
        max_pages = self.settings.max_api_calls if max_calls is None else max_calls
        try:
            result = await self.fetcher.fetch_window(window, filters=filters, max_pages=max_pages)
        except FetchError as e:
            await self._commit(
                CallContext.MANUAL, window, e.result or FetchResult(), str(e), isinstance(e, RateLimited)
            )
            raise
        await self._commit(CallContext.MANUAL, window, result, None, False)
        return result

    async def _final_report(self, summary: SyncSummary, control: RunControl) -> None:
        """Log the final report and export it."""
        run_summary = control.get_summary()

        logger.info("=" * 60)
        logger.info("SYNC SUMMARY")
        logger.info(f"Run ID: {summary.run_id}")
        logger.info(f"Elapsed: {run_summary['elapsed_minutes']:.2f} minutes")
        logger.info(f"API calls used: {summary.api_calls_used}/{control.max_calls}")
        logger.info(f"Records synced: {summary.records_synced}")
        logger.info(f"Windows completed: {summary.windows_completed}")
        if summary.backfill_cursor:
            logger.info(f"Backfill cursor: {summary.backfill_cursor.isoformat()}")
        if summary.rate_limited:
            logger.info("Status: Rate limited (will resume next run)")
        else:
            logger.info(f"Status: {summary.stop_reason}")
        logger.info("=" * 60)

        if self.exporter is not None:
            await self.exporter.export(summary.to_dict())
