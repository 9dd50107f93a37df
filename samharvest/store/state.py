"""SQLite state for harvesting: checkpoint, call log and run lock."""
import logging
import sqlite3
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from samharvest.config import STATE_DB
from samharvest.errors import RunInProgress, StoreError
from samharvest.store.db import Database, retry_on_lock
from samharvest.store.models import CallContext, CallLogEntry, Checkpoint

logger = logging.getLogger(__name__)

KEY_LAST_INCREMENTAL = "last_incremental"
KEY_BACKFILL_CURSOR = "backfill_cursor"
KEY_BACKFILL_COMPLETE = "backfill_complete"


def _parse_state_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


class StateDB(Database):
    """Tracks harvesting progress and every call made to the source."""

    def __init__(self, db_path: Path = STATE_DB):
        super().__init__(db_path)

    async def load_checkpoint(self) -> Checkpoint:
        """Load the persisted checkpoint (empty if never saved)."""
        try:
            async with self.connect() as db:
                cursor = await db.execute("SELECT key, value FROM sync_state")
                state = {row["key"]: row["value"] for row in await cursor.fetchall()}
        except sqlite3.Error as e:
            raise StoreError(f"Failed to load checkpoint: {e}") from e

        try:
            return Checkpoint(
                last_incremental=_parse_state_date(state.get(KEY_LAST_INCREMENTAL)),
                backfill_cursor=_parse_state_date(state.get(KEY_BACKFILL_CURSOR)),
                backfill_complete=state.get(KEY_BACKFILL_COMPLETE) == "1",
            )
        except ValueError as e:
            raise StoreError(f"Corrupt checkpoint in sync_state: {e}") from e

    async def save_checkpoint(self, checkpoint: Checkpoint, run_id: Optional[str] = None) -> None:
        """Persist the checkpoint in a single transaction.

        With ``run_id`` the write only succeeds while that run holds the run
        lock, and it renews the lease in the same transaction. Raises
        ``RunInProgress`` once the lock has been taken over.
        """
        values = {
            KEY_LAST_INCREMENTAL: checkpoint.last_incremental,
            KEY_BACKFILL_CURSOR: checkpoint.backfill_cursor,
        }
        try:
            await self._write_checkpoint(values, checkpoint.backfill_complete, run_id)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to save checkpoint: {e}") from e
        logger.debug(f"Saved checkpoint {checkpoint}")

    @retry_on_lock
    async def _write_checkpoint(
        self, values: dict[str, Optional[date]], complete: bool, run_id: Optional[str]
    ) -> None:
        async with self.transaction() as db:
            if run_id is not None:
                await self._renew_lease(db, run_id)
            for key, value in values.items():
                if value is None:
                    await db.execute("DELETE FROM sync_state WHERE key = ?", (key,))
                else:
                    await db.execute(
                        """
                        INSERT INTO sync_state (key, value) VALUES (?, ?)
                        ON CONFLICT(key) DO UPDATE SET value = excluded.value
                        """,
                        (key, value.isoformat()),
                    )
            await db.execute(
                """
                INSERT INTO sync_state (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (KEY_BACKFILL_COMPLETE, "1" if complete else "0"),
            )

    async def append_call_log(self, entry: CallLogEntry) -> int:
        """Append one call log row in its own transaction. Returns its id."""
        try:
            return await self._insert_call(entry)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to append call log entry: {e}") from e

    @retry_on_lock
    async def _insert_call(self, entry: CallLogEntry) -> int:
        async with self.transaction() as db:
            cursor = await db.execute(
                """
                INSERT INTO api_calls (
                    timestamp, context, window_from, window_to,
                    pages_consumed, records_returned, rate_limited, error
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.timestamp.isoformat(),
                    entry.context.value,
                    entry.window_from.isoformat() if entry.window_from else None,
                    entry.window_to.isoformat() if entry.window_to else None,
                    entry.pages_consumed,
                    entry.records_returned,
                    1 if entry.rate_limited else 0,
                    entry.error[:1000] if entry.error else None,
                ),
            )
            return cursor.lastrowid

    async def recent_calls(self, limit: int = 100) -> list[CallLogEntry]:
        """Return the most recent call log entries, newest first."""
        try:
            async with self.connect() as db:
                cursor = await db.execute(
                    "SELECT * FROM api_calls ORDER BY id DESC LIMIT ?", (limit,)
                )
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read call log: {e}") from e
        return [
            CallLogEntry(
                id=row["id"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                context=CallContext(row["context"]),
                window_from=_parse_state_date(row["window_from"]),
                window_to=_parse_state_date(row["window_to"]),
                pages_consumed=row["pages_consumed"],
                records_returned=row["records_returned"],
                rate_limited=bool(row["rate_limited"]),
                error=row["error"],
            )
            for row in rows
        ]

    async def acquire_run_lock(self, run_id: str, ttl_minutes: int) -> None:
        """Take the single-writer run lock or raise ``RunInProgress``.

        A lock older than ``ttl_minutes`` belongs to a run that died without
        releasing it and is taken over.
        """
        now = datetime.now(timezone.utc)
        stale_before = (now - timedelta(minutes=ttl_minutes)).isoformat()
        try:
            async with self.transaction() as db:
                cursor = await db.execute("SELECT run_id, acquired_at FROM run_lock WHERE id = 1")
                holder = await cursor.fetchone()
                if holder is not None:
                    if holder["acquired_at"] >= stale_before:
                        raise RunInProgress(
                            f"Run {holder['run_id']} holds the harvest lock "
                            f"since {holder['acquired_at']}"
                        )
                    logger.warning(
                        f"Taking over stale harvest lock of run {holder['run_id']} "
                        f"acquired at {holder['acquired_at']}"
                    )
                    await db.execute("DELETE FROM run_lock WHERE id = 1")
                await db.execute(
                    "INSERT INTO run_lock (id, run_id, acquired_at) VALUES (1, ?, ?)",
                    (run_id, now.isoformat()),
                )
        except sqlite3.Error as e:
            raise StoreError(f"Failed to acquire run lock: {e}") from e
        logger.info(f"Run {run_id} acquired the harvest lock")

    async def release_run_lock(self, run_id: str) -> None:
        """Release the run lock if this run still holds it."""
        try:
            async with self.transaction() as db:
                await db.execute("DELETE FROM run_lock WHERE id = 1 AND run_id = ?", (run_id,))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to release run lock: {e}") from e

    async def renew_run_lock(self, run_id: str) -> None:
        """Refresh the lease of a running harvest; raises ``RunInProgress`` if it was lost."""
        try:
            async with self.transaction() as db:
                await self._renew_lease(db, run_id)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to renew run lock: {e}") from e

    @staticmethod
    async def _renew_lease(db, run_id: str) -> None:
        cursor = await db.execute(
            "UPDATE run_lock SET acquired_at = ? WHERE id = 1 AND run_id = ?",
            (datetime.now(timezone.utc).isoformat(), run_id),
        )
        if cursor.rowcount == 0:
            raise RunInProgress(f"Run {run_id} no longer holds the harvest lock")
