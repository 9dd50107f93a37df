"""SQLite connection handling shared by the record and state stores."""
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from samharvest.config import STATE_DB
from samharvest.errors import StoreError
from samharvest.store.schema import SCHEMA

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_MS = 5000


def is_lock_contention(exc: BaseException) -> bool:
    """Check if an error is SQLite reporting a held write lock."""
    return isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower()


# Writers hold the lock for one short transaction; a busy writer is retried
# a few times on top of busy_timeout before the write is declared failed.
retry_on_lock = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    retry=retry_if_exception(is_lock_contention),
    reraise=True,
)


class Database:
    """SQLite database in WAL mode: readers never block the single writer."""

    def __init__(self, db_path: Path = STATE_DB):
        self.db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA synchronous=NORMAL")
                await db.executescript(SCHEMA)
                await db.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to initialize database at {self.db_path}: {e}") from e
        logger.info(f"Database initialized at {self.db_path}")

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection in autocommit mode with row access by name."""
        async with aiosqlite.connect(self.db_path, isolation_level=None) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys=ON")
            await db.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
            yield db

    @asynccontextmanager
    async def transaction(self, write: bool = True) -> AsyncIterator[aiosqlite.Connection]:
        """Run a block in one transaction.

        Write transactions take the write lock up front (``BEGIN IMMEDIATE``);
        read transactions pin a single WAL snapshot for all their statements.
        """
        async with self.connect() as db:
            await db.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            try:
                yield db
            except BaseException:
                await db.execute("ROLLBACK")
                raise
            else:
                await db.execute("COMMIT")
