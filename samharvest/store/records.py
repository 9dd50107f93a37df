"""Record store: idempotent upserts and the read-side query surface."""
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import orjson

from samharvest.config import STATE_DB
from samharvest.errors import StoreError
from samharvest.parse.models import Opportunity
from samharvest.query.filters import Clause, render_where
from samharvest.store.db import Database, retry_on_lock
from samharvest.store.models import (
    CONTACT_COLUMNS,
    DETAIL_COLUMNS,
    ROW_COLUMNS,
    ContactRow,
    OpportunityDetail,
    OpportunityRow,
)

logger = logging.getLogger(__name__)

OPPORTUNITY_COLUMNS = (
    "notice_id", "title", "solicitation_number", "department", "sub_tier", "office",
    "full_parent_path_name", "organization_type", "opp_type", "base_type",
    "posted_date", "response_deadline", "archive_date", "naics_code",
    "classification_code", "set_aside", "set_aside_description", "description",
    "ui_link", "active", "resource_links",
    "award_amount", "award_date", "award_number",
    "awardee_name", "awardee_duns", "awardee_uei_sam",
    "pop_state_code", "pop_state_name", "pop_city_code", "pop_city_name",
    "pop_country_code", "pop_country_name", "pop_zip",
    "raw_json",
)

FACET_COLUMNS = ("naics_code", "opp_type", "set_aside", "pop_state_code", "department")

_UPSERT_SQL = "INSERT INTO opportunities ({cols}) VALUES ({marks}) ON CONFLICT(notice_id) DO UPDATE SET {updates}, modified_at = datetime('now')".format(
    cols=", ".join(OPPORTUNITY_COLUMNS),
    marks=", ".join("?" for _ in OPPORTUNITY_COLUMNS),
    updates=", ".join(f"{col} = excluded.{col}" for col in OPPORTUNITY_COLUMNS[1:]),
)

_INSERT_CONTACT_SQL = (
    "INSERT INTO contacts (notice_id, contact_type, full_name, email, phone, title) "
    "VALUES (?, ?, ?, ?, ?, ?)"
)


def _dumps(value: Any) -> Optional[str]:
    if value is None:
        return None
    return orjson.dumps(value).decode()


def opportunity_values(opp: Opportunity) -> tuple:
    """Flatten an opportunity into column order of ``OPPORTUNITY_COLUMNS``."""
    award = opp.award
    awardee = award.awardee if award else None
    pop = opp.place_of_performance
    state = pop.state if pop else None
    city = pop.city if pop else None
    country = pop.country if pop else None

    return (
        opp.notice_id,
        opp.title,
        opp.solicitation_number,
        opp.department,
        opp.sub_tier,
        opp.office,
        opp.full_parent_path_name,
        opp.organization_type,
        opp.opp_type,
        opp.base_type,
        opp.posted_date,
        opp.response_deadline,
        opp.archive_date,
        opp.naics_code,
        opp.classification_code,
        opp.set_aside,
        opp.set_aside_description,
        opp.description,
        opp.ui_link,
        opp.active,
        _dumps(opp.resource_links),
        award.amount if award else None,
        award.date if award else None,
        award.number if award else None,
        awardee.name if awardee else None,
        awardee.duns if awardee else None,
        awardee.uei_sam if awardee else None,
        state.code if state else None,
        state.name if state else None,
        city.code if city else None,
        city.name if city else None,
        country.code if country else None,
        country.name if country else None,
        pop.zip if pop else None,
        _dumps(opp.raw) if opp.raw else None,
    )


class RecordStore(Database):
    """Opportunities and their contacts."""

    def __init__(self, db_path: Path = STATE_DB):
        super().__init__(db_path)

    async def upsert_batch(self, records: Sequence[Opportunity]) -> int:
        """Atomically replace the given records and all of their contacts.

        Either every record in the batch is written or none is. Returns the
        number of records written.
        """
        records = [r for r in records if r.notice_id]
        if not records:
            return 0
        try:
            await self._write_batch(records)
        except sqlite3.Error as e:
            logger.error(f"Upsert of {len(records)} records failed: {e}")
            raise StoreError(f"Failed to upsert {len(records)} records: {e}") from e
        logger.debug(f"Upserted {len(records)} records")
        return len(records)

    @retry_on_lock
    async def _write_batch(self, records: list[Opportunity]) -> None:
        async with self.transaction() as db:
            for opp in records:
                await db.execute(_UPSERT_SQL, opportunity_values(opp))
                # Contacts have no identity of their own: replace them wholesale
                await db.execute("DELETE FROM contacts WHERE notice_id = ?", (opp.notice_id,))
                await db.executemany(
                    _INSERT_CONTACT_SQL,
                    [
                        (
                            opp.notice_id,
                            c.contact_type,
                            c.full_name,
                            c.email,
                            c.phone,
                            c.title,
                        )
                        for c in opp.contacts
                    ],
                )

    async def query(
        self, clauses: Iterable[Clause], limit: int, offset: int
    ) -> tuple[list[OpportunityRow], int]:
        """Return one page of matching rows (insertion order) and the filtered total."""
        where_sql, params = render_where(clauses)
        count_sql = f"SELECT COUNT(*) FROM opportunities {where_sql}"
        data_sql = (
            f"SELECT {', '.join(ROW_COLUMNS)} FROM opportunities {where_sql} "
            f"ORDER BY rowid LIMIT ? OFFSET ?"
        )
        try:
            async with self.transaction(write=False) as db:
                cursor = await db.execute(count_sql, params)
                total = (await cursor.fetchone())[0]
                cursor = await db.execute(data_sql, [*params, limit, offset])
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to query opportunities: {e}") from e
        return [OpportunityRow(**dict(row)) for row in rows], total

    async def get(self, notice_id: str) -> Optional[tuple[OpportunityDetail, list[ContactRow]]]:
        """Return a stored opportunity with its contacts, or None."""
        try:
            async with self.transaction(write=False) as db:
                cursor = await db.execute(
                    f"SELECT {', '.join(DETAIL_COLUMNS)} FROM opportunities WHERE notice_id = ?",
                    (notice_id,),
                )
                row = await cursor.fetchone()
                if row is None:
                    return None
                cursor = await db.execute(
                    f"SELECT {', '.join(CONTACT_COLUMNS)} FROM contacts "
                    f"WHERE notice_id = ? ORDER BY id",
                    (notice_id,),
                )
                contact_rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to load opportunity {notice_id}: {e}") from e

        data = dict(row)
        links = data.get("resource_links")
        data["resource_links"] = orjson.loads(links) if links else None
        return OpportunityDetail(**data), [ContactRow(**dict(c)) for c in contact_rows]

    async def count(self) -> int:
        async with self.connect() as db:
            cursor = await db.execute("SELECT COUNT(*) FROM opportunities")
            return (await cursor.fetchone())[0]

    async def facet_counts(
        self, columns: Sequence[str] = FACET_COLUMNS
    ) -> dict[str, list[tuple[str, int]]]:
        """Distinct non-empty values per column over the whole corpus, most frequent first."""
        unknown = set(columns) - set(FACET_COLUMNS)
        if unknown:
            raise ValueError(f"Not a facet column: {', '.join(sorted(unknown))}")

        facets: dict[str, list[tuple[str, int]]] = {}
        try:
            async with self.transaction(write=False) as db:
                for col in columns:
                    cursor = await db.execute(
                        f"SELECT {col}, COUNT(*) AS cnt FROM opportunities "
                        f"WHERE {col} IS NOT NULL AND {col} != '' "
                        f"GROUP BY {col} ORDER BY cnt DESC, {col} ASC"
                    )
                    facets[col] = [(row[0], row[1]) for row in await cursor.fetchall()]
        except sqlite3.Error as e:
            raise StoreError(f"Failed to compute facet counts: {e}") from e
        return facets
