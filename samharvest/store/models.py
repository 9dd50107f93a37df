"""Models persisted by the store: read rows, call log entries, checkpoint."""
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CallContext(str, Enum):
    """Why a fetch was made."""

    INCREMENTAL = "incremental"
    BACKFILL = "backfill"
    MANUAL = "manual"


class CallLogEntry(BaseModel):
    """One fetcher invocation, successful or not. Append-only."""

    id: Optional[int] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    context: CallContext
    window_from: Optional[date] = None
    window_to: Optional[date] = None
    pages_consumed: int = 0
    records_returned: int = 0
    rate_limited: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class Checkpoint:
    """Harvesting progress markers.

    ``backfill_cursor`` is the earliest posted date already covered by
    backfill; the next backfill window ends the day before it.
    """

    last_incremental: Optional[date] = None
    backfill_cursor: Optional[date] = None
    backfill_complete: bool = False

    def with_incremental(self, covered_until: date) -> "Checkpoint":
        return replace(self, last_incremental=covered_until)

    def with_cursor(self, cursor: date, floor: Optional[date] = None) -> "Checkpoint":
        if self.backfill_cursor is not None and cursor > self.backfill_cursor:
            raise ValueError(
                f"Backfill cursor cannot move forward ({self.backfill_cursor} -> {cursor})"
            )
        complete = self.backfill_complete or (floor is not None and cursor <= floor)
        return replace(self, backfill_cursor=cursor, backfill_complete=complete)

    def mark_complete(self) -> "Checkpoint":
        return replace(self, backfill_complete=True)


class ContactRow(BaseModel):
    contact_type: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    title: Optional[str] = None


class OpportunityRow(BaseModel):
    """List-view projection of a stored opportunity."""

    notice_id: Optional[str] = None
    title: Optional[str] = None
    solicitation_number: Optional[str] = None
    department: Optional[str] = None
    sub_tier: Optional[str] = None
    office: Optional[str] = None
    opp_type: Optional[str] = None
    base_type: Optional[str] = None
    posted_date: Optional[str] = None
    response_deadline: Optional[str] = None
    naics_code: Optional[str] = None
    set_aside: Optional[str] = None
    set_aside_description: Optional[str] = None
    active: Optional[str] = None
    ui_link: Optional[str] = None
    pop_state_code: Optional[str] = None
    pop_state_name: Optional[str] = None


class OpportunityDetail(OpportunityRow):
    """Full stored opportunity."""

    full_parent_path_name: Optional[str] = None
    organization_type: Optional[str] = None
    archive_date: Optional[str] = None
    classification_code: Optional[str] = None
    description: Optional[str] = None
    resource_links: Optional[list[str]] = None
    award_amount: Optional[str] = None
    award_date: Optional[str] = None
    award_number: Optional[str] = None
    awardee_name: Optional[str] = None
    awardee_duns: Optional[str] = None
    awardee_uei_sam: Optional[str] = None
    pop_city_code: Optional[str] = None
    pop_city_name: Optional[str] = None
    pop_country_code: Optional[str] = None
    pop_country_name: Optional[str] = None
    pop_zip: Optional[str] = None
    created_at: Optional[str] = None
    modified_at: Optional[str] = None


ROW_COLUMNS = tuple(OpportunityRow.model_fields)
DETAIL_COLUMNS = tuple(OpportunityDetail.model_fields)
CONTACT_COLUMNS = tuple(ContactRow.model_fields)
