"""Read-only query service over the record store."""
import logging
from typing import Optional

from samharvest.query.filters import SearchFilters, build_clauses
from samharvest.query.models import DetailResponse, FilterOption, SearchResponse, StatsResponse
from samharvest.store.models import CallLogEntry
from samharvest.store.records import RecordStore
from samharvest.store.state import StateDB

logger = logging.getLogger(__name__)

# Response field -> stored column
FACETS = {
    "naics_codes": "naics_code",
    "opp_types": "opp_type",
    "set_asides": "set_aside",
    "states": "pop_state_code",
    "departments": "department",
}


class QueryService:
    """Filtered search, facet counts and single-record lookup."""

    def __init__(self, records: RecordStore, state: Optional[StateDB] = None):
        self.records = records
        self.state = state

    async def search(self, filters: Optional[SearchFilters] = None) -> SearchResponse:
        """Search with all provided filters AND-combined; total counts before paging."""
        filters = filters or SearchFilters()
        clauses = build_clauses(filters)
        rows, total = await self.records.query(clauses, filters.limit, filters.offset)
        logger.debug(f"Search with {len(clauses)} clauses matched {total} records")
        return SearchResponse(
            total=total,
            limit=filters.limit,
            offset=filters.offset,
            opportunities=rows,
        )

    async def facet_counts(self) -> StatsResponse:
        """Value counts per facet over the whole corpus, independent of any filters."""
        facets = await self.records.facet_counts(tuple(FACETS.values()))
        total = await self.records.count()
        return StatsResponse(
            total_opportunities=total,
            **{
                field: [FilterOption(value=value, count=count) for value, count in facets[column]]
                for field, column in FACETS.items()
            },
        )

    async def get_record(self, notice_id: str) -> Optional[DetailResponse]:
        """Full record with contacts, or None when not stored."""
        found = await self.records.get(notice_id)
        if found is None:
            return None
        opportunity, contacts = found
        return DetailResponse(opportunity=opportunity, contacts=contacts)

    async def recent_calls(self, limit: int = 100) -> list[CallLogEntry]:
        if self.state is None:
            raise RuntimeError("QueryService was created without a state store")
        return await self.state.recent_calls(min(max(limit, 1), 1000))
