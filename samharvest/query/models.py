"""Response models of the query service."""
from pydantic import BaseModel

from samharvest.store.models import ContactRow, OpportunityDetail, OpportunityRow


class SearchResponse(BaseModel):
    total: int
    limit: int
    offset: int
    opportunities: list[OpportunityRow]


class DetailResponse(BaseModel):
    opportunity: OpportunityDetail
    contacts: list[ContactRow]


class FilterOption(BaseModel):
    value: str
    count: int


class StatsResponse(BaseModel):
    total_opportunities: int
    naics_codes: list[FilterOption]
    opp_types: list[FilterOption]
    set_asides: list[FilterOption]
    states: list[FilterOption]
    departments: list[FilterOption]
