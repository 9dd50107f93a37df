"""Search filter descriptor and the predicate clauses built from it.

A ``SearchFilters`` bag is turned into a flat list of clauses, one per
non-empty field, which the store renders as an AND-combined WHERE clause.
"""
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, Field, field_validator

DEFAULT_LIMIT = 25
MAX_LIMIT = 100

TEXT_SEARCH_COLUMNS = ("title", "solicitation_number", "department")


class SearchFilters(BaseModel):
    """Ephemeral read-side query descriptor."""

    search: Optional[str] = None
    naics_codes: list[str] = Field(default_factory=list)
    opp_type: Optional[str] = None
    set_aside: Optional[str] = None
    state: Optional[str] = None
    department: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    active_only: bool = False
    limit: int = Field(default=DEFAULT_LIMIT, ge=1)
    offset: int = Field(default=0, ge=0)

    @field_validator("naics_codes", mode="before")
    @classmethod
    def split_codes(cls, value: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple, set)):
            return [str(v).strip() for v in value if v is not None and str(v).strip()]
        return value

    @field_validator("limit")
    @classmethod
    def cap_limit(cls, value: int) -> int:
        return min(value, MAX_LIMIT)


@dataclass(frozen=True)
class TextMatch:
    """Case-insensitive substring match against any of ``columns``."""

    term: str
    columns: tuple[str, ...] = TEXT_SEARCH_COLUMNS

    def to_sql(self) -> tuple[str, list[Any]]:
        escaped = self.term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        parts = [f"lower({col}) LIKE ? ESCAPE '\\'" for col in self.columns]
        return f"({' OR '.join(parts)})", [pattern] * len(self.columns)


@dataclass(frozen=True)
class InSet:
    column: str
    values: tuple[str, ...]

    def to_sql(self) -> tuple[str, list[Any]]:
        marks = ", ".join("?" for _ in self.values)
        return f"{self.column} IN ({marks})", list(self.values)


@dataclass(frozen=True)
class Equals:
    column: str
    value: str

    def to_sql(self) -> tuple[str, list[Any]]:
        return f"{self.column} = ?", [self.value]


@dataclass(frozen=True)
class OnOrAfter:
    column: str
    value: date

    def to_sql(self) -> tuple[str, list[Any]]:
        return f"{self.column} >= ?", [self.value.isoformat()]


@dataclass(frozen=True)
class OnOrBefore:
    column: str
    value: date

    def to_sql(self) -> tuple[str, list[Any]]:
        # posted_date may carry a time component; compare on the date prefix
        return f"substr({self.column}, 1, 10) <= ?", [self.value.isoformat()]


@dataclass(frozen=True)
class ActiveOnly:
    """Records whose source-provided ``active`` flag is Yes."""

    def to_sql(self) -> tuple[str, list[Any]]:
        return "lower(trim(active)) = 'yes'", []


Clause = Union[TextMatch, InSet, Equals, OnOrAfter, OnOrBefore, ActiveOnly]


def build_clauses(filters: SearchFilters) -> list[Clause]:
    """Build one clause per non-empty filter field."""
    clauses: list[Clause] = []

    if filters.search and filters.search.strip():
        clauses.append(TextMatch(filters.search.strip()))
    if filters.naics_codes:
        clauses.append(InSet("naics_code", tuple(dict.fromkeys(filters.naics_codes))))
    for column, value in (
        ("opp_type", filters.opp_type),
        ("set_aside", filters.set_aside),
        ("pop_state_code", filters.state),
        ("department", filters.department),
    ):
        if value:
            clauses.append(Equals(column, value))
    if filters.date_from:
        clauses.append(OnOrAfter("posted_date", filters.date_from))
    if filters.date_to:
        clauses.append(OnOrBefore("posted_date", filters.date_to))
    if filters.active_only:
        clauses.append(ActiveOnly())

    return clauses


def render_where(clauses: Iterable[Clause]) -> tuple[str, list[Any]]:
    """Render clauses as ``WHERE a AND b ...`` plus positional parameters."""
    fragments: list[str] = []
    params: list[Any] = []
    for clause in clauses:
        sql, clause_params = clause.to_sql()
        fragments.append(sql)
        params.extend(clause_params)
    if not fragments:
        return "", []
    return "WHERE " + " AND ".join(fragments), params
