"""Query parameter builders for the SAM.gov search endpoint."""
from dataclasses import dataclass
from datetime import date
from typing import Optional

from samharvest.parse.normalize import to_wire_date


@dataclass(frozen=True)
class DateWindow:
    """Inclusive posted-date range submitted as one logical fetch."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Window start {self.start} is after end {self.end}")

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


@dataclass(frozen=True)
class SourceFilters:
    """Optional coded filters forwarded to the source."""

    title: Optional[str] = None
    ptype: Optional[str] = None
    naics: Optional[str] = None
    state: Optional[str] = None
    set_aside: Optional[str] = None


def build_search_params(
    api_key: str,
    limit: int,
    offset: int,
    window: Optional[DateWindow] = None,
    filters: Optional[SourceFilters] = None,
    notice_id: Optional[str] = None,
) -> list[tuple[str, str]]:
    """Build the query string for one page request."""
    params: list[tuple[str, str]] = [
        ("api_key", api_key),
        ("limit", str(limit)),
        ("offset", str(offset)),
    ]

    # The date range is only required when not looking up a notice ID
    if notice_id is None and window is not None:
        params.append(("postedFrom", to_wire_date(window.start)))
        params.append(("postedTo", to_wire_date(window.end)))

    if filters is not None:
        for key, value in (
            ("title", filters.title),
            ("ptype", filters.ptype),
            ("ncode", filters.naics),
            ("state", filters.state),
            ("typeOfSetAside", filters.set_aside),
        ):
            if value:
                params.append((key, value))

    if notice_id is not None:
        params.append(("noticeid", notice_id))

    return params
