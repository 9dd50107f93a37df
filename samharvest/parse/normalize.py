"""Normalization of loosely-typed source values."""
import logging
from datetime import date, datetime
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Date format used on the wire by the SAM.gov search API
WIRE_DATE_FMT = "%m/%d/%Y"

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d", "%m-%d-%Y")


def normalize_date(value: Any) -> Optional[str]:
    """Normalize a source date or timestamp to ISO-8601.

    Date-only values become ``YYYY-MM-DD``; values carrying a time component
    become a full ISO timestamp. Anything unparseable is returned unchanged so
    ingestion never rejects a record because of a date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = str(value).strip()
    if not text:
        return None

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Keeping unparseable date value {text!r}")
        return text
    if parsed.time() == datetime.min.time() and parsed.tzinfo is None:
        return parsed.date().isoformat()
    return parsed.isoformat()


def coerce_str(value: Any) -> Optional[str]:
    """Coerce a scalar source value to a string, keeping None as None."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return str(value)


def parse_iso_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` or ``MM/DD/YYYY`` date string."""
    text = value.strip()
    for fmt in ("%Y-%m-%d", WIRE_DATE_FMT):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Failed to parse date '{value}'")


def to_wire_date(value: date) -> str:
    """Format a date the way the search API expects it."""
    return value.strftime(WIRE_DATE_FMT)
