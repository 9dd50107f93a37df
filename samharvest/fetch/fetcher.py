"""Auto-paginating fetcher for one logical window query."""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from samharvest.config import config
from samharvest.errors import FetchError, MalformedResponse
from samharvest.fetch.client import FetchClient
from samharvest.fetch.endpoints import DateWindow, SourceFilters, build_search_params
from samharvest.parse.models import Opportunity

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Records and call accounting for one window.

    ``complete`` is False when pagination stopped early (page budget spent or
    an error). ``truncated`` is True when the configured record cap ended
    pagination before the source ran out of results.
    """

    records: list[Opportunity] = field(default_factory=list)
    pages_consumed: int = 0
    records_returned: int = 0
    total_available: Optional[int] = None
    complete: bool = False
    truncated: bool = False
    skipped: int = 0


def _parse_total(payload: dict[str, Any]) -> Optional[int]:
    total = payload.get("totalRecords")
    try:
        return int(total) if total is not None else None
    except (TypeError, ValueError):
        return None


class Fetcher:
    """Runs a window query page by page, one request at a time."""

    def __init__(
        self,
        client: FetchClient,
        page_size: Optional[int] = None,
        max_records: Optional[int] = None,
    ):
        self.client = client
        self.page_size = page_size or config.PAGE_SIZE
        self.max_records = max_records if max_records is not None else config.MAX_RECORDS_PER_WINDOW

    async def fetch_window(
        self,
        window: Optional[DateWindow],
        filters: Optional[SourceFilters] = None,
        notice_id: Optional[str] = None,
        max_pages: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> FetchResult:
        """Fetch every page of a window query.

        Each page request counts as one call, failed ones included. Raises a
        ``FetchError`` subclass carrying the partial result on failure.
        """
        limit = page_size or self.page_size
        result = FetchResult()
        page = 0

        while True:
            if max_pages is not None and result.pages_consumed >= max_pages:
                logger.info(
                    f"Page budget of {max_pages} spent for window {window} "
                    f"after {result.records_returned} records"
                )
                return result

            params = build_search_params(
                api_key=self.client.api_key,
                limit=limit,
                offset=page,
                window=window,
                filters=filters,
                notice_id=notice_id,
            )
            result.pages_consumed += 1
            try:
                payload = await self.client.get_page(params)
                items = self._page_items(payload)
            except FetchError as e:
                e.result = result
                raise

            if result.total_available is None:
                result.total_available = _parse_total(payload)

            result.records_returned += len(items)
            self._parse_items(items, result)
            logger.debug(
                f"Window {window} page {page}: {len(items)} items "
                f"(total {result.total_available})"
            )

            if len(items) < limit:
                break
            if result.total_available is not None and result.records_returned >= result.total_available:
                break
            if self.max_records and result.records_returned >= self.max_records:
                result.truncated = True
                logger.warning(
                    f"Window {window} reached the cap of {self.max_records} records "
                    f"({result.total_available} available); narrow the window width"
                )
                break
            page += 1

        result.complete = True
        return result

    async def fetch_notice(self, notice_id: str) -> FetchResult:
        """Look up a single opportunity by notice ID (one call)."""
        return await self.fetch_window(None, notice_id=notice_id, max_pages=1, page_size=1)

    @staticmethod
    def _page_items(payload: dict[str, Any]) -> list[Any]:
        items = payload.get("opportunitiesData")
        if items is None:
            return []
        if not isinstance(items, list):
            raise MalformedResponse(
                f"opportunitiesData is {type(items).__name__}, expected a list"
            )
        return items

    @staticmethod
    def _parse_items(items: list[Any], result: FetchResult) -> None:
        """Append parsed records to ``result``; stops at the first unparseable item."""
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise MalformedResponse(
                    f"Item {index} is {type(item).__name__}, expected an object", result
                )
            try:
                opportunity = Opportunity.from_source(item)
            except ValidationError as e:
                raise MalformedResponse(f"Item {index} failed validation: {e}", result) from e
            if not opportunity.notice_id:
                logger.warning(f"Skipping item {index} without a noticeId")
                result.skipped += 1
                continue
            result.records.append(opportunity)
