"""Shared fixtures: temporary databases and a scripted fake search API."""
from datetime import date, datetime
from typing import Any, Optional

import httpx
import pytest
import pytest_asyncio

from samharvest.fetch.client import FetchClient
from samharvest.fetch.fetcher import Fetcher
from samharvest.parse.models import Opportunity
from samharvest.store.records import RecordStore
from samharvest.store.state import StateDB

API_KEY = "test-key-0123456789"
BASE_URL = "https://api.test.local/opportunities/v2/search"


def make_item(notice_id: str, posted: str = "2024-06-11", **overrides: Any) -> dict[str, Any]:
    """Build one source item the way the search API returns it."""
    item = {
        "noticeId": notice_id,
        "title": f"Opportunity {notice_id}",
        "solicitationNumber": f"SOL-{notice_id}",
        "department": "DEPT OF DEFENSE",
        "subTier": "DEPT OF THE ARMY",
        "office": "W6QK ACC-APG",
        "fullParentPathName": "DEPT OF DEFENSE.DEPT OF THE ARMY.W6QK ACC-APG",
        "type": "Solicitation",
        "baseType": "Solicitation",
        "postedDate": posted,
        "responseDeadLine": "2024-07-15T17:00:00-04:00",
        "naicsCode": "541330",
        "classificationCode": "R425",
        "typeOfSetAside": "SBA",
        "typeOfSetAsideDescription": "Total Small Business Set-Aside",
        "active": "Yes",
        "uiLink": f"https://sam.gov/opp/{notice_id}/view",
        "resourceLinks": [f"https://sam.gov/api/prod/opps/v3/opportunities/resources/files/{notice_id}"],
        "pointOfContact": [
            {
                "type": "primary",
                "fullName": "Jane Buyer",
                "email": "jane.buyer@example.mil",
                "phone": "555-0100",
                "title": "Contracting Officer",
            }
        ],
        "placeOfPerformance": {
            "state": {"code": "MD", "name": "Maryland"},
            "city": {"code": "1234", "name": "Aberdeen"},
            "country": {"code": "USA", "name": "UNITED STATES"},
            "zip": "21005",
        },
    }
    item.update(overrides)
    return item


def make_opportunity(notice_id: str, **overrides: Any) -> Opportunity:
    return Opportunity.from_source(make_item(notice_id, **overrides))


def _wire_date(value: str) -> date:
    return datetime.strptime(value, "%m/%d/%Y").date()


class FakeSearchAPI:
    """In-memory search endpoint served through ``httpx.MockTransport``.

    Items are filtered by posted date and notice ID and paginated with
    ``offset`` as a page index. ``script`` maps a request number (0-based)
    to a canned response that replaces the normal one.
    """

    def __init__(self):
        self.items: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []
        self.script: dict[int, httpx.Response] = {}
        self.total_override: Optional[int] = None

    def add(self, *items: dict[str, Any]) -> None:
        self.items.extend(items)

    def rate_limit_on(self, call_number: int) -> None:
        self.script[call_number] = httpx.Response(
            429, json={"error": {"code": "OVER_RATE_LIMIT", "message": "API rate limit exceeded"}}
        )

    @property
    def windows_requested(self) -> list[tuple[str, str]]:
        return [
            (r.url.params.get("postedFrom"), r.url.params.get("postedTo"))
            for r in self.requests
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        call_number = len(self.requests)
        self.requests.append(request)
        if call_number in self.script:
            return self.script[call_number]

        params = request.url.params
        matched = self.items
        if "noticeid" in params:
            matched = [i for i in matched if i.get("noticeId") == params["noticeid"]]
        if "postedFrom" in params and "postedTo" in params:
            start, end = _wire_date(params["postedFrom"]), _wire_date(params["postedTo"])
            matched = [
                i for i in matched
                if start <= date.fromisoformat(str(i.get("postedDate"))[:10]) <= end
            ]

        limit = int(params.get("limit", "1000"))
        page = int(params.get("offset", "0"))
        data = matched[page * limit:(page + 1) * limit]
        total = self.total_override if self.total_override is not None else len(matched)
        return httpx.Response(
            200,
            json={"totalRecords": total, "limit": limit, "offset": page, "opportunitiesData": data},
        )


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "samharvest.db"


@pytest_asyncio.fixture
async def records(db_path):
    store = RecordStore(db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def state(db_path, records):
    return StateDB(db_path)


@pytest.fixture
def source():
    return FakeSearchAPI()


@pytest_asyncio.fixture
async def client(source):
    fetch_client = FetchClient(
        api_key=API_KEY,
        base_url=BASE_URL,
        rate_per_second=0,
        transport=httpx.MockTransport(source.handler),
    )
    yield fetch_client
    await fetch_client.close()


@pytest.fixture
def fetcher(client):
    return Fetcher(client, page_size=100, max_records=10000)
