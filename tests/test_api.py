"""Tests for the read API."""
import asyncio
from datetime import date

import pytest
from fastapi.testclient import TestClient

from samharvest.api.main import create_app
from samharvest.store.models import CallContext, CallLogEntry
from samharvest.store.records import RecordStore
from samharvest.store.state import StateDB

from conftest import make_opportunity


async def _seed(db_path):
    records = RecordStore(db_path)
    await records.initialize()
    await records.upsert_batch(
        [
            make_opportunity("radar-va", title="Radar upgrade", placeOfPerformance={"state": {"code": "VA"}}),
            make_opportunity("boots-md", title="Boots", naicsCode="316210", active="No"),
            make_opportunity("hvac-md", title="HVAC", posted="2024-03-01"),
        ]
    )
    await StateDB(db_path).append_call_log(
        CallLogEntry(
            context=CallContext.INCREMENTAL,
            window_from=date(2024, 6, 10),
            window_to=date(2024, 6, 13),
            pages_consumed=1,
            records_returned=3,
        )
    )


@pytest.fixture
def api(db_path):
    asyncio.run(_seed(db_path))
    with TestClient(create_app(db_path)) as client:
        yield client


def test_health(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_list_opportunities(api):
    response = api.get("/api/opportunities")
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["limit"] == 25
    assert [o["notice_id"] for o in body["opportunities"]] == ["radar-va", "boots-md", "hvac-md"]


def test_list_with_filters(api):
    response = api.get("/api/opportunities", params={"search": "RADAR", "state": "VA"})
    body = response.json()
    assert body["total"] == 1
    assert body["opportunities"][0]["notice_id"] == "radar-va"


def test_list_active_only_and_naics(api):
    body = api.get("/api/opportunities", params={"active_only": "true"}).json()
    assert {o["notice_id"] for o in body["opportunities"]} == {"radar-va", "hvac-md"}

    body = api.get("/api/opportunities", params={"naics_code": "316210,999999"}).json()
    assert [o["notice_id"] for o in body["opportunities"]] == ["boots-md"]


def test_list_date_range(api):
    body = api.get("/api/opportunities", params={"date_from": "2024-02-01", "date_to": "2024-03-31"}).json()
    assert [o["notice_id"] for o in body["opportunities"]] == ["hvac-md"]


def test_limit_capped_and_paging(api):
    body = api.get("/api/opportunities", params={"limit": 500, "offset": 1}).json()
    assert body["limit"] == 100
    assert body["offset"] == 1
    assert len(body["opportunities"]) == 2


def test_invalid_paging_rejected(api):
    assert api.get("/api/opportunities", params={"limit": 0}).status_code == 422
    assert api.get("/api/opportunities", params={"offset": -5}).status_code == 422


def test_get_opportunity(api):
    response = api.get("/api/opportunities/radar-va")
    assert response.status_code == 200
    body = response.json()
    assert body["opportunity"]["title"] == "Radar upgrade"
    assert body["opportunity"]["resource_links"]
    assert body["contacts"][0]["full_name"] == "Jane Buyer"


def test_get_opportunity_not_found(api):
    assert api.get("/api/opportunities/nope").status_code == 404


def test_stats(api):
    body = api.get("/api/stats").json()
    assert body["total_opportunities"] == 3
    assert body["naics_codes"][0] == {"value": "541330", "count": 2}
    assert {s["value"] for s in body["states"]} == {"VA", "MD"}


def test_api_calls(api):
    body = api.get("/api/api-calls").json()
    assert len(body) == 1
    assert body[0]["context"] == "incremental"
    assert body[0]["records_returned"] == 3
