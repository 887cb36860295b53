"""Tests for the navigation, county and history endpoints."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from backend.countyscope.census_service import UpstreamAPIError
from backend.countyscope.config import Settings
from backend.countyscope.geo import GeoUnitId
from backend.countyscope.main import create_app
from backend.countyscope.models import DemographicRecord


def _write_json(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    states = _write_json(
        tmp_path / "states.geojson",
        {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "id": "55", "properties": {"name": "Wisconsin"}, "geometry": None},
                {"type": "Feature", "id": "17", "properties": {"name": "Illinois"}, "geometry": None},
            ],
        },
    )
    counties = _write_json(
        tmp_path / "counties.geojson",
        {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "id": "55025", "properties": {"name": "Dane County"}, "geometry": None},
                {"type": "Feature", "id": "55079", "properties": {"name": "Milwaukee County"}, "geometry": None},
                {"type": "Feature", "id": 17031, "properties": {"name": "Cook County"}, "geometry": None},
            ],
        },
    )
    demographics = _write_json(
        tmp_path / "demographics.json",
        {
            "data": {
                "55025": {
                    "name": "Dane County, Wisconsin",
                    "population": 561504,
                    "medianAge": 35.1,
                    "income": {
                        "medianHousehold": 84297,
                        "totalHouseholds": 100,
                        "brackets": {
                            "under25k": 10,
                            "25k-50k": 20,
                            "50k-75k": 30,
                            "75k-100k": 20,
                            "100k-150k": 15,
                            "150k+": 5,
                        },
                    },
                    "ethnicityBreakdown": {"total": 1000, "white": 500, "black": 120, "hispanic": 200, "asian": 80},
                    "householdComposition": {"totalHouseholds": 0, "singlePersonHouseholds": 0},
                    "lgbtq": {"totalHouseholds": 500, "sameSexHouseholds": 15},
                }
            }
        },
    )
    return Settings(states_path=states, counties_path=counties, demographics_path=demographics)


class FakeFetcher:
    def __init__(self) -> None:
        self.fail = False

    async def __call__(self, unit: GeoUnitId, fresh: bool) -> DemographicRecord:
        if self.fail:
            raise UpstreamAPIError("core", "HTTP 503: unavailable")
        return DemographicRecord(
            fips=unit.value,
            name=f"County {unit.value}",
            population=900000,
            median_age=34.6,
            median_household_income=56003,
            source="fetched",
        )


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def client(settings: Settings, fetcher: FakeFetcher) -> TestClient:
    return TestClient(create_app(settings, fetcher=fetcher))


def test_healthz(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"status": "ok"}


def test_navigation_flow(client: TestClient) -> None:
    resp = client.get("/api/navigation")
    assert resp.status_code == 200
    assert resp.json()["level"] == "overview"
    assert resp.json()["visible_ids"] == []

    resp = client.post("/api/navigation/states/55")
    payload = resp.json()
    assert payload["level"] == "state"
    assert payload["state_name"] == "Wisconsin"
    assert payload["visible_ids"] == ["55025", "55079"]

    resp = client.post("/api/navigation/states/55")
    assert resp.json()["level"] == "overview"

    client.post("/api/navigation/states/17")
    resp = client.post("/api/navigation/back")
    assert resp.json()["level"] == "overview"


def test_select_unknown_state_is_404(client: TestClient) -> None:
    assert client.post("/api/navigation/states/99").status_code == 404


def test_county_detail_from_local_dataset(client: TestClient) -> None:
    resp = client.get("/api/counties/55025")
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["record"]["name"] == "Dane County, Wisconsin"
    assert payload["ethnicity"]["other"] == 10.0
    assert [share["pct"] for share in payload["income_distribution"]["brackets"]] == [10.0, 20.0, 30.0, 20.0, 20.0]
    assert payload["household_insights"]["pct_single"] is None
    assert payload["generations"] is None
    assert payload["lgbtq"] == {"percent_same_sex": 3.0, "same_sex_households": 15.0, "households_total": 500.0}
    assert payload["fallback"] is False

    nav = client.get("/api/navigation").json()
    assert nav["state_id"] == "55"


def test_county_detail_fetches_and_records_history(client: TestClient) -> None:
    client.get("/api/counties/55025")
    resp = client.get("/api/counties/55079")
    assert resp.status_code == 200
    assert resp.json()["income_context"]["state_median"] == pytest.approx((84297 + 56003) / 2)

    history = client.get("/api/history").json()
    assert [row["entry"]["fips"] for row in history["entries"]] == ["55079", "55025"]
    assert history["baseline_id"] == "55079"
    assert history["entries"][1]["trend"]["median_income"] == "up"


def test_error_responses_are_documented(client: TestClient) -> None:
    paths = client.get("/openapi.json").json()["paths"]
    county = paths["/api/counties/{fips}"]["get"]["responses"]
    assert {"200", "404", "409", "502"} <= set(county)
    for status in ("404", "409", "502"):
        schema = county[status]["content"]["application/json"]["schema"]
        assert schema["$ref"].endswith("/ErrorResponse")
    assert "404" in paths["/api/navigation/states/{state_id}"]["post"]["responses"]
    assert "404" in paths["/api/history/{fips}/pin"]["post"]["responses"]


def test_county_detail_unknown_is_404(client: TestClient) -> None:
    assert client.get("/api/counties/99999").status_code == 404
    assert client.get("/api/counties/abc").status_code == 404


def test_county_detail_fetch_failure_is_502(client: TestClient, fetcher: FakeFetcher) -> None:
    fetcher.fail = True
    resp = client.get("/api/counties/17031")
    assert resp.status_code == 502
    assert "HTTP 503" in resp.json()["detail"]


def test_fresh_failure_falls_back(client: TestClient, fetcher: FakeFetcher) -> None:
    fetcher.fail = True
    resp = client.get("/api/counties/55025", params={"fresh": "true"})
    assert resp.status_code == 200
    assert resp.json()["fallback"] is True
    assert "HTTP 503" in resp.json()["warning"]


def test_search(client: TestClient) -> None:
    resp = client.get("/api/counties/search", params={"q": "county"})
    assert resp.status_code == 200
    names = [result["name"] for result in resp.json()["results"]]
    assert names == ["Cook County", "Dane County", "Milwaukee County"]

    resp = client.get("/api/counties/search", params={"q": "illinois", "limit": 1})
    assert resp.json()["results"] == [{"fips": "17031", "name": "Cook County", "state": "Illinois"}]


def test_search_rejects_missing_query(client: TestClient) -> None:
    assert client.get("/api/counties/search").status_code == 422


def test_pin_toggle(client: TestClient) -> None:
    client.get("/api/counties/55025")
    client.get("/api/counties/55079")

    resp = client.post("/api/history/55025/pin")
    payload = resp.json()
    assert payload["pinned_id"] == "55025"
    assert [row["entry"]["fips"] for row in payload["entries"]] == ["55025", "55079"]
    assert payload["entries"][0]["pinned"] is True
    assert payload["entries"][1]["trend"]["population"] == "up"

    resp = client.post("/api/history/55025/pin")
    assert resp.json()["pinned_id"] is None

    assert client.post("/api/history/nope/pin").status_code == 404
