from __future__ import annotations

from dataclasses import dataclass
from datetime import date

import httpx
import pytest

from rail_isochrones.adapters.api.dependencies import get_isochrone_service
from rail_isochrones.app.services.isochrone_service import IsochroneService
from rail_isochrones.domain.algorithms.timetable_graph import TimetableGraph
from rail_isochrones.domain.models import GeoPoint, Station, StopTime, Trip
from rail_isochrones.main import app


def _graph() -> TimetableGraph:
    stops = (
        StopTime(trip_id="1P01", station_id="KGX", arrival_s=28_800, departure_s=28_800, sequence=1),
        StopTime(trip_id="1P01", station_id="SVG", arrival_s=30_000, departure_s=30_000, sequence=2),
    )
    return TimetableGraph.build(
        [
            Station(
                id="KGX",
                name="London Kings Cross",
                location=GeoPoint(lat=51.5308, lon=-0.1238),
            ),
            Station(id="SVG", name="Stevenage", location=GeoPoint(lat=51.9017, lon=-0.2070)),
        ],
        [Trip(trip_id="1P01", stop_times=stops)],
        service_date=date(2024, 5, 1),
    )


@dataclass
class _FakeTimetableRepository:
    def load_timetable(self) -> TimetableGraph:
        return _graph()


async def _post(payload: dict) -> httpx.Response:
    service = IsochroneService(timetable_repository=_FakeTimetableRepository())
    app.dependency_overrides[get_isochrone_service] = lambda: service

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/isochrones", json=payload)

    app.dependency_overrides.clear()
    return resp


@pytest.mark.unit
@pytest.mark.anyio
async def test_post_isochrones_from_station() -> None:
    resp = await _post(
        {
            "origin": {"station_id": "KGX"},
            "depart_at": "2024-05-01T08:00:00",
            "thresholds_min": [15, 30],
        }
    )

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["origin_station_id"] == "KGX"
    assert payload["complete"] is True
    assert [a["station_id"] for a in payload["arrivals"]] == ["KGX", "SVG"]
    assert payload["arrivals"][1]["travel_time_s"] == 1200
    assert payload["arrivals"][1]["arrival_at"] == "2024-05-01T08:20:00"
    features = payload["isochrones"]["features"]
    assert [f["properties"]["threshold_s"] for f in features] == [900, 1800]
    assert all(f["geometry"]["type"] == "MultiPolygon" for f in features)


@pytest.mark.unit
@pytest.mark.anyio
async def test_post_isochrones_defaults_departure_and_can_omit_arrivals() -> None:
    resp = await _post({"origin": {"station_id": "KGX"}, "include_arrivals": False})

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["depart_at"] == "2024-05-01T08:00:00"
    assert payload["arrivals"] is None
    assert len(payload["isochrones"]["features"]) == 3


@pytest.mark.unit
@pytest.mark.anyio
async def test_post_isochrones_from_coordinate() -> None:
    resp = await _post(
        {
            "origin": {"lat": 51.5320, "lon": -0.1238},
            "depart_at": "2024-05-01T07:55:00",
            "thresholds_min": [30],
            "method": "concave",
        }
    )

    assert resp.status_code == 200
    assert resp.json()["origin_station_id"] == "KGX"


@pytest.mark.unit
@pytest.mark.anyio
async def test_unknown_station_is_404() -> None:
    resp = await _post(
        {"origin": {"station_id": "XXX"}, "depart_at": "2024-05-01T08:00:00"}
    )

    assert resp.status_code == 404
    assert "XXX" in resp.json()["detail"]


@pytest.mark.unit
@pytest.mark.anyio
async def test_coordinate_far_from_any_station_is_404() -> None:
    resp = await _post(
        {
            "origin": {"lat": 53.4794, "lon": -2.2453},
            "depart_at": "2024-05-01T08:00:00",
        }
    )

    assert resp.status_code == 404


@pytest.mark.unit
@pytest.mark.anyio
async def test_invalid_query_is_422() -> None:
    wrong_day = await _post(
        {"origin": {"station_id": "KGX"}, "depart_at": "2024-06-01T08:00:00"}
    )
    bad_thresholds = await _post(
        {"origin": {"station_id": "KGX"}, "thresholds_min": [30, 15]}
    )
    no_origin = await _post({"origin": {}})

    assert wrong_day.status_code == 422
    assert bad_thresholds.status_code == 422
    assert no_origin.status_code == 422


@pytest.mark.unit
@pytest.mark.anyio
async def test_health() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@dataclass
class _BrokenTimetableRepository:
    def load_timetable(self) -> TimetableGraph:
        raise RuntimeError("Missing GTFS feed")


@pytest.mark.unit
@pytest.mark.anyio
async def test_unexpected_errors_are_json() -> None:
    service = IsochroneService(timetable_repository=_BrokenTimetableRepository())
    app.dependency_overrides[get_isochrone_service] = lambda: service

    # The error middleware re-raises after responding; keep the response.
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/isochrones", json={"origin": {"station_id": "KGX"}})

    app.dependency_overrides.clear()

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Missing GTFS feed"}
