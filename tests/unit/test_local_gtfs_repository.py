from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from rail_isochrones.adapters.persistence.local_gtfs_repository import (
    LocalGtfsRepository,
    _parse_gtfs_time_to_seconds,
)


def _write(base: Path, name: str, *lines: str) -> None:
    (base / name).write_text("\n".join(lines) + "\n", encoding="utf-8")


@pytest.fixture()
def gtfs_dir(tmp_path: Path) -> Path:
    _write(
        tmp_path,
        "stops.txt",
        "stop_id,stop_name,stop_lat,stop_lon",
        "KGX,London Kings Cross,51.5308,-0.1238",
        "STP,London St Pancras,51.5322,-0.1260",
        "SVG,Stevenage,51.9017,-0.2070",
        "BAD,Broken,not-a-number,0",
    )
    _write(
        tmp_path,
        "trips.txt",
        "route_id,service_id,trip_id",
        "GN,WEEKDAY,1P01",
        "GN,SUNDAY,1P02",
        "GN,WEEKDAY,1P03",
        "GN,WEEKDAY,LATE",
    )
    _write(
        tmp_path,
        "stop_times.txt",
        "trip_id,arrival_time,departure_time,stop_id,stop_sequence",
        "1P01,08:00:00,08:00:00,KGX,1",
        "1P01,08:20:00,08:21:00,SVG,2",
        "1P02,09:00:00,09:00:00,KGX,1",
        "1P02,09:20:00,09:20:00,SVG,2",
        "1P03,10:00:00,10:00:00,KGX,1",
        "1P03,09:50:00,09:50:00,SVG,2",
        "LATE,23:50:00,23:50:00,KGX,1",
        "LATE,24:15:00,24:15:00,SVG,2",
    )
    _write(
        tmp_path,
        "calendar.txt",
        "service_id,monday,tuesday,wednesday,thursday,friday,saturday,sunday,"
        "start_date,end_date",
        "WEEKDAY,1,1,1,1,1,0,0,20240101,20241231",
        "SUNDAY,0,0,0,0,0,0,1,20240101,20241231",
    )
    _write(
        tmp_path,
        "calendar_dates.txt",
        "service_id,date,exception_type",
        "SUNDAY,20240506,1",
    )
    _write(
        tmp_path,
        "transfers.txt",
        "from_stop_id,to_stop_id,transfer_type,min_transfer_time",
        "KGX,STP,2,420",
        "STP,KGX,2,420",
        "KGX,KGX,2,300",
        "KGX,SVG,3,",
    )
    return tmp_path


@pytest.mark.unit
def test_parse_gtfs_time_allows_hours_past_midnight() -> None:
    assert _parse_gtfs_time_to_seconds("08:05:10") == 8 * 3600 + 5 * 60 + 10
    assert _parse_gtfs_time_to_seconds("25:10:00") == 25 * 3600 + 10 * 60


@pytest.mark.unit
def test_load_timetable_filters_trips_by_service_date(gtfs_dir: Path) -> None:
    # Wednesday: weekday services only.
    graph = LocalGtfsRepository(
        base_path=gtfs_dir, service_date=date(2024, 5, 1)
    ).load_timetable()

    assert set(graph.stations) == {"KGX", "STP", "SVG"}
    assert set(graph.trips) == {"1P01", "LATE"}
    assert graph.service_date == date(2024, 5, 1)
    assert graph.trip("1P01").route_id == "GN"
    assert graph.trip("LATE").stop_times[-1].arrival_s == 24 * 3600 + 15 * 60


@pytest.mark.unit
def test_calendar_dates_add_services(gtfs_dir: Path) -> None:
    # Bank holiday Monday runs the Sunday timetable as well.
    graph = LocalGtfsRepository(
        base_path=gtfs_dir, service_date=date(2024, 5, 6)
    ).load_timetable()

    assert "1P02" in graph.trips


@pytest.mark.unit
def test_without_service_date_every_consistent_trip_is_loaded(
    gtfs_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("SERVICE_DATE", raising=False)

    graph = LocalGtfsRepository(base_path=gtfs_dir).load_timetable()

    # 1P03 arrives before it departs and is skipped.
    assert set(graph.trips) == {"1P01", "1P02", "LATE"}
    assert graph.service_date is None


@pytest.mark.unit
def test_transfers_become_footpaths_and_interchange_times(gtfs_dir: Path) -> None:
    graph = LocalGtfsRepository(
        base_path=gtfs_dir, service_date=date(2024, 5, 1)
    ).load_timetable()

    assert [(fp.to_station_id, fp.duration_s) for fp in graph.footpaths_from("KGX")] == [
        ("STP", 420)
    ]
    assert graph.station("KGX").interchange_s == 300
    assert graph.station("STP").interchange_s == 0


@pytest.mark.unit
def test_base_path_falls_back_to_env(
    gtfs_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("GTFS_PATH", str(gtfs_dir))
    monkeypatch.setenv("SERVICE_DATE", "2024-05-01")

    graph = LocalGtfsRepository().load_timetable()

    assert graph.service_date == date(2024, 5, 1)
    assert "1P01" in graph.trips


@pytest.mark.unit
def test_missing_feed_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        LocalGtfsRepository(base_path=tmp_path / "missing").load_timetable()
