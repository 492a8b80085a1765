from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Iterator

from rail_isochrones.app.ports.output import ITimetableRepository
from rail_isochrones.domain.algorithms.service_calendar import (
    ServiceCalendar,
    ServicePeriod,
)
from rail_isochrones.domain.algorithms.timetable_graph import TimetableGraph
from rail_isochrones.domain.models import Footpath, GeoPoint, Station, StopTime, Trip

logger = logging.getLogger(__name__)

_WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def _parse_gtfs_time_to_seconds(raw: str) -> int:
    # GTFS time can be HH:MM:SS with HH possibly > 24.
    hh, mm, ss = raw.strip().split(":")
    return int(hh) * 3600 + int(mm) * 60 + int(ss)


def _parse_gtfs_date(raw: str) -> date:
    return datetime.strptime(raw.strip(), "%Y%m%d").date()


def _rows(path: Path) -> Iterator[dict[str, str]]:
    with path.open("r", encoding="utf-8-sig", newline="") as fp:
        yield from csv.DictReader(fp)


def _col(row: dict[str, str], name: str) -> str:
    return (row.get(name) or "").strip()


@dataclass(slots=True)
class LocalGtfsRepository(ITimetableRepository):
    """Loads a GTFS feed from a directory of .txt files for one service day.

    Env vars:
      - GTFS_PATH: directory containing stops.txt, trips.txt, stop_times.txt
        (optional: calendar.txt, calendar_dates.txt, transfers.txt)
      - SERVICE_DATE: YYYY-MM-DD; without it every trip is assumed to run
    """

    base_path: str | Path | None = None
    service_date: date | None = None

    def _base(self) -> Path:
        value = self.base_path or os.getenv("GTFS_PATH") or "data/gtfs"
        return Path(value)

    def _service_date(self) -> date | None:
        if self.service_date is not None:
            return self.service_date
        raw = (os.getenv("SERVICE_DATE") or "").strip()
        return date.fromisoformat(raw) if raw else None

    def load_timetable(self) -> TimetableGraph:
        base = self._base()
        service_date = self._service_date()

        stations_by_id = self._load_stations(base)
        calendar = self._load_calendar(base)

        trip_meta: dict[str, tuple[str | None, str | None]] = {}
        trips_path = base / "trips.txt"
        if trips_path.exists():
            for row in _rows(trips_path):
                trip_id = _col(row, "trip_id")
                if not trip_id:
                    continue
                trip_meta[trip_id] = (
                    _col(row, "route_id") or None,
                    _col(row, "service_id") or None,
                )

        def runs(trip_id: str) -> bool:
            if service_date is None or calendar.is_empty:
                return True
            _, service_id = trip_meta.get(trip_id, (None, None))
            if service_id is None:
                return False
            return calendar.runs_on(service_id, service_date)

        # stop_times per trip: (sequence, stop_id, arrival_s, departure_s)
        stop_times_by_trip: dict[str, list[tuple[int, str, int, int]]] = {}
        for row in _rows(base / "stop_times.txt"):
            trip_id = _col(row, "trip_id")
            stop_id = _col(row, "stop_id")
            if not trip_id or stop_id not in stations_by_id:
                continue

            try:
                seq = int(_col(row, "stop_sequence") or 0)
                arr_s = _parse_gtfs_time_to_seconds(row["arrival_time"])
                dep_s = _parse_gtfs_time_to_seconds(row["departure_time"])
            except (TypeError, ValueError, KeyError, AttributeError):
                # Untimed intermediate points cannot be boarded or alighted.
                continue

            stop_times_by_trip.setdefault(trip_id, []).append(
                (seq, stop_id, arr_s, dep_s)
            )

        trips: list[Trip] = []
        skipped = 0
        for trip_id, entries in stop_times_by_trip.items():
            if not runs(trip_id):
                continue
            if len(entries) < 2:
                continue

            entries.sort(key=lambda x: x[0])
            try:
                trips.append(
                    Trip(
                        trip_id=trip_id,
                        route_id=trip_meta.get(trip_id, (None, None))[0],
                        stop_times=tuple(
                            StopTime(
                                trip_id=trip_id,
                                station_id=stop_id,
                                arrival_s=arr_s,
                                departure_s=dep_s,
                                sequence=seq,
                            )
                            for seq, stop_id, arr_s, dep_s in entries
                        ),
                    )
                )
            except ValueError as exc:
                skipped += 1
                logger.debug("Skipping trip %s: %s", trip_id, exc)

        if skipped:
            logger.warning("Skipped %d trips with inconsistent stop times", skipped)

        footpaths, interchange_s = self._load_transfers(base, stations_by_id)
        for station_id, seconds in interchange_s.items():
            s = stations_by_id[station_id]
            stations_by_id[station_id] = Station(
                id=s.id, name=s.name, location=s.location, interchange_s=seconds
            )

        logger.info(
            "Loaded GTFS from %s for %s: %d stations, %d trips",
            base,
            service_date.isoformat() if service_date else "all days",
            len(stations_by_id),
            len(trips),
        )

        return TimetableGraph.build(
            stations_by_id.values(),
            trips,
            footpaths,
            service_date=service_date,
        )

    def _load_stations(self, base: Path) -> dict[str, Station]:
        stations_by_id: dict[str, Station] = {}
        for row in _rows(base / "stops.txt"):
            stop_id = _col(row, "stop_id")
            if not stop_id:
                continue
            try:
                location = GeoPoint(
                    lat=float(row["stop_lat"]), lon=float(row["stop_lon"])
                )
            except (TypeError, ValueError, KeyError):
                continue
            name = _col(row, "stop_name") or stop_id
            stations_by_id[stop_id] = Station(id=stop_id, name=name, location=location)
        return stations_by_id

    def _load_calendar(self, base: Path) -> ServiceCalendar:
        periods: dict[str, list[ServicePeriod]] = {}
        calendar_path = base / "calendar.txt"
        if calendar_path.exists():
            for row in _rows(calendar_path):
                service_id = _col(row, "service_id")
                if not service_id:
                    continue
                try:
                    period = ServicePeriod(
                        start_date=_parse_gtfs_date(row["start_date"]),
                        end_date=_parse_gtfs_date(row["end_date"]),
                        weekdays=tuple(_col(row, d) == "1" for d in _WEEKDAYS),  # type: ignore[arg-type]
                    )
                except (TypeError, ValueError, KeyError):
                    continue
                periods.setdefault(service_id, []).append(period)

        exceptions: dict[tuple[str, date], bool] = {}
        dates_path = base / "calendar_dates.txt"
        if dates_path.exists():
            for row in _rows(dates_path):
                service_id = _col(row, "service_id")
                kind = _col(row, "exception_type")
                if not service_id or kind not in {"1", "2"}:
                    continue
                try:
                    day = _parse_gtfs_date(row["date"])
                except (TypeError, ValueError, KeyError):
                    continue
                exceptions[(service_id, day)] = kind == "1"

        return ServiceCalendar(
            periods={k: tuple(v) for k, v in periods.items()},
            exceptions=exceptions,
        )

    def _load_transfers(
        self, base: Path, stations_by_id: dict[str, Station]
    ) -> tuple[list[Footpath], dict[str, int]]:
        footpaths: list[Footpath] = []
        interchange_s: dict[str, int] = {}

        transfers_path = base / "transfers.txt"
        if not transfers_path.exists():
            return footpaths, interchange_s

        for row in _rows(transfers_path):
            a = _col(row, "from_stop_id")
            b = _col(row, "to_stop_id")
            if a not in stations_by_id or b not in stations_by_id:
                continue
            # transfer_type 3: transfers are not possible between these stops.
            if _col(row, "transfer_type") == "3":
                continue
            try:
                seconds = int(_col(row, "min_transfer_time"))
            except ValueError:
                continue
            if seconds < 0:
                continue

            if a == b:
                interchange_s[a] = max(interchange_s.get(a, 0), seconds)
            else:
                footpaths.append(
                    Footpath(from_station_id=a, to_station_id=b, duration_s=seconds)
                )

        return footpaths, interchange_s
