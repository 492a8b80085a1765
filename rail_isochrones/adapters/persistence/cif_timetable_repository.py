from __future__ import annotations

import io
import logging
import os
import zipfile
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path, PurePosixPath
from typing import Iterator

from pyproj import Transformer

from rail_isochrones.app.ports.output import ITimetableRepository
from rail_isochrones.domain.algorithms.service_calendar import ServicePeriod
from rail_isochrones.domain.algorithms.timetable_graph import TimetableGraph
from rail_isochrones.domain.models import Footpath, GeoPoint, Station, StopTime, Trip

logger = logging.getLogger(__name__)

_SUFFIXES = (".msn", ".mca", ".alf")

# Short-term planning indicator; a higher rank replaces a lower one on the
# days both run.
_STP_RANK = {"P": 0, "N": 1, "O": 2, "C": 3}

# Activities that let passengers on or off: stop, set down, take up.
_PUBLIC_ACTIVITIES = frozenset({"T ", "D ", "U "})

# MSN grid references are in 100 m units with these offsets added.
_EASTING_OFFSET = 10000
_NORTHING_OFFSET = 60000


def _parse_hhmm(raw: str) -> int:
    raw = raw.strip()
    if len(raw) != 4 or not raw.isdigit():
        raise ValueError(f"invalid time (HHMM): {raw!r}")
    hh, mm = int(raw[:2]), int(raw[2:])
    if hh > 23 or mm > 59:
        raise ValueError(f"invalid time (HHMM): {raw!r}")
    return hh * 3600 + mm * 60


def _parse_yymmdd(raw: str) -> date:
    if raw == "999999":
        return date.max
    return date(2000 + int(raw[0:2]), int(raw[2:4]), int(raw[4:6]))


def _parse_ddmmyyyy(raw: str) -> date:
    dd, mm, yyyy = raw.strip().split("/")
    return date(int(yyyy), int(mm), int(dd))


def _weekdays(raw: str) -> tuple[bool, bool, bool, bool, bool, bool, bool]:
    flags = tuple(c == "1" for c in raw[:7].ljust(7, "0"))
    return flags  # type: ignore[return-value]


def _members(base: Path) -> dict[str, str]:
    """Map each CIF suffix to the file holding it, in a directory or zip."""

    if base.is_dir():
        names = sorted(p.name for p in base.iterdir() if p.is_file())
    else:
        with zipfile.ZipFile(base) as archive:
            names = sorted(archive.namelist())

    found: dict[str, str] = {}
    for name in names:
        suffix = PurePosixPath(name).suffix.lower()
        if suffix in _SUFFIXES:
            found.setdefault(suffix, name)
    return found


def _lines(base: Path, member: str) -> Iterator[str]:
    if base.is_dir():
        with (base / member).open("r", encoding="latin-1", newline="") as fp:
            for line in fp:
                yield line.rstrip("\r\n")
        return

    with zipfile.ZipFile(base) as archive, archive.open(member) as raw:
        for line in io.TextIOWrapper(raw, encoding="latin-1", newline=""):
            yield line.rstrip("\r\n")


@dataclass(slots=True)
class _Schedule:
    uid: str
    stp: str
    period: ServicePeriod
    operator: str | None = None
    # (tiploc, arrival_s, departure_s); times may wrap past midnight.
    calls: list[tuple[str, int, int]] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.uid}/{self.period.start_date:%Y%m%d}/{self.stp}"


@dataclass(slots=True)
class CifTimetableRepository(ITimetableRepository):
    """Loads a UK rail CIF timetable (MSN, MCA and ALF files) for one day.

    ``base_path`` is a directory or a zip archive holding the three files.
    Stations come from the MSN file and are keyed by CRS code; the MCA
    schedules are resolved for ``service_date`` (overlays and cancellations
    replace the permanent schedule); ALF fixed links become footpaths.

    Env vars:
      - CIF_PATH: directory or zip with *.MSN, *.MCA and optional *.ALF
      - SERVICE_DATE: YYYY-MM-DD; without it every non-cancelled schedule runs
    """

    base_path: str | Path | None = None
    service_date: date | None = None

    def _base(self) -> Path:
        value = self.base_path or os.getenv("CIF_PATH") or "data/cif"
        return Path(value)

    def _service_date(self) -> date | None:
        if self.service_date is not None:
            return self.service_date
        raw = (os.getenv("SERVICE_DATE") or "").strip()
        return date.fromisoformat(raw) if raw else None

    def load_timetable(self) -> TimetableGraph:
        base = self._base()
        service_date = self._service_date()

        members = _members(base)
        for suffix in (".msn", ".mca"):
            if suffix not in members:
                raise FileNotFoundError(f"No {suffix.upper()[1:]} file in {base}")

        stations_by_id, station_by_tiploc = self._load_stations(
            _lines(base, members[".msn"])
        )
        schedules = self._load_schedules(_lines(base, members[".mca"]))
        trips = self._build_trips(schedules, station_by_tiploc, service_date)

        footpaths: list[Footpath] = []
        if ".alf" in members:
            footpaths = self._load_links(
                _lines(base, members[".alf"]), stations_by_id, service_date
            )

        logger.info(
            "Loaded CIF from %s for %s: %d stations, %d trips, %d links",
            base,
            service_date.isoformat() if service_date else "all days",
            len(stations_by_id),
            len(trips),
            len(footpaths),
        )

        return TimetableGraph.build(
            stations_by_id.values(),
            trips,
            footpaths,
            service_date=service_date,
        )

    def _load_stations(
        self, lines: Iterator[str]
    ) -> tuple[dict[str, Station], dict[str, str]]:
        to_wgs84 = Transformer.from_crs("EPSG:27700", "EPSG:4326", always_xy=True)

        stations_by_id: dict[str, Station] = {}
        station_by_tiploc: dict[str, str] = {}
        header_seen = False
        skipped = 0

        for line in lines:
            if line.startswith("/"):
                continue
            if not header_seen:
                # The header is an "A" record too.
                header_seen = True
                continue
            if not line.startswith("A"):
                continue

            line = line.ljust(65)
            crs = line[49:52].strip()
            tiploc = line[36:43].strip()
            if not crs or not tiploc:
                continue
            try:
                easting = (int(line[52:57]) - _EASTING_OFFSET) * 100
                northing = (int(line[58:63]) - _NORTHING_OFFSET) * 100
                change_s = int(line[63:65].strip() or 0) * 60
            except ValueError:
                skipped += 1
                continue

            station_by_tiploc[tiploc] = crs
            existing = stations_by_id.get(crs)
            if existing is not None:
                # Subsidiary TIPLOCs share the main record's station.
                if change_s > existing.interchange_s:
                    stations_by_id[crs] = Station(
                        id=crs,
                        name=existing.name,
                        location=existing.location,
                        interchange_s=change_s,
                    )
                continue

            lon, lat = to_wgs84.transform(easting, northing)
            stations_by_id[crs] = Station(
                id=crs,
                name=line[5:35].strip() or crs,
                location=GeoPoint(lat=lat, lon=lon),
                interchange_s=change_s,
            )

        if skipped:
            logger.warning(
                "Skipped %d MSN station records without a grid reference", skipped
            )
        return stations_by_id, station_by_tiploc

    def _load_schedules(self, lines: Iterator[str]) -> list[_Schedule]:
        schedules: list[_Schedule] = []
        current: _Schedule | None = None
        skipped = 0

        for line in lines:
            record = line[:2]
            if record == "BS":
                line = line.ljust(80)
                try:
                    period = ServicePeriod(
                        start_date=_parse_yymmdd(line[9:15]),
                        end_date=_parse_yymmdd(line[15:21].strip() or line[9:15]),
                        weekdays=_weekdays(line[21:28]),
                    )
                except ValueError:
                    skipped += 1
                    current = None
                    continue
                current = _Schedule(uid=line[3:9].strip(), stp=line[79], period=period)
                schedules.append(current)
            elif current is None:
                continue
            elif record == "BX":
                current.operator = line[11:13].strip() or None
            elif record in {"LO", "LI", "LT"}:
                call = _parse_location(line.ljust(80))
                if call is not None:
                    current.calls.append(call)
                if record == "LT":
                    current = None

        if skipped:
            logger.warning("Skipped %d MCA schedules with unreadable dates", skipped)
        return schedules

    def _build_trips(
        self,
        schedules: list[_Schedule],
        station_by_tiploc: dict[str, str],
        service_date: date | None,
    ) -> list[Trip]:
        if service_date is None:
            by_key = {
                s.key: s for s in schedules if s.stp in _STP_RANK and s.stp != "C"
            }
            chosen = sorted(by_key.items())
        else:
            by_uid: dict[str, _Schedule] = {}
            for s in schedules:
                if s.stp not in _STP_RANK or not s.period.runs_on(service_date):
                    continue
                held = by_uid.get(s.uid)
                if held is None or _STP_RANK[s.stp] > _STP_RANK[held.stp]:
                    by_uid[s.uid] = s
            cancelled = sum(1 for s in by_uid.values() if s.stp == "C")
            if cancelled:
                logger.info("%d schedules cancelled on %s", cancelled, service_date)
            chosen = [(uid, s) for uid, s in sorted(by_uid.items()) if s.stp != "C"]

        trips: list[Trip] = []
        skipped = 0
        for trip_id, schedule in chosen:
            calls = [
                (station_by_tiploc[tiploc], arr_s, dep_s)
                for tiploc, arr_s, dep_s in _unwrap_midnight(schedule.calls)
                if tiploc in station_by_tiploc
            ]
            if len(calls) < 2:
                continue
            try:
                trips.append(
                    Trip(
                        trip_id=trip_id,
                        route_id=schedule.operator,
                        stop_times=tuple(
                            StopTime(
                                trip_id=trip_id,
                                station_id=station_id,
                                arrival_s=arr_s,
                                departure_s=dep_s,
                                sequence=i + 1,
                            )
                            for i, (station_id, arr_s, dep_s) in enumerate(calls)
                        ),
                    )
                )
            except ValueError as exc:
                skipped += 1
                logger.debug("Skipping schedule %s: %s", schedule.key, exc)

        if skipped:
            logger.warning("Skipped %d schedules with inconsistent calls", skipped)
        return trips

    def _load_links(
        self,
        lines: Iterator[str],
        stations_by_id: dict[str, Station],
        service_date: date | None,
    ) -> list[Footpath]:
        footpaths: list[Footpath] = []
        for line in lines:
            if not line.strip():
                continue
            fields = dict(
                part.partition("=")[::2] for part in line.split(",") if "=" in part
            )
            origin = fields.get("O", "").strip()
            dest = fields.get("D", "").strip()
            if origin not in stations_by_id or dest not in stations_by_id:
                continue
            try:
                minutes = int(fields["T"])
                if service_date is not None and not _link_runs_on(fields, service_date):
                    continue
            except (KeyError, ValueError):
                logger.debug("Skipping malformed ALF line: %s", line)
                continue
            footpaths.append(
                Footpath(
                    from_station_id=origin, to_station_id=dest, duration_s=minutes * 60
                )
            )
        return footpaths


def _parse_location(line: str) -> tuple[str, int, int] | None:
    """(tiploc, arrival_s, departure_s) for a public call, else None.

    Public times of "0000" mean none was published; the working time is
    used instead.
    """

    record = line[:2]
    tiploc = line[2:9].strip()
    try:
        if record == "LO":
            dep_s = _parse_hhmm(_public_or_working(line[15:19], line[10:14]))
            return tiploc, dep_s, dep_s
        if record == "LT":
            arr_s = _parse_hhmm(_public_or_working(line[15:19], line[10:14]))
            return tiploc, arr_s, arr_s

        activities = {line[i : i + 2] for i in range(42, 54, 2)}
        if not activities & _PUBLIC_ACTIVITIES:
            return None
        arr_s = _parse_hhmm(_public_or_working(line[25:29], line[10:14]))
        dep_s = _parse_hhmm(_public_or_working(line[29:33], line[15:19]))
    except ValueError:
        return None
    return tiploc, arr_s, dep_s


def _public_or_working(public: str, working: str) -> str:
    return working if public.strip() in {"", "0000"} else public


def _unwrap_midnight(
    calls: list[tuple[str, int, int]],
) -> Iterator[tuple[str, int, int]]:
    # CIF times are clock times; a later call with an earlier clock time has
    # crossed midnight.
    offset = 0
    last = 0
    for tiploc, arr_s, dep_s in calls:
        arr_s += offset
        if arr_s < last:
            offset += 24 * 3600
            arr_s += 24 * 3600
        dep_s += offset
        if dep_s < arr_s:
            offset += 24 * 3600
            dep_s += 24 * 3600
        last = dep_s
        yield tiploc, arr_s, dep_s


def _link_runs_on(fields: dict[str, str], day: date) -> bool:
    start = _parse_ddmmyyyy(fields["F"]) if "F" in fields else date.min
    end = _parse_ddmmyyyy(fields["U"]) if "U" in fields else date.max
    weekdays = _weekdays(fields["R"] if "R" in fields else "1111111")
    return ServicePeriod(start_date=start, end_date=end, weekdays=weekdays).runs_on(day)
