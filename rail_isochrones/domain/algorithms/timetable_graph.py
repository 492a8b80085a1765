from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

import networkx as nx

from rail_isochrones.domain.exceptions import UnknownStation
from rail_isochrones.domain.models import Footpath, RoutePattern, Station, Trip

logger = logging.getLogger(__name__)

# (departure_s, route_index, position_in_route, trip_id, stop_index)
Departure = tuple[int, int, int, str, int]


@dataclass(frozen=True, slots=True)
class TimetableGraph:
    """Read-only timetable for one service day.

    Build it with :meth:`build`; the instance is never mutated afterwards and may
    be shared freely between concurrent queries.
    """

    stations: Mapping[str, Station]
    trips: Mapping[str, Trip]
    routes: tuple[RoutePattern, ...]
    departures_by_station: Mapping[str, tuple[Departure, ...]]
    departure_times_by_station: Mapping[str, tuple[int, ...]]
    routes_by_station: Mapping[str, frozenset[int]]
    route_by_trip: Mapping[str, int]
    footpaths_by_station: Mapping[str, tuple[Footpath, ...]]
    service_date: date | None = None

    @classmethod
    def build(
        cls,
        stations: Iterable[Station],
        trips: Iterable[Trip],
        footpaths: Iterable[Footpath] = (),
        *,
        service_date: date | None = None,
        close_footpaths: bool = True,
    ) -> "TimetableGraph":
        stations_by_id: dict[str, Station] = {s.id: s for s in stations}

        trips_by_id: dict[str, Trip] = {}
        for trip in trips:
            if trip.trip_id in trips_by_id:
                raise ValueError(f"Duplicate trip id: {trip.trip_id}")
            for st in trip.stop_times:
                if st.station_id not in stations_by_id:
                    raise ValueError(
                        f"Trip {trip.trip_id} calls at unknown station {st.station_id}"
                    )
            trips_by_id[trip.trip_id] = trip

        routes, route_by_trip = _group_routes(trips_by_id)
        position_in_route = {
            trip_id: pos
            for route in routes
            for pos, trip_id in enumerate(route.trip_ids)
        }

        departures: dict[str, list[Departure]] = {}
        routes_by_station: dict[str, set[int]] = {}
        for trip in trips_by_id.values():
            route_index = route_by_trip[trip.trip_id]
            position = position_in_route[trip.trip_id]
            # The final call has no onward departure.
            for idx, st in enumerate(trip.stop_times[:-1]):
                departures.setdefault(st.station_id, []).append(
                    (st.departure_s, route_index, position, trip.trip_id, idx)
                )
                routes_by_station.setdefault(st.station_id, set()).add(route_index)

        frozen_departures: dict[str, tuple[Departure, ...]] = {}
        departure_times: dict[str, tuple[int, ...]] = {}
        for station_id, entries in departures.items():
            entries.sort()
            frozen_departures[station_id] = tuple(entries)
            departure_times[station_id] = tuple(e[0] for e in entries)

        footpaths_by_station = _index_footpaths(
            footpaths, stations_by_id, close=close_footpaths
        )

        logger.info(
            "Built timetable graph: %d stations, %d trips, %d routes, %d footpaths",
            len(stations_by_id),
            len(trips_by_id),
            len(routes),
            sum(len(v) for v in footpaths_by_station.values()),
        )

        return cls(
            stations=MappingProxyType(stations_by_id),
            trips=MappingProxyType(trips_by_id),
            routes=routes,
            departures_by_station=MappingProxyType(frozen_departures),
            departure_times_by_station=MappingProxyType(departure_times),
            routes_by_station=MappingProxyType(
                {k: frozenset(v) for k, v in routes_by_station.items()}
            ),
            route_by_trip=MappingProxyType(route_by_trip),
            footpaths_by_station=MappingProxyType(footpaths_by_station),
            service_date=service_date,
        )

    @property
    def is_empty(self) -> bool:
        return not self.trips

    def station(self, station_id: str) -> Station:
        try:
            return self.stations[station_id]
        except KeyError:
            raise UnknownStation(station_id) from None

    def trip(self, trip_id: str) -> Trip:
        return self.trips[trip_id]

    def route_of(self, trip_id: str) -> int:
        return self.route_by_trip[trip_id]

    def routes_at(self, station_id: str) -> frozenset[int]:
        return self.routes_by_station.get(station_id, frozenset())

    def trips_departing_after(
        self, station_id: str, time_s: int
    ) -> Iterator[tuple[Trip, int]]:
        """Yield (trip, stop_index) departing ``station_id`` at or after ``time_s``.

        Ascending by departure time. Equal departures keep their route group
        order, so the first trip seen for a route is never behind a later one.
        """

        entries = self.departures_by_station.get(station_id, ())
        keys = self.departure_times_by_station.get(station_id, ())
        start = bisect.bisect_left(keys, time_s)
        for i in range(start, len(entries)):
            _, _, _, trip_id, idx = entries[i]
            yield self.trips[trip_id], idx

    def footpaths_from(self, station_id: str) -> tuple[Footpath, ...]:
        return self.footpaths_by_station.get(station_id, ())

    def __reduce__(self):
        # Mapping proxies do not pickle; rebuild from the values instead. The
        # stored footpaths are already closed.
        footpaths = tuple(
            fp for fps in self.footpaths_by_station.values() for fp in fps
        )
        return (
            _restore,
            (
                tuple(self.stations.values()),
                tuple(self.trips.values()),
                footpaths,
                self.service_date,
            ),
        )


def _restore(
    stations: tuple[Station, ...],
    trips: tuple[Trip, ...],
    footpaths: tuple[Footpath, ...],
    service_date: date | None,
) -> TimetableGraph:
    return TimetableGraph.build(
        stations, trips, footpaths, service_date=service_date, close_footpaths=False
    )


def _dominates(later: Trip, earlier: Trip) -> bool:
    """True if ``later`` is never ahead of ``earlier`` at any stop."""

    return all(
        b.arrival_s >= a.arrival_s and b.departure_s >= a.departure_s
        for a, b in zip(earlier.stop_times, later.stop_times)
    )


def _group_routes(
    trips_by_id: Mapping[str, Trip],
) -> tuple[tuple[RoutePattern, ...], dict[str, int]]:
    """Group trips by station pattern and split each pattern into FIFO groups."""

    by_pattern: dict[tuple[str, ...], list[Trip]] = {}
    for trip in trips_by_id.values():
        by_pattern.setdefault(trip.station_ids, []).append(trip)

    routes: list[RoutePattern] = []
    route_by_trip: dict[str, int] = {}

    for pattern in sorted(by_pattern):
        pattern_trips = sorted(
            by_pattern[pattern], key=lambda t: (t.departure_s(0), t.trip_id)
        )

        groups: list[list[Trip]] = []
        for trip in pattern_trips:
            for group in groups:
                if _dominates(trip, group[-1]):
                    group.append(trip)
                    break
            else:
                # Overtakes (or is overtaken by) every existing group.
                groups.append([trip])

        for group in groups:
            index = len(routes)
            routes.append(
                RoutePattern(
                    index=index,
                    station_ids=pattern,
                    trip_ids=tuple(t.trip_id for t in group),
                    route_id=group[0].route_id,
                )
            )
            for t in group:
                route_by_trip[t.trip_id] = index

    return tuple(routes), route_by_trip


def _index_footpaths(
    footpaths: Iterable[Footpath],
    stations_by_id: Mapping[str, Station],
    *,
    close: bool,
) -> dict[str, tuple[Footpath, ...]]:
    graph = nx.DiGraph()
    for fp in footpaths:
        for station_id in (fp.from_station_id, fp.to_station_id):
            if station_id not in stations_by_id:
                raise ValueError(f"Footpath references unknown station {station_id}")
        if fp.from_station_id == fp.to_station_id:
            continue

        existing = graph.get_edge_data(fp.from_station_id, fp.to_station_id)
        if existing is None or fp.duration_s < existing["duration_s"]:
            graph.add_edge(
                fp.from_station_id, fp.to_station_id, duration_s=int(fp.duration_s)
            )

    out: dict[str, tuple[Footpath, ...]] = {}
    for source in sorted(graph.nodes):
        if close:
            lengths = nx.single_source_dijkstra_path_length(
                graph, source, weight="duration_s"
            )
        else:
            lengths = {
                target: data["duration_s"]
                for target, data in graph.adj[source].items()
            }

        paths = [
            Footpath(
                from_station_id=source, to_station_id=target, duration_s=int(duration)
            )
            for target, duration in lengths.items()
            if target != source
        ]
        if paths:
            paths.sort(key=lambda fp: (fp.duration_s, fp.to_station_id))
            out[source] = tuple(paths)

    return out
