from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, time
from typing import Sequence

from rail_isochrones.app.ports.output import ITimetableRepository
from rail_isochrones.domain.algorithms.geo_utils import stations_within_radius
from rail_isochrones.domain.algorithms.isochrone import (
    IsochroneMethod,
    IsochroneSynthesizer,
    reachability_points,
    validate_thresholds,
)
from rail_isochrones.domain.algorithms.raptor import (
    DEFAULT_MAX_ROUNDS,
    RoundBasedPlanner,
)
from rail_isochrones.domain.algorithms.timetable_graph import TimetableGraph
from rail_isochrones.domain.exceptions import (
    DepartureOutsideServiceDay,
    InvalidQuery,
    NoStationNearby,
)
from rail_isochrones.domain.models import (
    GeoPoint,
    IsochroneQuery,
    IsochroneResult,
    ReachabilityPoint,
    SearchResult,
)

from .service_time import seconds_since_midnight

logger = logging.getLogger(__name__)

# Point id used for a coordinate origin that is not itself a station.
ORIGIN_POINT_ID = "@origin"
DEFAULT_DEPARTURE = time(8, 0)


@dataclass(slots=True)
class IsochroneService:
    """Isochrone use case: timetable -> earliest arrivals -> polygons.

    The timetable is loaded from the repository on first use and reused for
    every later query; it is immutable, so concurrent queries share it safely.
    """

    timetable_repository: ITimetableRepository
    synthesizer: IsochroneSynthesizer = field(default_factory=IsochroneSynthesizer)

    # Tuning knobs
    walk_speed_mps: float = 1.4
    access_radius_m: float = 500.0
    max_access_stations: int = 8
    max_rounds: int = DEFAULT_MAX_ROUNDS

    _graph: TimetableGraph | None = None

    def timetable(self) -> TimetableGraph:
        if self._graph is None:
            self._graph = self.timetable_repository.load_timetable()
        return self._graph

    def default_departure(self) -> datetime:
        graph = self.timetable()
        day = graph.service_date or datetime.now().date()
        return datetime.combine(day, DEFAULT_DEPARTURE)

    def compute_from_station(
        self,
        *,
        station_id: str,
        depart_at: datetime,
        thresholds_min: Sequence[float],
        max_transfers: int | None = None,
        time_budget_min: float | None = None,
        record_rounds: bool = False,
        method: IsochroneMethod | None = None,
    ) -> IsochroneResult:
        graph = self.timetable()
        thresholds_s = self._thresholds_s(thresholds_min)
        query = self._query(
            graph,
            origin_station_id=graph.station(station_id).id,
            depart_at=depart_at,
            thresholds_s=thresholds_s,
            max_transfers=max_transfers,
            time_budget_min=time_budget_min,
        )

        search = self._planner(graph).plan(query, record_rounds=record_rounds)
        points = reachability_points(graph, search)
        return self._finish(search, points, thresholds_s, method)

    def compute_from_location(
        self,
        *,
        location: GeoPoint,
        depart_at: datetime,
        thresholds_min: Sequence[float],
        max_transfers: int | None = None,
        time_budget_min: float | None = None,
        record_rounds: bool = False,
        method: IsochroneMethod | None = None,
    ) -> IsochroneResult:
        """Isochrone from an arbitrary coordinate.

        Every station within ``access_radius_m`` is seeded with the time needed
        to walk there in a straight line.
        """

        graph = self.timetable()
        thresholds_s = self._thresholds_s(thresholds_min)

        nearby = stations_within_radius(
            graph.stations.values(),
            point=location,
            radius_m=float(self.access_radius_m),
            max_count=int(self.max_access_stations),
        )
        if not nearby:
            raise NoStationNearby(
                f"No station within {self.access_radius_m:.0f} m of "
                f"({location.lat}, {location.lon})"
            )

        query = self._query(
            graph,
            origin_station_id=nearby[0][0].id,
            depart_at=depart_at,
            thresholds_s=thresholds_s,
            max_transfers=max_transfers,
            time_budget_min=time_budget_min,
        )

        seeds = {
            station.id: query.departure_s
            + int(math.ceil(distance_m / self.walk_speed_mps))
            for station, distance_m in nearby
        }
        search = self._planner(graph).plan_from_seeds(
            query, seeds, record_rounds=record_rounds
        )

        points = (
            ReachabilityPoint(
                station_id=ORIGIN_POINT_ID, location=location, travel_time_s=0
            ),
        ) + reachability_points(graph, search)
        return self._finish(search, points, thresholds_s, method)

    def _planner(self, graph: TimetableGraph) -> RoundBasedPlanner:
        return RoundBasedPlanner(graph, max_rounds_cap=int(self.max_rounds))

    def _thresholds_s(self, thresholds_min: Sequence[float]) -> tuple[int, ...]:
        try:
            return validate_thresholds(
                [int(round(float(m) * 60)) for m in thresholds_min]
            )
        except (TypeError, ValueError) as exc:
            raise InvalidQuery(f"Invalid thresholds: {exc}") from exc

    def _query(
        self,
        graph: TimetableGraph,
        *,
        origin_station_id: str,
        depart_at: datetime,
        thresholds_s: tuple[int, ...],
        max_transfers: int | None,
        time_budget_min: float | None,
    ) -> IsochroneQuery:
        if graph.service_date is not None and depart_at.date() != graph.service_date:
            raise DepartureOutsideServiceDay(
                f"Departure {depart_at.isoformat()} is not on the loaded service day "
                f"{graph.service_date.isoformat()}"
            )

        # Labels past the largest threshold never show up in a polygon.
        if time_budget_min is not None:
            budget_s: int | None = int(round(float(time_budget_min) * 60))
        elif thresholds_s:
            budget_s = thresholds_s[-1]
        else:
            budget_s = None

        return IsochroneQuery(
            origin_station_id=origin_station_id,
            departure_s=seconds_since_midnight(depart_at),
            max_transfers=max_transfers,
            time_budget_s=budget_s,
        )

    def _finish(
        self,
        search: SearchResult,
        points: tuple[ReachabilityPoint, ...],
        thresholds_s: tuple[int, ...],
        method: IsochroneMethod | None,
    ) -> IsochroneResult:
        synthesizer = self.synthesizer
        if method is not None and method is not synthesizer.method:
            synthesizer = replace(synthesizer, method=method)
        bands = synthesizer.synthesize(points, thresholds_s)

        logger.info(
            "Isochrone from %s at %ds: %d stations reached in %d rounds (complete=%s)",
            search.query.origin_station_id,
            search.query.departure_s,
            len(search.labels),
            search.rounds,
            search.complete,
        )
        return IsochroneResult(search=search, points=points, bands=bands)
