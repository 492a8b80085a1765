from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from rail_isochrones.domain.algorithms.timetable_graph import TimetableGraph
from rail_isochrones.domain.exceptions import DepartureOutsideServiceDay, InvalidQuery
from rail_isochrones.domain.models import (
    ArrivalLabel,
    ArrivalMode,
    IsochroneQuery,
    SearchResult,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 3600
DEFAULT_MAX_ROUNDS = 20


@dataclass(frozen=True, slots=True)
class RoundBasedPlanner:
    """Round-based earliest arrival search over a :class:`TimetableGraph`.

    Round k settles the earliest arrivals reachable with at most k vehicle
    boardings. Footpaths are relaxed inside the round that alighted at their
    source, so walking never costs a round.

    The planner holds no per-query state; every call owns its own labels.
    """

    graph: TimetableGraph
    max_rounds_cap: int = DEFAULT_MAX_ROUNDS

    def plan(self, query: IsochroneQuery, *, record_rounds: bool = False) -> SearchResult:
        self.graph.station(query.origin_station_id)
        return self.plan_from_seeds(
            query,
            {query.origin_station_id: query.departure_s},
            record_rounds=record_rounds,
        )

    def plan_from_seeds(
        self,
        query: IsochroneQuery,
        seeds: Mapping[str, int],
        *,
        record_rounds: bool = False,
    ) -> SearchResult:
        """Search from several initial stations at once.

        ``seeds`` maps station ids to the time the traveller is standing there,
        e.g. after walking from a coordinate origin. ``query`` supplies the
        departure time, budget and transfer cap.
        """

        _validate(query)
        for station_id in seeds:
            self.graph.station(station_id)

        cutoff = query.cutoff_s
        best: dict[str, ArrivalLabel] = {}
        # Earliest time a train can be boarded at each station. Differs from
        # the label when interchange time applies after alighting.
        ready: dict[str, int] = {}
        for station_id, time_s in sorted(seeds.items()):
            if time_s < query.departure_s:
                raise InvalidQuery(f"Seed {station_id} is earlier than the departure")
            if cutoff is not None and time_s > cutoff:
                continue
            best[station_id] = ArrivalLabel(
                station_id=station_id,
                arrival_s=int(time_s),
                boardings=0,
                mode=ArrivalMode.ORIGIN,
            )
            ready[station_id] = int(time_s)

        marked = set(best)
        marked |= self._relax_footpaths(
            best, ready, marked, boardings=0, cutoff=cutoff
        )

        snapshots: list[dict[str, int]] = []
        if record_rounds:
            snapshots.append(_snapshot(best))

        max_rounds = self.max_rounds_cap
        if query.max_transfers is not None:
            max_rounds = min(max_rounds, query.max_transfers + 1)

        ridden_from: dict[str, int] = {}
        rounds = 0
        while marked and rounds < max_rounds:
            rounds += 1

            boardings = self._collect_boardings(ready, marked)
            improved = self._ride_trips(
                best,
                ready,
                boardings,
                ridden_from,
                boardings_used=rounds,
                cutoff=cutoff,
            )
            improved |= self._relax_footpaths(
                best, ready, improved, boardings=rounds, cutoff=cutoff
            )

            logger.debug(
                "Round %d: %d stations scanned, %d trips boarded, %d improved",
                rounds,
                len(marked),
                len(boardings),
                len(improved),
            )

            marked = improved
            if record_rounds:
                snapshots.append(_snapshot(best))

        complete = not marked
        if not complete:
            logger.info(
                "Search from %s stopped after %d rounds with %d stations still improving",
                query.origin_station_id,
                rounds,
                len(marked),
            )

        return SearchResult(
            query=query,
            labels=best,
            rounds=rounds,
            complete=complete,
            round_snapshots=tuple(snapshots),
        )

    def _collect_boardings(
        self, ready: Mapping[str, int], marked: Iterable[str]
    ) -> dict[str, int]:
        """Earliest boardable stop index per trip, using last round's readiness.

        Only the first departure of each FIFO route group is taken at a station:
        later trips of the same group cannot arrive anywhere earlier.
        """

        boardings: dict[str, int] = {}
        for station_id in sorted(marked):
            serving = self.graph.routes_at(station_id)
            if not serving:
                continue

            seen_routes: set[int] = set()
            departing = self.graph.trips_departing_after(station_id, ready[station_id])
            for trip, idx in departing:
                route = self.graph.route_of(trip.trip_id)
                if route in seen_routes:
                    continue
                seen_routes.add(route)

                current = boardings.get(trip.trip_id)
                if current is None or idx < current:
                    boardings[trip.trip_id] = idx

                if len(seen_routes) == len(serving):
                    break

        return boardings

    def _ride_trips(
        self,
        best: dict[str, ArrivalLabel],
        ready: dict[str, int],
        boardings: Mapping[str, int],
        ridden_from: dict[str, int],
        *,
        boardings_used: int,
        cutoff: int | None,
    ) -> set[str]:
        improved: set[str] = set()

        for trip_id in sorted(boardings):
            start = boardings[trip_id]
            trip = self.graph.trip(trip_id)

            # Stops after an earlier boarding point already hold this trip's
            # arrivals, so riding past it cannot improve anything.
            stop = ridden_from.get(trip_id, len(trip.stop_times) - 1)
            if start >= stop:
                continue
            ridden_from[trip_id] = start

            for st in trip.stop_times[start + 1 : stop + 1]:
                if cutoff is not None and st.arrival_s > cutoff:
                    break

                current = best.get(st.station_id)
                if current is None or st.arrival_s < current.arrival_s:
                    best[st.station_id] = ArrivalLabel(
                        station_id=st.station_id,
                        arrival_s=st.arrival_s,
                        boardings=boardings_used,
                        mode=ArrivalMode.TRIP,
                    )
                    station = self.graph.stations[st.station_id]
                    change_s = st.arrival_s + station.interchange_s
                    ready[st.station_id] = min(
                        ready.get(st.station_id, change_s), change_s
                    )
                    improved.add(st.station_id)

        return improved

    def _relax_footpaths(
        self,
        best: dict[str, ArrivalLabel],
        ready: dict[str, int],
        sources: Iterable[str],
        *,
        boardings: int,
        cutoff: int | None,
    ) -> set[str]:
        """Walk onward from ``sources``; returns stations whose label or
        readiness improved.

        Walking into a station is a fresh start there, so a walk that arrives
        after a train can still allow an earlier boarding than the train's
        arrival plus interchange time.
        """

        improved: set[str] = set()
        heap = [(best[s].arrival_s, s) for s in sorted(sources)]
        heapq.heapify(heap)

        while heap:
            time_s, station_id = heapq.heappop(heap)
            if best[station_id].arrival_s < time_s:
                continue

            for fp in self.graph.footpaths_from(station_id):
                arrival_s = time_s + fp.duration_s
                if cutoff is not None and arrival_s > cutoff:
                    continue

                target = fp.to_station_id
                current = best.get(target)
                if current is None or arrival_s < current.arrival_s:
                    best[target] = ArrivalLabel(
                        station_id=target,
                        arrival_s=arrival_s,
                        boardings=boardings,
                        mode=ArrivalMode.FOOTPATH,
                    )
                    ready[target] = min(ready.get(target, arrival_s), arrival_s)
                    improved.add(target)
                    heapq.heappush(heap, (arrival_s, target))
                elif arrival_s < ready[target]:
                    # Later than the label, but boardable sooner.
                    ready[target] = arrival_s
                    improved.add(target)

        return improved


def earliest_arrivals(
    graph: TimetableGraph, query: IsochroneQuery, *, record_rounds: bool = False
) -> SearchResult:
    return RoundBasedPlanner(graph).plan(query, record_rounds=record_rounds)


def _validate(query: IsochroneQuery) -> None:
    if not (0 <= query.departure_s < SECONDS_PER_DAY):
        raise DepartureOutsideServiceDay(
            f"Departure {query.departure_s}s is outside the service day"
        )
    if query.max_transfers is not None and query.max_transfers < 0:
        raise InvalidQuery("max_transfers must be >= 0")
    if query.time_budget_s is not None and query.time_budget_s < 0:
        raise InvalidQuery("time_budget_s must be >= 0")


def _snapshot(best: Mapping[str, ArrivalLabel]) -> dict[str, int]:
    return {station_id: label.arrival_s for station_id, label in best.items()}
