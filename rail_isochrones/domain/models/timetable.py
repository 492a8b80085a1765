from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StopTime:
    """One call of a trip at a station.

    Times are seconds since service day midnight (GTFS time semantics; may exceed 24h).
    """

    trip_id: str
    station_id: str
    arrival_s: int
    departure_s: int
    sequence: int

    def __post_init__(self) -> None:
        if self.arrival_s < 0 or self.departure_s < 0:
            raise ValueError(
                f"Negative stop time for trip {self.trip_id} at {self.station_id}"
            )
        if self.departure_s < self.arrival_s:
            raise ValueError(
                f"Trip {self.trip_id} departs {self.station_id} before arriving"
            )


@dataclass(frozen=True, slots=True)
class Trip:
    """A single scheduled run of a service on the service day."""

    trip_id: str
    stop_times: tuple[StopTime, ...]
    route_id: str | None = None

    def __post_init__(self) -> None:
        if len(self.stop_times) < 2:
            raise ValueError(f"Trip {self.trip_id} must call at 2 or more stations")

        for prev, cur in zip(self.stop_times, self.stop_times[1:]):
            if cur.sequence <= prev.sequence:
                raise ValueError(f"Trip {self.trip_id} stop sequence is not increasing")
            if cur.arrival_s < prev.departure_s:
                raise ValueError(f"Trip {self.trip_id} goes back in time")

    @property
    def station_ids(self) -> tuple[str, ...]:
        return tuple(st.station_id for st in self.stop_times)

    def arrival_s(self, index: int) -> int:
        return self.stop_times[index].arrival_s

    def departure_s(self, index: int) -> int:
        return self.stop_times[index].departure_s


@dataclass(frozen=True, slots=True)
class Footpath:
    """Directed walking/interchange link between two stations."""

    from_station_id: str
    to_station_id: str
    duration_s: int

    def __post_init__(self) -> None:
        if not math.isfinite(self.duration_s) or self.duration_s < 0:
            raise ValueError(
                f"Invalid footpath duration {self.duration_s} "
                f"({self.from_station_id} -> {self.to_station_id})"
            )


@dataclass(frozen=True, slots=True)
class RoutePattern:
    """Trips sharing one ordered station pattern that never overtake each other.

    Trips are sorted by departure from the first station, and because they are
    FIFO the same order holds at every stop along the pattern.
    """

    index: int
    station_ids: tuple[str, ...]
    trip_ids: tuple[str, ...]
    route_id: str | None = None
