from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from .query import IsochroneQuery


class ArrivalMode(str, Enum):
    ORIGIN = "origin"
    TRIP = "trip"
    FOOTPATH = "footpath"


@dataclass(frozen=True, slots=True)
class ArrivalLabel:
    station_id: str
    arrival_s: int
    boardings: int
    mode: ArrivalMode = ArrivalMode.TRIP

    @property
    def transfers(self) -> int:
        return max(0, self.boardings - 1)


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Earliest arrival labels of one planner run.

    Stations that cannot be reached have no entry in ``labels``. ``complete`` is
    False when the search stopped on the round cap while stations were still
    improving; the labels are then a consistent prefix of the full answer.
    """

    query: IsochroneQuery
    labels: Mapping[str, ArrivalLabel]
    rounds: int
    complete: bool = True
    round_snapshots: tuple[Mapping[str, int], ...] = field(default_factory=tuple)

    def arrival_s(self, station_id: str) -> int | None:
        label = self.labels.get(station_id)
        return label.arrival_s if label else None

    def travel_time_s(self, station_id: str) -> int | None:
        arrival = self.arrival_s(station_id)
        if arrival is None:
            return None
        return arrival - self.query.departure_s
