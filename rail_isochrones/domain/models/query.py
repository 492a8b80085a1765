from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class IsochroneQuery:
    origin_station_id: str
    departure_s: int
    max_transfers: int | None = None
    time_budget_s: int | None = None

    @property
    def cutoff_s(self) -> int | None:
        if self.time_budget_s is None:
            return None
        return self.departure_s + self.time_budget_s
