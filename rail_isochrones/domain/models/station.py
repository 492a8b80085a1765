from __future__ import annotations

from dataclasses import dataclass

from .geo import GeoPoint


@dataclass(frozen=True, slots=True)
class Station:
    """A rail station (or GTFS stop) that trips call at.

    ``interchange_s`` is the minimum connection time needed between alighting
    from one train and boarding another at this station.
    """

    id: str
    name: str
    location: GeoPoint
    interchange_s: int = 0

    def __post_init__(self) -> None:
        if self.interchange_s < 0:
            raise ValueError(f"Negative interchange time at {self.id}")
