from __future__ import annotations

from dataclasses import dataclass

from .geo import GeoPoint
from .labels import SearchResult


@dataclass(frozen=True, slots=True)
class ReachabilityPoint:
    station_id: str
    location: GeoPoint
    travel_time_s: int


@dataclass(frozen=True, slots=True)
class IsochronePolygon:
    """A closed boundary ring (first point == last point) plus any holes."""

    threshold_s: int
    exterior: tuple[GeoPoint, ...]
    holes: tuple[tuple[GeoPoint, ...], ...] = ()


@dataclass(frozen=True, slots=True)
class IsochroneBand:
    threshold_s: int
    polygons: tuple[IsochronePolygon, ...] = ()

    @property
    def threshold_min(self) -> float:
        return self.threshold_s / 60.0

    @property
    def is_empty(self) -> bool:
        return not self.polygons


@dataclass(frozen=True, slots=True)
class IsochroneResult:
    search: SearchResult
    points: tuple[ReachabilityPoint, ...]
    bands: tuple[IsochroneBand, ...]
