from __future__ import annotations

import math
from typing import Iterable

from rail_isochrones.domain.models import GeoPoint, Station

EARTH_RADIUS_M = 6371008.8


def haversine_distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters."""

    lat1 = math.radians(a.lat)
    lon1 = math.radians(a.lon)
    lat2 = math.radians(b.lat)
    lon2 = math.radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    s = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2.0) ** 2
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(math.sqrt(s))


def stations_within_radius(
    stations: Iterable[Station], *, point: GeoPoint, radius_m: float, max_count: int
) -> list[tuple[Station, float]]:
    """Stations within ``radius_m`` of ``point``, nearest first (ties by id)."""

    scored: list[tuple[float, str, Station]] = []
    for station in stations:
        d = haversine_distance_m(point, station.location)
        if d <= radius_m:
            scored.append((d, station.id, station))

    scored.sort(key=lambda x: (x[0], x[1]))
    return [(s, d) for d, _, s in scored[:max_count]]
