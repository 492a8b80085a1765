from __future__ import annotations

from typing import Any, Iterable

from shapely.geometry import MultiPolygon, Polygon, mapping

from rail_isochrones.app.services.service_time import format_service_time
from rail_isochrones.domain.algorithms.timetable_graph import TimetableGraph
from rail_isochrones.domain.models import (
    GeoPoint,
    IsochroneBand,
    IsochronePolygon,
    SearchResult,
)


def _coords(ring: Iterable[GeoPoint]) -> list[tuple[float, float]]:
    return [p.as_lonlat() for p in ring]


def _to_shapely(polygon: IsochronePolygon) -> Polygon:
    return Polygon(_coords(polygon.exterior), [_coords(h) for h in polygon.holes])


def band_to_feature(band: IsochroneBand) -> dict[str, Any]:
    geometry = MultiPolygon([_to_shapely(p) for p in band.polygons])
    return {
        "type": "Feature",
        "geometry": mapping(geometry),
        "properties": {
            "threshold_s": band.threshold_s,
            "threshold_min": band.threshold_min,
        },
    }


def bands_to_feature_collection(bands: Iterable[IsochroneBand]) -> dict[str, Any]:
    """One MultiPolygon feature per threshold, smallest threshold first."""

    return {
        "type": "FeatureCollection",
        "features": [band_to_feature(b) for b in bands],
    }


def arrivals_to_feature_collection(
    graph: TimetableGraph, result: SearchResult
) -> dict[str, Any]:
    features = []
    for station_id, label in sorted(
        result.labels.items(), key=lambda kv: (kv[1].arrival_s, kv[0])
    ):
        station = graph.stations[station_id]
        features.append(
            {
                "type": "Feature",
                "geometry": {
                    "type": "Point",
                    "coordinates": list(station.location.as_lonlat()),
                },
                "properties": {
                    "station_id": station_id,
                    "name": station.name,
                    "arrival_time": format_service_time(label.arrival_s),
                    "travel_time_s": label.arrival_s - result.query.departure_s,
                    "transfers": label.transfers,
                },
            }
        )

    return {"type": "FeatureCollection", "features": features}
