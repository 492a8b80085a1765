from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

import shapely
from pyproj import CRS, Transformer
from shapely.geometry import MultiPoint, Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform, unary_union

from rail_isochrones.domain.algorithms.timetable_graph import TimetableGraph
from rail_isochrones.domain.models import (
    GeoPoint,
    IsochroneBand,
    IsochronePolygon,
    ReachabilityPoint,
    SearchResult,
)

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"


class IsochroneMethod(str, Enum):
    CATCHMENT = "catchment"
    CONCAVE = "concave"


@dataclass(frozen=True, slots=True)
class _LocalProjection:
    """Azimuthal equidistant projection centred on the query origin (meters)."""

    forward: Transformer
    inverse: Transformer

    @classmethod
    def centred_on(cls, centre: GeoPoint) -> "_LocalProjection":
        local = CRS.from_proj4(
            f"+proj=aeqd +lat_0={centre.lat} +lon_0={centre.lon} "
            "+datum=WGS84 +units=m +no_defs"
        )
        return cls(
            forward=Transformer.from_crs(WGS84, local, always_xy=True),
            inverse=Transformer.from_crs(local, WGS84, always_xy=True),
        )

    def to_local(self, point: GeoPoint) -> tuple[float, float]:
        x, y = self.forward.transform(point.lon, point.lat)
        return (float(x), float(y))

    def to_wgs84(self, geom: BaseGeometry) -> BaseGeometry:
        return transform(self.inverse.transform, geom)


@dataclass(frozen=True, slots=True)
class IsochroneSynthesizer:
    """Turns timed station points into reachability polygons.

    ``catchment`` unions a walking disc around every station reached in time;
    the disc radius is the walk possible in the time left before the threshold.
    ``concave`` wraps the reached stations in a concave hull instead.
    """

    method: IsochroneMethod = IsochroneMethod.CATCHMENT
    walk_speed_mps: float = 1.4
    max_walk_m: float = 2000.0
    min_radius_m: float = 250.0
    quad_segs: int = 8
    concave_ratio: float = 0.3

    def __post_init__(self) -> None:
        if self.walk_speed_mps <= 0:
            raise ValueError("walk_speed_mps must be > 0")
        if not (0 < self.min_radius_m <= self.max_walk_m):
            raise ValueError("Expected 0 < min_radius_m <= max_walk_m")
        if not (0.0 <= self.concave_ratio <= 1.0):
            raise ValueError("concave_ratio must be within [0, 1]")

    def synthesize(
        self, points: Iterable[ReachabilityPoint], thresholds_s: Sequence[int]
    ) -> tuple[IsochroneBand, ...]:
        thresholds = validate_thresholds(thresholds_s)

        # Fixed total order so equal times/coordinates never depend on input order.
        ordered = sorted(points, key=lambda p: (p.travel_time_s, p.station_id))
        if not ordered:
            return tuple(IsochroneBand(threshold_s=t) for t in thresholds)

        projection = _LocalProjection.centred_on(ordered[0].location)
        projected = [(p, projection.to_local(p.location)) for p in ordered]

        bands: list[IsochroneBand] = []
        for threshold_s in thresholds:
            selected = [
                (p, xy) for p, xy in projected if p.travel_time_s <= threshold_s
            ]
            if not selected:
                bands.append(IsochroneBand(threshold_s=threshold_s))
                continue

            if self.method is IsochroneMethod.CONCAVE:
                local = self._concave(selected)
            else:
                local = self._catchment(selected, threshold_s)

            geom = shapely.normalize(projection.to_wgs84(local))
            bands.append(
                IsochroneBand(
                    threshold_s=threshold_s,
                    polygons=_to_polygons(geom, threshold_s),
                )
            )
            logger.debug(
                "Threshold %ds: %d points -> %d polygons",
                threshold_s,
                len(selected),
                len(bands[-1].polygons),
            )

        return tuple(bands)

    def _radius_m(self, slack_s: int) -> float:
        radius = self.walk_speed_mps * max(0, slack_s)
        return min(max(radius, self.min_radius_m), self.max_walk_m)

    def _catchment(
        self,
        selected: list[tuple[ReachabilityPoint, tuple[float, float]]],
        threshold_s: int,
    ) -> BaseGeometry:
        discs = [
            Point(xy).buffer(
                self._radius_m(threshold_s - p.travel_time_s), quad_segs=self.quad_segs
            )
            for p, xy in selected
        ]
        return unary_union(discs)

    def _concave(
        self, selected: list[tuple[ReachabilityPoint, tuple[float, float]]]
    ) -> BaseGeometry:
        coords = sorted({xy for _, xy in selected})
        if len(coords) < 3:
            # Not enough for a hull; a minimal disc around each point instead.
            return unary_union(
                [
                    Point(xy).buffer(self.min_radius_m, quad_segs=self.quad_segs)
                    for xy in coords
                ]
            )

        hull = shapely.concave_hull(MultiPoint(coords), ratio=self.concave_ratio)
        return hull.buffer(self.min_radius_m, quad_segs=self.quad_segs)


def validate_thresholds(thresholds_s: Sequence[int]) -> tuple[int, ...]:
    thresholds = tuple(int(t) for t in thresholds_s)
    for t in thresholds:
        if t <= 0:
            raise ValueError(f"Threshold must be positive: {t}")
    for a, b in zip(thresholds, thresholds[1:]):
        if b <= a:
            raise ValueError("Thresholds must be strictly ascending")
    return thresholds


def reachability_points(
    graph: TimetableGraph, result: SearchResult
) -> tuple[ReachabilityPoint, ...]:
    points = [
        ReachabilityPoint(
            station_id=station_id,
            location=graph.stations[station_id].location,
            travel_time_s=label.arrival_s - result.query.departure_s,
        )
        for station_id, label in result.labels.items()
    ]
    points.sort(key=lambda p: (p.travel_time_s, p.station_id))
    return tuple(points)


def _ring(coords: Iterable[tuple[float, ...]]) -> tuple[GeoPoint, ...]:
    return tuple(GeoPoint.from_lonlat(c[0], c[1]) for c in coords)


def _to_polygons(geom: BaseGeometry, threshold_s: int) -> tuple[IsochronePolygon, ...]:
    if geom.is_empty:
        return ()

    if isinstance(geom, Polygon):
        parts = [geom]
    else:
        parts = [g for g in getattr(geom, "geoms", ()) if isinstance(g, Polygon)]

    return tuple(
        IsochronePolygon(
            threshold_s=threshold_s,
            exterior=_ring(poly.exterior.coords),
            holes=tuple(_ring(hole.coords) for hole in poly.interiors),
        )
        for poly in parts
        if not poly.is_empty
    )
