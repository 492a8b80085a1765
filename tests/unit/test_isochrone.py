from __future__ import annotations

import random

import pytest
from shapely.geometry import MultiPolygon, Point, Polygon

from rail_isochrones.domain.algorithms.isochrone import (
    IsochroneMethod,
    IsochroneSynthesizer,
    reachability_points,
    validate_thresholds,
)
from rail_isochrones.domain.algorithms.timetable_graph import TimetableGraph
from rail_isochrones.domain.models import (
    ArrivalLabel,
    ArrivalMode,
    GeoPoint,
    IsochroneBand,
    IsochroneQuery,
    ReachabilityPoint,
    SearchResult,
    Station,
)

ORIGIN = GeoPoint(lat=51.5308, lon=-0.1238)
THRESHOLDS = (15 * 60, 30 * 60, 60 * 60)


def _point(station_id: str, east_km: float, minutes: float) -> ReachabilityPoint:
    # ~69.4 km per degree of longitude at this latitude.
    return ReachabilityPoint(
        station_id=station_id,
        location=GeoPoint(lat=ORIGIN.lat, lon=ORIGIN.lon + east_km / 69.4),
        travel_time_s=int(minutes * 60),
    )


def _shape(band: IsochroneBand) -> MultiPolygon:
    return MultiPolygon(
        [
            Polygon(
                [p.as_lonlat() for p in poly.exterior],
                [[p.as_lonlat() for p in hole] for hole in poly.holes],
            )
            for poly in band.polygons
        ]
    )


def _covers(band: IsochroneBand, point: GeoPoint) -> bool:
    return _shape(band).covers(Point(point.as_lonlat()))


POINTS = (
    _point("origin", 0.0, 0),
    _point("near", 3.0, 10),
    _point("mid", 12.0, 25),
    _point("far", 40.0, 50),
)


@pytest.mark.unit
def test_bands_are_nested_and_grow_with_threshold() -> None:
    bands = IsochroneSynthesizer().synthesize(POINTS, THRESHOLDS)

    assert [b.threshold_s for b in bands] == list(THRESHOLDS)
    shapes = [_shape(b) for b in bands]
    for smaller, larger in zip(shapes, shapes[1:]):
        assert smaller.area <= larger.area
        assert larger.buffer(1e-6).covers(smaller)


@pytest.mark.unit
def test_band_contains_exactly_the_points_reached_in_time() -> None:
    bands = IsochroneSynthesizer().synthesize(POINTS, THRESHOLDS)
    by_id = {p.station_id: p.location for p in POINTS}

    assert _covers(bands[0], by_id["origin"])
    assert _covers(bands[0], by_id["near"])
    assert not _covers(bands[0], by_id["mid"])
    assert _covers(bands[1], by_id["mid"])
    assert not _covers(bands[1], by_id["far"])
    assert _covers(bands[2], by_id["far"])


@pytest.mark.unit
def test_nothing_reachable_early_leaves_only_an_origin_disc() -> None:
    points = (_point("origin", 0.0, 0), _point("late", 25.0, 40))

    bands = IsochroneSynthesizer().synthesize(points, THRESHOLDS)

    assert len(bands[0].polygons) == 1
    assert _covers(bands[0], ORIGIN)
    assert not _covers(bands[0], points[1].location)
    assert len(bands[1].polygons) == 1
    assert not _covers(bands[1], points[1].location)
    assert _shape(bands[1]).area <= _shape(bands[2]).area


@pytest.mark.unit
def test_catchment_radius_is_capped_by_max_walk() -> None:
    synth = IsochroneSynthesizer(max_walk_m=1000.0, min_radius_m=100.0)
    bands = synth.synthesize((_point("origin", 0.0, 0),), (3600,))

    # 1.2 km east is outside a 1 km disc; 0.8 km east is inside.
    assert not _covers(bands[0], _point("x", 1.2, 0).location)
    assert _covers(bands[0], _point("y", 0.8, 0).location)


@pytest.mark.unit
def test_no_points_gives_empty_bands() -> None:
    bands = IsochroneSynthesizer().synthesize((), THRESHOLDS)

    assert [b.threshold_s for b in bands] == list(THRESHOLDS)
    assert all(b.is_empty for b in bands)


@pytest.mark.unit
@pytest.mark.parametrize("method", list(IsochroneMethod))
def test_output_does_not_depend_on_input_order(method: IsochroneMethod) -> None:
    synth = IsochroneSynthesizer(method=method)
    shuffled = list(POINTS)
    random.Random(7).shuffle(shuffled)

    assert synth.synthesize(POINTS, THRESHOLDS) == synth.synthesize(
        shuffled, THRESHOLDS
    )


@pytest.mark.unit
def test_concave_hull_covers_reached_points() -> None:
    points = (
        _point("origin", 0.0, 0),
        _point("east", 5.0, 12),
        ReachabilityPoint(
            station_id="north",
            location=GeoPoint(lat=ORIGIN.lat + 0.04, lon=ORIGIN.lon),
            travel_time_s=600,
        ),
    )

    bands = IsochroneSynthesizer(method=IsochroneMethod.CONCAVE).synthesize(
        points, (900,)
    )

    assert len(bands[0].polygons) == 1
    for p in points:
        assert _covers(bands[0], p.location)


@pytest.mark.unit
def test_concave_with_too_few_points_falls_back_to_discs() -> None:
    bands = IsochroneSynthesizer(method=IsochroneMethod.CONCAVE).synthesize(
        (_point("origin", 0.0, 0),), (900,)
    )

    assert len(bands[0].polygons) == 1
    assert _covers(bands[0], ORIGIN)


@pytest.mark.unit
def test_polygon_rings_are_closed() -> None:
    bands = IsochroneSynthesizer().synthesize(POINTS, THRESHOLDS)

    for band in bands:
        for poly in band.polygons:
            assert poly.threshold_s == band.threshold_s
            assert poly.exterior[0] == poly.exterior[-1]


@pytest.mark.unit
@pytest.mark.parametrize("thresholds", [(0,), (-60,), (1800, 900), (900, 900)])
def test_invalid_thresholds_are_rejected(thresholds: tuple[int, ...]) -> None:
    with pytest.raises(ValueError):
        validate_thresholds(thresholds)


@pytest.mark.unit
def test_synthesizer_rejects_bad_parameters() -> None:
    with pytest.raises(ValueError):
        IsochroneSynthesizer(walk_speed_mps=0.0)
    with pytest.raises(ValueError):
        IsochroneSynthesizer(min_radius_m=3000.0, max_walk_m=2000.0)
    with pytest.raises(ValueError):
        IsochroneSynthesizer(concave_ratio=1.5)


@pytest.mark.unit
def test_reachability_points_use_travel_time_from_departure() -> None:
    stations = [
        Station(id="A", name="A", location=ORIGIN),
        Station(id="B", name="B", location=_point("B", 2.0, 0).location),
    ]
    graph = TimetableGraph.build(stations, [])
    query = IsochroneQuery(origin_station_id="A", departure_s=28_800)
    result = SearchResult(
        query=query,
        labels={
            "B": ArrivalLabel(station_id="B", arrival_s=29_400, boardings=1),
            "A": ArrivalLabel(
                station_id="A", arrival_s=28_800, boardings=0, mode=ArrivalMode.ORIGIN
            ),
        },
        rounds=1,
    )

    points = reachability_points(graph, result)

    assert [(p.station_id, p.travel_time_s) for p in points] == [("A", 0), ("B", 600)]
    assert points[1].location == stations[1].location
