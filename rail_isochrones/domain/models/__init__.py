from .geo import GeoPoint
from .isochrone import (
    IsochroneBand,
    IsochronePolygon,
    IsochroneResult,
    ReachabilityPoint,
)
from .labels import ArrivalLabel, ArrivalMode, SearchResult
from .query import IsochroneQuery
from .station import Station
from .timetable import Footpath, RoutePattern, StopTime, Trip

__all__ = [
    "ArrivalLabel",
    "ArrivalMode",
    "Footpath",
    "GeoPoint",
    "IsochroneBand",
    "IsochronePolygon",
    "IsochroneQuery",
    "IsochroneResult",
    "ReachabilityPoint",
    "RoutePattern",
    "SearchResult",
    "Station",
    "StopTime",
    "Trip",
]
