from .query import (
    DepartureOutsideServiceDay,
    InvalidQuery,
    IsochroneError,
    NoStationNearby,
    UnknownStation,
)

__all__ = [
    "DepartureOutsideServiceDay",
    "InvalidQuery",
    "IsochroneError",
    "NoStationNearby",
    "UnknownStation",
]
