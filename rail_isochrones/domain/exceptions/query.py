class IsochroneError(Exception):
    """Base exception for isochrone computation failures."""


class InvalidQuery(IsochroneError):
    """Raised when a query is rejected before any search is performed."""


class UnknownStation(InvalidQuery):
    """Raised when the origin station is not part of the timetable."""

    def __init__(self, station_id: str) -> None:
        super().__init__(f"Unknown station: {station_id}")
        self.station_id = station_id


class DepartureOutsideServiceDay(InvalidQuery):
    """Raised when the departure does not fall within the loaded service day."""


class NoStationNearby(InvalidQuery):
    """Raised when no station lies within walking distance of a coordinate origin."""
