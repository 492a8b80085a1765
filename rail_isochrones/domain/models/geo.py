from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """WGS84 coordinate in degrees."""

    lat: float
    lon: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.lat <= 90.0):
            raise ValueError(f"Invalid latitude: {self.lat}")
        if not (-180.0 <= self.lon <= 180.0):
            raise ValueError(f"Invalid longitude: {self.lon}")

    def as_lonlat(self) -> tuple[float, float]:
        # GeoJSON / shapely axis order.
        return (self.lon, self.lat)

    @classmethod
    def from_lonlat(cls, lon: float, lat: float) -> "GeoPoint":
        return cls(lat=float(lat), lon=float(lon))
