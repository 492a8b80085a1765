from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


class GeoPointSchema(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)


class OriginSchema(BaseModel):
    station_id: str | None = None
    lat: float | None = Field(default=None, ge=-90.0, le=90.0)
    lon: float | None = Field(default=None, ge=-180.0, le=180.0)

    @model_validator(mode="after")
    def _station_or_coordinate(self) -> "OriginSchema":
        has_point = self.lat is not None and self.lon is not None
        if bool(self.station_id) == has_point:
            raise ValueError("Provide either station_id or both lat and lon")
        return self


class IsochroneRequestSchema(BaseModel):
    origin: OriginSchema
    depart_at: datetime | None = None
    thresholds_min: list[float] = Field(default_factory=lambda: [15.0, 30.0, 60.0])
    max_transfers: int | None = Field(default=None, ge=0)
    time_budget_min: float | None = Field(default=None, ge=0)
    method: Literal["catchment", "concave"] | None = None
    include_arrivals: bool = True


class ArrivalSchema(BaseModel):
    station_id: str
    name: str
    location: GeoPointSchema
    arrival_at: datetime
    travel_time_s: int
    transfers: int


class IsochroneResponseSchema(BaseModel):
    origin_station_id: str
    depart_at: datetime
    complete: bool
    rounds: int
    arrivals: list[ArrivalSchema] | None = None
    isochrones: dict[str, Any]
