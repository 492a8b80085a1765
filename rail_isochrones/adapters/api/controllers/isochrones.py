from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from rail_isochrones.adapters.api.dependencies import get_isochrone_service
from rail_isochrones.adapters.api.schemas.isochrones import (
    ArrivalSchema,
    GeoPointSchema,
    IsochroneRequestSchema,
    IsochroneResponseSchema,
)
from rail_isochrones.adapters.export.geojson import bands_to_feature_collection
from rail_isochrones.app.services.isochrone_service import IsochroneService
from rail_isochrones.app.services.service_time import service_datetime_from_seconds
from rail_isochrones.domain.algorithms.isochrone import IsochroneMethod
from rail_isochrones.domain.exceptions import (
    InvalidQuery,
    NoStationNearby,
    UnknownStation,
)
from rail_isochrones.domain.models import GeoPoint, IsochroneResult

router = APIRouter(tags=["isochrones"])


def _arrivals_to_schema(
    service: IsochroneService, result: IsochroneResult, depart_day
) -> list[ArrivalSchema]:
    graph = service.timetable()
    search = result.search
    return [
        ArrivalSchema(
            station_id=station_id,
            name=graph.stations[station_id].name,
            location=GeoPointSchema(
                lat=graph.stations[station_id].location.lat,
                lon=graph.stations[station_id].location.lon,
            ),
            arrival_at=service_datetime_from_seconds(depart_day, label.arrival_s),
            travel_time_s=label.arrival_s - search.query.departure_s,
            transfers=label.transfers,
        )
        for station_id, label in sorted(
            search.labels.items(), key=lambda kv: (kv[1].arrival_s, kv[0])
        )
    ]


@router.post("/isochrones", response_model=IsochroneResponseSchema)
def compute_isochrones(
    req: IsochroneRequestSchema,
    service: IsochroneService = Depends(get_isochrone_service),
) -> IsochroneResponseSchema:
    depart_at = req.depart_at or service.default_departure()
    method = IsochroneMethod(req.method) if req.method else None
    common = dict(
        depart_at=depart_at,
        thresholds_min=req.thresholds_min,
        max_transfers=req.max_transfers,
        time_budget_min=req.time_budget_min,
        method=method,
    )

    try:
        if req.origin.station_id:
            result = service.compute_from_station(
                station_id=req.origin.station_id, **common
            )
        else:
            result = service.compute_from_location(
                location=GeoPoint(lat=req.origin.lat, lon=req.origin.lon), **common
            )
    except (UnknownStation, NoStationNearby) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidQuery as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    return IsochroneResponseSchema(
        origin_station_id=result.search.query.origin_station_id,
        depart_at=depart_at,
        complete=result.search.complete,
        rounds=result.search.rounds,
        arrivals=(
            _arrivals_to_schema(service, result, depart_at.date())
            if req.include_arrivals
            else None
        ),
        isochrones=bands_to_feature_collection(result.bands),
    )
