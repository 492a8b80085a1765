from __future__ import annotations

from functools import lru_cache

from rail_isochrones.adapters.persistence import (
    CifTimetableRepository,
    LocalGtfsRepository,
    S3CachedTimetableRepository,
)
from rail_isochrones.adapters.settings import IsochroneSettings
from rail_isochrones.app.ports.output import ITimetableRepository
from rail_isochrones.app.services.isochrone_service import IsochroneService
from rail_isochrones.domain.algorithms.isochrone import IsochroneSynthesizer


def build_isochrone_service(settings: IsochroneSettings) -> IsochroneService:
    repository: ITimetableRepository
    if settings.cif_path:
        repository = CifTimetableRepository(
            base_path=settings.cif_path, service_date=settings.service_date
        )
    else:
        repository = LocalGtfsRepository(
            base_path=settings.gtfs_path, service_date=settings.service_date
        )
    if settings.cache_bucket:
        repository = S3CachedTimetableRepository(
            upstream=repository,
            bucket=settings.cache_bucket,
            service_date=(
                settings.service_date.isoformat() if settings.service_date else None
            ),
        )

    return IsochroneService(
        timetable_repository=repository,
        synthesizer=IsochroneSynthesizer(
            method=settings.method,
            walk_speed_mps=settings.walk_speed_mps,
            max_walk_m=settings.max_walk_m,
            min_radius_m=settings.min_radius_m,
        ),
        walk_speed_mps=settings.walk_speed_mps,
        access_radius_m=settings.access_radius_m,
        max_access_stations=settings.max_access_stations,
        max_rounds=settings.max_rounds,
    )


@lru_cache(maxsize=1)
def get_isochrone_service() -> IsochroneService:
    # One service per process so the timetable is parsed once.
    return build_isochrone_service(IsochroneSettings.from_env())
