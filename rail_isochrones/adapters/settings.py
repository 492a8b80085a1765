from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date

from rail_isochrones.domain.algorithms.isochrone import IsochroneMethod


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_str(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip() or None


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    return float(raw) if raw is not None else default


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    return int(raw) if raw is not None else default


@dataclass(frozen=True, slots=True)
class IsochroneSettings:
    """Runtime configuration read from the environment.

    Env vars:
      - GTFS_PATH: GTFS directory (default: data/gtfs)
      - CIF_PATH: CIF directory or zip; when set it is loaded instead of GTFS
      - SERVICE_DATE: service day to load, ISO format (default: every trip runs)
      - WALK_SPEED_MPS, ACCESS_RADIUS_M, MAX_ACCESS_STATIONS
      - MAX_WALK_M, MIN_RADIUS_M, ISOCHRONE_METHOD (catchment|concave)
      - MAX_ROUNDS: safety cap on search rounds
      - TIMETABLE_CACHE_BUCKET: enables the S3 timetable cache when set
      - ISOCHRONES_REVEAL_ERRORS: read by the API error handler (main.py)
    """

    gtfs_path: str
    cif_path: str | None
    service_date: date | None
    walk_speed_mps: float
    access_radius_m: float
    max_access_stations: int
    max_walk_m: float
    min_radius_m: float
    method: IsochroneMethod
    max_rounds: int
    cache_bucket: str | None

    @staticmethod
    def from_env() -> "IsochroneSettings":
        raw_date = _env_str("SERVICE_DATE")
        raw_method = (_env_str("ISOCHRONE_METHOD") or "catchment").lower()

        return IsochroneSettings(
            gtfs_path=_env_str("GTFS_PATH") or "data/gtfs",
            cif_path=_env_str("CIF_PATH"),
            service_date=date.fromisoformat(raw_date) if raw_date else None,
            walk_speed_mps=_env_float("WALK_SPEED_MPS", 1.4),
            access_radius_m=_env_float("ACCESS_RADIUS_M", 500.0),
            max_access_stations=_env_int("MAX_ACCESS_STATIONS", 8),
            max_walk_m=_env_float("MAX_WALK_M", 2000.0),
            min_radius_m=_env_float("MIN_RADIUS_M", 250.0),
            method=IsochroneMethod(raw_method),
            max_rounds=_env_int("MAX_ROUNDS", 20),
            cache_bucket=_env_str("TIMETABLE_CACHE_BUCKET"),
        )
