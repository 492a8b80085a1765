"""Command line entrypoint: compute isochrones and print GeoJSON."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import replace
from datetime import date, datetime, time
from typing import Sequence

from rail_isochrones.adapters.api.dependencies import build_isochrone_service
from rail_isochrones.adapters.export.geojson import (
    arrivals_to_feature_collection,
    bands_to_feature_collection,
)
from rail_isochrones.adapters.settings import IsochroneSettings
from rail_isochrones.domain.exceptions import InvalidQuery
from rail_isochrones.domain.models import GeoPoint

logger = logging.getLogger(__name__)

EXIT_INVALID_QUERY = 2


def _parse_thresholds(raw: str) -> list[float]:
    parts = [item.strip() for item in raw.split(",") if item.strip()]
    if not parts:
        raise argparse.ArgumentTypeError("expected a comma separated list of minutes")
    try:
        return [float(p) for p in parts]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _parse_clock(raw: str) -> time:
    try:
        return time.fromisoformat(raw.strip())
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid time: {raw}") from exc


def _parse_day(raw: str) -> date:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date: {raw}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rail-isochrones",
        description="Rail isochrones from GTFS or CIF timetables",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    query = sub.add_parser("query", help="Compute isochrones from one origin")
    origin = query.add_mutually_exclusive_group(required=True)
    origin.add_argument("--station", help="Origin station (GTFS stop_id or CRS code)")
    origin.add_argument("--lat", type=float, help="Origin latitude (needs --lon)")
    query.add_argument("--lon", type=float, help="Origin longitude (needs --lat)")
    query.add_argument("--time", type=_parse_clock, required=True, help="HH:MM")
    query.add_argument("--date", type=_parse_day, help="Service day, YYYY-MM-DD")
    query.add_argument(
        "--thresholds",
        type=_parse_thresholds,
        default=[15.0, 30.0, 60.0],
        help="Comma-separated minutes (default: 15,30,60)",
    )
    query.add_argument("--max-transfers", type=int)
    query.add_argument("--budget", type=float, help="Time budget in minutes")
    source = query.add_mutually_exclusive_group()
    source.add_argument("--gtfs", help="GTFS directory (overrides GTFS_PATH)")
    source.add_argument("--cif", help="CIF directory or zip (overrides CIF_PATH)")
    query.add_argument(
        "--arrivals",
        action="store_true",
        help="Append one Point feature per reached station",
    )
    return parser


def _settings_for(args: argparse.Namespace) -> IsochroneSettings:
    settings = IsochroneSettings.from_env()
    if args.gtfs:
        settings = replace(settings, gtfs_path=args.gtfs, cif_path=None)
    if args.cif:
        settings = replace(settings, cif_path=args.cif)
    if args.date:
        settings = replace(settings, service_date=args.date)
    return settings


def _run_query(args: argparse.Namespace) -> dict:
    settings = _settings_for(args)
    service = build_isochrone_service(settings)

    day = settings.service_date or date.today()
    common = dict(
        depart_at=datetime.combine(day, args.time),
        thresholds_min=args.thresholds,
        max_transfers=args.max_transfers,
        time_budget_min=args.budget,
    )
    if args.station:
        result = service.compute_from_station(station_id=args.station, **common)
    else:
        result = service.compute_from_location(
            location=GeoPoint(lat=args.lat, lon=args.lon), **common
        )

    collection = bands_to_feature_collection(result.bands)
    if args.arrivals:
        arrivals = arrivals_to_feature_collection(service.timetable(), result.search)
        collection["features"].extend(arrivals["features"])

    logger.info(
        "Reached %d stations in %d rounds%s",
        len(result.search.labels),
        result.search.rounds,
        "" if result.search.complete else " (incomplete)",
    )
    return collection


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(
        stream=sys.stderr,
        level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.lat is not None and args.lon is None:
        parser.error("--lat requires --lon")
    if args.lon is not None and args.lat is None:
        parser.error("--lon requires --lat")

    try:
        collection = _run_query(args)
    except InvalidQuery as exc:
        logger.error("%s", exc)
        return EXIT_INVALID_QUERY

    json.dump(collection, sys.stdout)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
