from __future__ import annotations

import gzip
import logging
import os
import pickle
from dataclasses import dataclass, field
from typing import Any, Callable

from rail_isochrones.adapters.aws import s3_client
from rail_isochrones.app.ports.output import ITimetableRepository
from rail_isochrones.domain.algorithms.timetable_graph import TimetableGraph

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class S3CachedTimetableRepository(ITimetableRepository):
    """Caches parsed timetables in S3.

    This is an adapter-level decorator around another ITimetableRepository.

    Env vars:
      - TIMETABLE_CACHE_BUCKET (required)
      - TIMETABLE_CACHE_PREFIX (default: timetables)
      - SERVICE_DATE (part of the cache key)
      - ENDPOINT_URL (preferred for LocalStack)

    Notes:
      - pickle loading is only safe for trusted buckets.
    """

    upstream: ITimetableRepository
    bucket: str | None = None
    prefix: str | None = None
    service_date: str | None = None
    client_factory: Callable[[], Any] = field(default=s3_client)

    def _bucket(self) -> str:
        value = self.bucket or os.getenv("TIMETABLE_CACHE_BUCKET")
        if not value:
            raise RuntimeError("Missing TIMETABLE_CACHE_BUCKET")
        return value

    def _prefix(self) -> str:
        return (
            self.prefix or os.getenv("TIMETABLE_CACHE_PREFIX") or "timetables"
        ).strip("/")

    def _key(self) -> str:
        day = (self.service_date or os.getenv("SERVICE_DATE") or "any").strip()
        return f"{self._prefix()}/date={day}/timetable.pkl.gz"

    def load_timetable(self) -> TimetableGraph:
        s3 = self.client_factory()
        bucket = self._bucket()
        key = self._key()

        try:
            obj = s3.get_object(Bucket=bucket, Key=key)
            graph = pickle.loads(gzip.decompress(obj["Body"].read()))
        except Exception as exc:
            logger.info("Timetable cache miss for s3://%s/%s (%s)", bucket, key, exc)
        else:
            if isinstance(graph, TimetableGraph):
                logger.info("Timetable cache hit for s3://%s/%s", bucket, key)
                return graph
            logger.warning("Ignoring unexpected object at s3://%s/%s", bucket, key)

        graph = self.upstream.load_timetable()
        payload = gzip.compress(pickle.dumps(graph))
        s3.put_object(Bucket=bucket, Key=key, Body=payload)
        return graph
