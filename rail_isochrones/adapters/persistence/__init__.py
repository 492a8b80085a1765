from .cif_timetable_repository import CifTimetableRepository
from .local_gtfs_repository import LocalGtfsRepository
from .s3_cached_timetable_repository import S3CachedTimetableRepository

__all__ = [
    "CifTimetableRepository",
    "LocalGtfsRepository",
    "S3CachedTimetableRepository",
]
