"""SQLAlchemy models for the Sonarium application.

Submodules:
- base: Base, TimestampMixin
- library: Artwork, Artist, Album, Genre, Song
- scan: ScanJob, ScanResult, ScanType, ScanJobStatus
"""

from sonarium.core.models.base import Base, TimestampMixin
from sonarium.core.models.library import (
    SOURCE_URI_SCHEME_EMBEDDED,
    SOURCE_URI_SCHEME_FILE,
    Album,
    Artist,
    Artwork,
    Genre,
    Song,
)
from sonarium.core.models.scan import (
    IN_FLIGHT_STATUSES,
    ScanJob,
    ScanJobStatus,
    ScanResult,
    ScanType,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "SOURCE_URI_SCHEME_EMBEDDED",
    "SOURCE_URI_SCHEME_FILE",
    "Album",
    "Artist",
    "Artwork",
    "Genre",
    "Song",
    "IN_FLIGHT_STATUSES",
    "ScanJob",
    "ScanJobStatus",
    "ScanResult",
    "ScanType",
]
