"""Scan models: ScanJob and ScanResult."""

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, BigInteger, Boolean, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sonarium.core.models.base import Base, TimestampMixin


class ScanType(str, enum.Enum):
    FULL = "FULL"
    EDIT = "EDIT"


class ScanJobStatus(str, enum.Enum):
    STARTING = "STARTING"
    STARTED = "STARTED"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    INTERRUPTED = "INTERRUPTED"

    @property
    def in_flight(self) -> bool:
        return self in IN_FLIGHT_STATUSES


IN_FLIGHT_STATUSES = (ScanJobStatus.STARTING, ScanJobStatus.STARTED)


class ScanResult(Base, TimestampMixin):
    """Aggregated outcome of a completed scan job."""

    __tablename__ = "scan_results"

    id: Mapped[int] = mapped_column(primary_key=True)
    date: Mapped[datetime] = mapped_column()
    scan_type: Mapped[ScanType] = mapped_column(
        Enum(ScanType, native_enum=False, length=16)
    )
    target_paths: Mapped[List[str]] = mapped_column(JSON, default=list)
    failed_paths: Mapped[List[str]] = mapped_column(JSON, default=list)
    processed_audio_file_count: Mapped[int] = mapped_column(Integer, default=0)
    duration: Mapped[int] = mapped_column(BigInteger, default=0)  # milliseconds

    song_size: Mapped[int] = mapped_column(BigInteger, default=0)
    artwork_size: Mapped[int] = mapped_column(BigInteger, default=0)
    genre_count: Mapped[int] = mapped_column(Integer, default=0)
    artist_count: Mapped[int] = mapped_column(Integer, default=0)
    album_count: Mapped[int] = mapped_column(Integer, default=0)
    song_count: Mapped[int] = mapped_column(Integer, default=0)
    artwork_count: Mapped[int] = mapped_column(Integer, default=0)

    created_artist_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_artist_count: Mapped[int] = mapped_column(Integer, default=0)
    deleted_artist_count: Mapped[int] = mapped_column(Integer, default=0)
    created_album_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_album_count: Mapped[int] = mapped_column(Integer, default=0)
    deleted_album_count: Mapped[int] = mapped_column(Integer, default=0)
    created_genre_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_genre_count: Mapped[int] = mapped_column(Integer, default=0)
    deleted_genre_count: Mapped[int] = mapped_column(Integer, default=0)
    created_song_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_song_count: Mapped[int] = mapped_column(Integer, default=0)
    deleted_song_count: Mapped[int] = mapped_column(Integer, default=0)
    created_artwork_count: Mapped[int] = mapped_column(Integer, default=0)
    deleted_artwork_count: Mapped[int] = mapped_column(Integer, default=0)


class ScanJob(Base, TimestampMixin):
    """Persistent history entry of a scan, mutated while the scan runs."""

    __tablename__ = "scan_jobs"

    id: Mapped[int] = mapped_column(primary_key=True)
    scan_type: Mapped[ScanType] = mapped_column(
        Enum(ScanType, native_enum=False, length=16)
    )
    status: Mapped[ScanJobStatus] = mapped_column(
        Enum(ScanJobStatus, native_enum=False, length=16), index=True
    )
    # True while STARTING/STARTED, NULL otherwise; UNIQUE allows one in-flight row
    in_flight: Mapped[Optional[bool]] = mapped_column(
        Boolean, unique=True, nullable=True
    )
    target_paths: Mapped[List[str]] = mapped_column(JSON, default=list)
    failed_paths: Mapped[List[str]] = mapped_column(JSON, default=list)
    log_message: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    scan_result_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("scan_results.id"), nullable=True
    )

    scan_result: Mapped[Optional["ScanResult"]] = relationship(lazy="joined")

    def set_status(self, status: ScanJobStatus) -> "ScanJob":
        self.status = status
        self.in_flight = True if status.in_flight else None
        return self

    def __repr__(self) -> str:
        return f"ScanJob(id={self.id!r}, status={self.status!r})"
