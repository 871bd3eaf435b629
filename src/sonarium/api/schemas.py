from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sonarium.core.models import ScanJobStatus, ScanType
from sonarium.core.progress_store import ScanProgress
from sonarium.worker.metadata import AudioMetadataUpdate


class ScanRequest(BaseModel):
    """Folders to scan; the configured library folders when empty."""
    target_paths: List[str] = []


class SongEdit(BaseModel):
    """Tag changes for one song. Omitted fields are left as they are."""
    song_id: int
    title: Optional[str] = None
    artist: Optional[str] = None
    album_artist: Optional[str] = None
    album: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=0)
    track_number: Optional[int] = Field(default=None, ge=0)
    disc_number: Optional[int] = Field(default=None, ge=0)

    def to_update(self) -> AudioMetadataUpdate:
        return AudioMetadataUpdate(
            **self.model_dump(exclude={"song_id"})
        )


class EditScanRequest(BaseModel):
    songs: List[SongEdit] = Field(min_length=1)


class ScanResultResponse(BaseModel):
    """Outcome of a completed scan job."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: datetime
    scan_type: ScanType
    target_paths: List[str]
    failed_paths: List[str]
    processed_audio_file_count: int
    duration: int  # milliseconds

    song_size: int
    artwork_size: int
    genre_count: int
    artist_count: int
    album_count: int
    song_count: int
    artwork_count: int

    created_artist_count: int
    updated_artist_count: int
    deleted_artist_count: int
    created_album_count: int
    updated_album_count: int
    deleted_album_count: int
    created_genre_count: int
    updated_genre_count: int
    deleted_genre_count: int
    created_song_count: int
    updated_song_count: int
    deleted_song_count: int
    created_artwork_count: int
    deleted_artwork_count: int


class ScanJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    scan_type: ScanType
    status: ScanJobStatus
    target_paths: List[str]
    failed_paths: List[str]
    log_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    scan_result: Optional[ScanResultResponse] = None


class ScanJobPageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    page_index: int
    page_size: int
    total_pages: int
    scan_jobs: List[ScanJobResponse]


class ScanProgressResponse(BaseModel):
    """Current step of the running scan job; `progress` is None when idle."""
    progress: Optional[ScanProgress] = None


class LibraryStatisticsResponse(BaseModel):
    """Library totals as of the latest completed scan."""
    model_config = ConfigDict(from_attributes=True)

    date: datetime
    song_size: int
    artwork_size: int
    genre_count: int
    artist_count: int
    album_count: int
    song_count: int
    artwork_count: int
