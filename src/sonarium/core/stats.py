"""Statistics tracking for scan operations.

ScanStats counts entity changes made by the importer and the cleaners. A
fresh instance is used per transaction and merged into the job totals only
after that transaction commits, so a rolled-back chunk never shows up in the
final ScanResult.
"""

from dataclasses import dataclass, field, fields
from typing import List


@dataclass
class ScanStats:
    """Created/updated/deleted counters per entity type.

    Example:
        >>> stats = ScanStats()
        >>> stats.created_song_count += 1
        >>> stats.to_dict()["created_song_count"]
        1
    """

    created_artist_count: int = 0
    updated_artist_count: int = 0
    deleted_artist_count: int = 0
    created_album_count: int = 0
    updated_album_count: int = 0
    deleted_album_count: int = 0
    created_genre_count: int = 0
    updated_genre_count: int = 0
    deleted_genre_count: int = 0
    created_song_count: int = 0
    updated_song_count: int = 0
    deleted_song_count: int = 0
    created_artwork_count: int = 0
    deleted_artwork_count: int = 0
    processed_audio_file_count: int = 0
    failed_paths: List[str] = field(default_factory=list)

    def merge(self, other: "ScanStats") -> None:
        """Add the counters of another (committed) stats object to this one."""
        for f in fields(self):
            if f.name == "failed_paths":
                self.failed_paths.extend(other.failed_paths)
            else:
                setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))

    def has_changes(self) -> bool:
        return any(
            getattr(self, f.name)
            for f in fields(self)
            if f.name not in ("failed_paths", "processed_audio_file_count")
        )

    def to_dict(self) -> dict:
        """Convert counters to a dictionary (used to populate ScanResult)."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "failed_paths"
        }

    def __str__(self) -> str:
        return (
            f"ScanStats(songs +{self.created_song_count}/~{self.updated_song_count}"
            f"/-{self.deleted_song_count}, albums +{self.created_album_count}"
            f"/-{self.deleted_album_count}, artists +{self.created_artist_count}"
            f"/-{self.deleted_artist_count}, artworks +{self.created_artwork_count}"
            f"/-{self.deleted_artwork_count}, failed={len(self.failed_paths)})"
        )
