"""Audio metadata reading and tag writing via Mutagen.

All functions here do blocking file IO; the scan pipeline calls them through
`loop.run_in_executor`.
"""

import base64
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, List, Optional, Tuple

import mutagen
from loguru import logger
from mutagen.flac import Picture
from mutagen.mp3 import BitrateMode
from mutagen.mp4 import MP4Cover

from sonarium.core.exceptions import AudioMetadataError
from sonarium.worker.filetree import AUDIO_EXTENSIONS

VARIABLE_BIT_RATE_EXTENSIONS = {"flac", "ogg", "opus"}


@dataclass
class AudioMetadata:
    """Tags and technical properties of an audio file."""

    path: str
    mime_type: str
    file_extension: str
    size: int
    duration: int  # milliseconds
    bit_rate: int  # kbps
    bit_rate_variable: bool = False
    disc_number: Optional[int] = None
    disc_count: Optional[int] = None
    track_number: Optional[int] = None
    track_count: Optional[int] = None
    title: Optional[str] = None
    artist: Optional[str] = None
    album_artist: Optional[str] = None
    album: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None


@dataclass
class EmbeddedArtwork:
    data: bytes
    mime_type: str


@dataclass
class AudioMetadataUpdate:
    """Tag changes for an EDIT scan.

    None leaves a tag untouched; an empty string (or 0 for numbers) removes it.
    """

    title: Optional[str] = None
    artist: Optional[str] = None
    album_artist: Optional[str] = None
    album: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


_EASY_TAG_KEYS = {
    "title": "title",
    "artist": "artist",
    "album_artist": "albumartist",
    "album": "album",
    "genre": "genre",
    "year": "date",
    "track_number": "tracknumber",
    "disc_number": "discnumber",
}


def _first(audio: Any, key: str) -> Optional[str]:
    values = audio.get(key)
    if not values:
        return None
    value = str(values[0]).strip()
    return value or None


def parse_number_pair(value: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """Parse "3/12" (or "3") into (3, 12) / (3, None); garbage yields None."""
    if not value:
        return (None, None)
    number, _, count = value.partition("/")

    def _to_int(part: str) -> Optional[int]:
        try:
            parsed = int(part.strip())
        except ValueError:
            return None
        return parsed if parsed > 0 else None

    return (_to_int(number), _to_int(count) if count else None)


def parse_year(value: Optional[str]) -> Optional[int]:
    """Parse the year out of a date tag ("2001", "2001-05-03", "2001-05")."""
    if not value or len(value) < 4 or not value[:4].isdigit():
        return None
    year = int(value[:4])
    return year if year > 0 else None


class AudioMetadataReader:
    """Reads tags and stream info of audio files, writes tag updates."""

    def read(self, path: Path) -> AudioMetadata:
        """Blocking: read metadata of an audio file.

        Raises:
            AudioMetadataError: If the file cannot be parsed as audio.
        """
        path = Path(path)
        try:
            size = path.stat().st_size
            audio = mutagen.File(path, easy=True)
        except (OSError, mutagen.MutagenError) as e:
            raise AudioMetadataError(str(path), str(e)) from e
        if audio is None or audio.info is None:
            raise AudioMetadataError(str(path), "unsupported or corrupt audio file")

        extension = path.suffix.lower().lstrip(".")
        mime_type = AUDIO_EXTENSIONS.get(f".{extension}") or audio.mime[0]
        info = audio.info
        bit_rate = int(getattr(info, "bitrate", 0) or 0) // 1000
        bit_rate_mode = getattr(info, "bitrate_mode", None)
        if bit_rate_mode is not None and bit_rate_mode != BitrateMode.UNKNOWN:
            bit_rate_variable = bit_rate_mode in (BitrateMode.VBR, BitrateMode.ABR)
        else:
            bit_rate_variable = extension in VARIABLE_BIT_RATE_EXTENSIONS

        track_number, track_count = parse_number_pair(_first(audio, "tracknumber"))
        disc_number, disc_count = parse_number_pair(_first(audio, "discnumber"))

        return AudioMetadata(
            path=str(path),
            mime_type=mime_type,
            file_extension=extension,
            size=size,
            duration=int(round((info.length or 0) * 1000)),
            bit_rate=bit_rate,
            bit_rate_variable=bit_rate_variable,
            disc_number=disc_number,
            disc_count=disc_count,
            track_number=track_number,
            track_count=track_count,
            title=_first(audio, "title"),
            artist=_first(audio, "artist"),
            album_artist=_first(audio, "albumartist"),
            album=_first(audio, "album"),
            genre=_first(audio, "genre"),
            year=parse_year(_first(audio, "date")),
        )

    def read_embedded_artwork(self, path: Path) -> Optional[EmbeddedArtwork]:
        """Blocking: return the front cover (or first picture) embedded in the file."""
        try:
            audio = mutagen.File(path)
        except (OSError, mutagen.MutagenError) as e:
            raise AudioMetadataError(str(path), str(e)) from e
        if audio is None:
            return None
        pictures = self._collect_pictures(audio)
        if not pictures:
            return None
        # Picture type 3 is "Cover (front)" in both ID3 and FLAC
        pictures.sort(key=lambda p: 0 if p[0] == 3 else 1)
        _, data, mime_type = pictures[0]
        return EmbeddedArtwork(data=data, mime_type=mime_type)

    @staticmethod
    def _collect_pictures(audio: Any) -> List[Tuple[int, bytes, str]]:
        pictures: List[Tuple[int, bytes, str]] = []
        tags = getattr(audio, "tags", None)
        for picture in getattr(audio, "pictures", None) or []:
            pictures.append((picture.type, picture.data, picture.mime))
        if tags is None:
            return pictures
        if hasattr(tags, "getall"):
            for frame in tags.getall("APIC"):
                pictures.append((frame.type, frame.data, frame.mime))
        elif hasattr(tags, "get"):
            for cover in tags.get("covr") or []:
                mime_type = (
                    "image/png"
                    if getattr(cover, "imageformat", None) == MP4Cover.FORMAT_PNG
                    else "image/jpeg"
                )
                pictures.append((3, bytes(cover), mime_type))
            for encoded in tags.get("metadata_block_picture") or []:
                try:
                    picture = Picture(base64.b64decode(encoded))
                except (ValueError, mutagen.MutagenError) as e:
                    logger.debug(f"Skipping undecodable picture block: {e}")
                    continue
                pictures.append((picture.type, picture.data, picture.mime))
        return [p for p in pictures if p[1]]

    def write(self, path: Path, update: AudioMetadataUpdate) -> None:
        """Blocking: apply tag changes to an audio file.

        Raises:
            AudioMetadataError: If the file cannot be opened or saved.
        """
        try:
            audio = mutagen.File(path, easy=True)
            if audio is None:
                raise AudioMetadataError(str(path), "unsupported or corrupt audio file")
            if audio.tags is None:
                audio.add_tags()
            for field_name, key in _EASY_TAG_KEYS.items():
                value = getattr(update, field_name)
                if value is None:
                    continue
                if value == "" or value == 0:
                    if key in audio:
                        del audio[key]
                else:
                    audio[key] = [str(value)]
            audio.save()
        except (OSError, mutagen.MutagenError, KeyError, ValueError) as e:
            raise AudioMetadataError(str(path), f"could not write tags: {e}") from e
