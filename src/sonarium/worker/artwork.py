"""Artwork storage and discovery.

ArtworkStorage keeps image payloads content-addressed on disk (sha256 of the
bytes) with one Artwork row per distinct payload. Blob files follow the
transaction of the session that created or deleted their row: a blob written
in a rolled-back transaction is removed again, and a blob of a deleted row is
unlinked only once the deletion has been committed.

ArtworkFinder locates artwork for an audio file, either embedded in its tags
or as an image file next to it.
"""

import asyncio
import hashlib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from urllib.parse import unquote, urlparse

from loguru import logger
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from sonarium.core.config import settings
from sonarium.core.exceptions import ArtworkError
from sonarium.core.models import (
    SOURCE_URI_SCHEME_EMBEDDED,
    Artwork,
)
from sonarium.core.repositories import ArtworkRepository
from sonarium.worker.filetree import AudioNode, ImageNode
from sonarium.worker.metadata import AudioMetadataReader

_PENDING_WRITES = "sonarium_pending_blob_writes"
_PENDING_DELETES = "sonarium_pending_blob_deletes"

FILE_ARTWORK_NAME_PRIORITY = ("cover", "folder", "front", "album", "artwork")

_MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/bmp": "bmp",
    "image/webp": "webp",
}


@event.listens_for(Session, "after_commit")
def _apply_blob_deletes(session: Session) -> None:
    session.info.pop(_PENDING_WRITES, None)
    for blob in session.info.pop(_PENDING_DELETES, []):
        try:
            blob.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete artwork blob {blob}: {e}")


@event.listens_for(Session, "after_rollback")
def _discard_blob_writes(session: Session) -> None:
    session.info.pop(_PENDING_DELETES, None)
    for blob in session.info.pop(_PENDING_WRITES, []):
        try:
            blob.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not discard artwork blob {blob}: {e}")


def file_source_uri(path: Path) -> str:
    return Path(path).absolute().as_uri()


def embedded_source_uri(path: Path) -> str:
    return SOURCE_URI_SCHEME_EMBEDDED + ":" + Path(path).absolute().as_posix()


def source_uri_path(source_uri: str) -> str:
    """Filesystem path carried by a `file:` or `embedded:` source URI."""
    return unquote(urlparse(source_uri).path)


@dataclass
class ArtworkFiles:
    """A persisted Artwork together with its payload already in storage."""

    artwork: Artwork
    file: Path
    created: bool = False


class ArtworkStorage:
    """Content-addressed blob store for artwork payloads."""

    def __init__(self, root_dir: Optional[Path] = None):
        self.root_dir = Path(root_dir or settings.ARTWORK_DIR)

    def blob_path(self, checksum: str, mime_type: str) -> Path:
        extension = _MIME_EXTENSIONS.get(mime_type, "bin")
        return self.root_dir / checksum[:2] / f"{checksum}.{extension}"

    async def find_or_save(
        self,
        session: AsyncSession,
        source_uri: str,
        data: bytes,
        mime_type: str,
        source_mtime: Optional[float] = None,
    ) -> ArtworkFiles:
        """Return the artwork with this payload, storing it first if new."""
        if not data:
            raise ArtworkError(f"Empty artwork payload from {source_uri}")
        checksum = hashlib.sha256(data).hexdigest()
        repository = ArtworkRepository(session)
        existing = await repository.find_by_checksum(checksum)
        if existing:
            return ArtworkFiles(artwork=existing, file=Path(existing.blob_path))

        blob = self.blob_path(checksum, mime_type)
        created = not blob.exists()
        try:
            await asyncio.get_running_loop().run_in_executor(
                None, self._write_blob, blob, data
            )
        except OSError as e:
            raise ArtworkError(f"Could not store artwork from {source_uri}: {e}") from e
        if created:
            session.sync_session.info.setdefault(_PENDING_WRITES, []).append(blob)

        artwork = Artwork(
            checksum=checksum,
            mime_type=mime_type,
            size=len(data),
            source_uri=source_uri,
            source_uri_scheme=urlparse(source_uri).scheme,
            source_mtime=source_mtime,
            blob_path=str(blob),
        )
        await repository.save(artwork)
        logger.debug(f"Stored artwork {artwork} ({len(data)} bytes)")
        return ArtworkFiles(artwork=artwork, file=blob, created=True)

    async def delete(self, session: AsyncSession, artwork_id: int) -> bool:
        """Delete the artwork row; its blob is removed when the session commits.

        Callers must have cleared every reference to the artwork first.
        Returns False if the artwork no longer exists.
        """
        repository = ArtworkRepository(session)
        artwork = await repository.find_by_id(artwork_id)
        if artwork is None:
            return False
        await repository.delete(artwork)
        session.sync_session.info.setdefault(_PENDING_DELETES, []).append(
            Path(artwork.blob_path)
        )
        return True

    @staticmethod
    def _write_blob(blob: Path, data: bytes) -> None:
        blob.parent.mkdir(parents=True, exist_ok=True)
        tmp = blob.with_suffix(blob.suffix + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, blob)


def pick_file_artwork(images: Sequence[ImageNode]) -> Optional[ImageNode]:
    """Choose the image most likely to be the cover among folder images."""
    if not images:
        return None
    by_stem: Dict[str, List[ImageNode]] = {}
    for image in sorted(images, key=lambda i: i.path.name):
        by_stem.setdefault(image.path.stem.lower(), []).append(image)
    for name in FILE_ARTWORK_NAME_PRIORITY:
        if name in by_stem:
            return by_stem[name][0]
    for name in FILE_ARTWORK_NAME_PRIORITY:
        for stem, candidates in by_stem.items():
            if name in stem:
                return candidates[0]
    return sorted(images, key=lambda i: i.path.name)[0]


class ArtworkFinder:
    """Finds artwork for audio files and saves it through ArtworkStorage."""

    def __init__(
        self,
        storage: ArtworkStorage,
        metadata_reader: Optional[AudioMetadataReader] = None,
    ):
        self.storage = storage
        self.metadata_reader = metadata_reader or AudioMetadataReader()

    async def find_and_save_embedded_artwork(
        self, session: AsyncSession, audio_node: AudioNode
    ) -> Optional[ArtworkFiles]:
        loop = asyncio.get_running_loop()
        embedded = await loop.run_in_executor(
            None, self.metadata_reader.read_embedded_artwork, audio_node.path
        )
        if embedded is None:
            return None
        try:
            mtime = await loop.run_in_executor(None, os.path.getmtime, audio_node.path)
        except OSError as e:
            raise ArtworkError(f"Could not stat {audio_node.path}: {e}") from e
        return await self.storage.find_or_save(
            session,
            embedded_source_uri(audio_node.path),
            embedded.data,
            embedded.mime_type,
            source_mtime=mtime,
        )

    async def find_and_save_file_artwork(
        self, session: AsyncSession, audio_node: AudioNode
    ) -> Optional[ArtworkFiles]:
        """Look for a cover image in the audio file's folder, then its parent.

        The parent is searched for multi-disc layouts (Album/CD1/*.mp3 with
        Album/cover.jpg).
        """
        folder = audio_node.parent
        image = None
        for candidate_folder in (folder, folder.parent if folder else None):
            if candidate_folder is None:
                continue
            image = pick_file_artwork(candidate_folder.child_images)
            if image is not None:
                break
        if image is None:
            return None

        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, image.path.read_bytes)
            mtime = await loop.run_in_executor(None, os.path.getmtime, image.path)
        except OSError as e:
            raise ArtworkError(f"Could not read artwork file {image.path}: {e}") from e
        return await self.storage.find_or_save(
            session,
            file_source_uri(image.path),
            data,
            image.mime_type,
            source_mtime=mtime,
        )
