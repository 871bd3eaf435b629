"""Batched removal of songs and artworks whose backing files are gone.

Both operations run in two phases:

1. A read phase in a single session walks every row in keyset pages ordered
   by id and collects the ids to delete.
2. A delete phase splits those ids into chunks of `cleaning_batch_size` and
   runs each chunk in its own transaction. A failing chunk rolls back alone;
   chunks committed before it stay committed.

Typical usage example:
    cleaner = BatchLibraryCleaner(AsyncSessionLocal, ArtworkStorage())
    stats = await cleaner.clean_songs(tree.root.child_audios_recursively(), observer)
"""

import asyncio
import os
from pathlib import Path, PurePath
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sonarium.core.models import SOURCE_URI_SCHEME_FILE
from sonarium.core.repositories import ArtworkRepository, SongRepository
from sonarium.core.scan_config import ScanConfig
from sonarium.core.stats import ScanStats
from sonarium.worker.artwork import ArtworkStorage, source_uri_path
from sonarium.worker.cleaner import LibraryCleaner
from sonarium.worker.filetree import AudioNode, ImageNode

ProgressObserver = Callable[[int, int], None]


def notify_observer(
    observer: Optional[ProgressObserver], items_complete: int, items_total: int
) -> None:
    """Call a progress observer; its failures are logged and never propagated."""
    if observer is None:
        return
    try:
        observer(items_complete, items_total)
    except Exception:
        logger.exception(f"Could not call progress observer {observer!r}.")


def _chunks(ids: Sequence[int], size: int) -> Iterable[Sequence[int]]:
    for start in range(0, len(ids), size):
        yield ids[start : start + size]


def _roots(target_paths: Optional[Sequence[str]]) -> Optional[List[PurePath]]:
    if target_paths is None:
        return None
    return [PurePath(Path(p).absolute()) for p in target_paths]


def _is_under(path: str, roots: Optional[Sequence[PurePath]]) -> bool:
    """True if `path` lies in one of `roots`; every path does when roots is None."""
    if roots is None:
        return True
    return any(PurePath(path).is_relative_to(root) for root in roots)


def _is_stale(path: str, source_mtime: Optional[float]) -> bool:
    """Blocking: True if the file at `path` is missing or newer than recorded."""
    try:
        mtime = os.stat(path).st_mtime
    except OSError:
        return True
    return source_mtime is None or mtime > source_mtime


class BatchLibraryCleaner:
    """Removes library rows whose files vanished, in bounded transactions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        artwork_storage: ArtworkStorage,
        config: Optional[ScanConfig] = None,
    ):
        self.session_factory = session_factory
        self.artwork_storage = artwork_storage
        self.config = config or ScanConfig.from_settings()

    async def clean_songs(
        self,
        existing_audio_nodes: Sequence[AudioNode],
        observer: Optional[ProgressObserver] = None,
        target_paths: Optional[Sequence[str]] = None,
    ) -> ScanStats:
        """Delete songs whose path is not among `existing_audio_nodes`.

        Only songs inside `target_paths` are considered when given, so a scan
        of some folders leaves songs of the other folders alone. Albums,
        artists, genres and artworks orphaned by a deletion are deleted in the
        same chunk transaction.
        """
        existing_paths = {str(node.path) for node in existing_audio_nodes}
        roots = _roots(target_paths)
        batch_size = self.config.cleaning_batch_size

        song_ids: List[int] = []
        async with self.session_factory() as session:
            repository = SongRepository(session)
            after_id = None
            while True:
                songs = await repository.find_page(after_id, batch_size)
                if not songs:
                    break
                song_ids.extend(
                    s.id
                    for s in songs
                    if s.path not in existing_paths and _is_under(s.path, roots)
                )
                after_id = songs[-1].id
        logger.info(f"Found {len(song_ids)} songs to delete.")

        total_stats = ScanStats()
        items_complete = 0
        for chunk in _chunks(song_ids, batch_size):
            chunk_stats = ScanStats()
            async with self.session_factory() as session, session.begin():
                repository = SongRepository(session)
                cleaner = LibraryCleaner(session, self.artwork_storage, chunk_stats)
                for song_id in chunk:
                    song = await repository.find_by_id(song_id)
                    if song is not None:
                        logger.debug(f"Deleting song {song}: file not found.")
                        album_id = song.album_id
                        artist_id = song.album.artist_id
                        genre_id = song.genre_id
                        artwork_id = song.artwork_id
                        await repository.delete(song)
                        chunk_stats.deleted_song_count += 1
                        await cleaner.delete_album_if_unused(album_id)
                        await cleaner.delete_artist_if_unused(artist_id)
                        await cleaner.delete_genre_if_unused(genre_id)
                        await cleaner.delete_artwork_if_unused(artwork_id)
                    items_complete += 1
                    notify_observer(observer, items_complete, len(song_ids))
            total_stats.merge(chunk_stats)
        return total_stats

    async def clean_artworks(
        self,
        existing_image_nodes: Sequence[ImageNode],
        observer: Optional[ProgressObserver] = None,
        target_paths: Optional[Sequence[str]] = None,
    ) -> ScanStats:
        """Delete `file:` artworks whose image is gone or modified since stored.

        Only images inside `target_paths` are considered when given. References from songs, albums, artists and genres are cleared before
        the artwork and its blob are removed.
        """
        existing_paths = {node.path.as_posix() for node in existing_image_nodes}
        roots = _roots(target_paths)
        batch_size = self.config.cleaning_batch_size
        loop = asyncio.get_running_loop()

        artwork_ids: List[int] = []
        async with self.session_factory() as session:
            repository = ArtworkRepository(session)
            after_id = None
            while True:
                artworks = await repository.find_page(after_id, batch_size)
                if not artworks:
                    break
                candidates: List[Tuple[int, str, Optional[float]]] = []
                for artwork in artworks:
                    if artwork.source_uri_scheme != SOURCE_URI_SCHEME_FILE:
                        continue
                    path = source_uri_path(artwork.source_uri)
                    if not _is_under(path, roots):
                        continue
                    if path not in existing_paths:
                        artwork_ids.append(artwork.id)
                    else:
                        candidates.append((artwork.id, path, artwork.source_mtime))
                if candidates:
                    stale = await loop.run_in_executor(
                        None,
                        lambda c=candidates: [i for i, p, m in c if _is_stale(p, m)],
                    )
                    artwork_ids.extend(stale)
                after_id = artworks[-1].id
        artwork_ids.sort()
        logger.info(f"Found {len(artwork_ids)} artworks to delete.")

        total_stats = ScanStats()
        items_complete = 0
        for chunk in _chunks(artwork_ids, batch_size):
            chunk_stats = ScanStats()
            async with self.session_factory() as session, session.begin():
                cleaner = LibraryCleaner(session, self.artwork_storage, chunk_stats)
                for artwork_id in chunk:
                    if await cleaner.delete_artwork(artwork_id):
                        logger.debug(
                            f"Deleted artwork {artwork_id}: file not found or has been modified."
                        )
                    items_complete += 1
                    notify_observer(observer, items_complete, len(artwork_ids))
            total_stats.merge(chunk_stats)
        return total_stats
