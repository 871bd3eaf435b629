"""Reference-counted deletion of orphaned library entities.

Every check runs in the caller's session, inside the same transaction as the
mutation that may have orphaned the entity. Entities are re-fetched by id, so
calling any method twice, or on an entity that is still referenced, is a
silent no-op.
"""

from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from sonarium.core.repositories import LibraryRepositories
from sonarium.core.stats import ScanStats
from sonarium.worker.artwork import ArtworkStorage


class LibraryCleaner:
    """Deletes albums, artists, genres and artworks nothing refers to anymore."""

    def __init__(
        self,
        session: AsyncSession,
        artwork_storage: ArtworkStorage,
        stats: Optional[ScanStats] = None,
    ):
        self.session = session
        self.repos = LibraryRepositories(session)
        self.artwork_storage = artwork_storage
        self.stats = stats if stats is not None else ScanStats()

    async def delete_artist_if_unused(self, artist_id: Optional[int]) -> bool:
        if artist_id is None:
            return False
        artist = await self.repos.artists.find_by_id(artist_id)
        if artist is None or await self.repos.albums.count_by_artist(artist_id) > 0:
            return False
        artwork_id = artist.artwork_id
        logger.debug(f"Deleting artist {artist}: no albums left.")
        await self.repos.artists.delete(artist)
        self.stats.deleted_artist_count += 1
        await self.delete_artwork_if_unused(artwork_id)
        return True

    async def delete_album_if_unused(self, album_id: Optional[int]) -> bool:
        """Delete the album if no song is on it.

        The album's artist is not checked here; callers follow up with
        delete_artist_if_unused.
        """
        if album_id is None:
            return False
        album = await self.repos.albums.find_by_id(album_id)
        if album is None or await self.repos.songs.count_by_album(album_id) > 0:
            return False
        artwork_id = album.artwork_id
        logger.debug(f"Deleting album {album}: no songs left.")
        await self.repos.albums.delete(album)
        self.stats.deleted_album_count += 1
        await self.delete_artwork_if_unused(artwork_id)
        return True

    async def delete_genre_if_unused(self, genre_id: Optional[int]) -> bool:
        if genre_id is None:
            return False
        genre = await self.repos.genres.find_by_id(genre_id)
        if genre is None or await self.repos.songs.count_by_genre(genre_id) > 0:
            return False
        artwork_id = genre.artwork_id
        logger.debug(f"Deleting genre {genre}: no songs left.")
        await self.repos.genres.delete(genre)
        self.stats.deleted_genre_count += 1
        await self.delete_artwork_if_unused(artwork_id)
        return True

    async def delete_artwork_if_unused(self, artwork_id: Optional[int]) -> bool:
        if artwork_id is None:
            return False
        for repository in (
            self.repos.songs,
            self.repos.albums,
            self.repos.artists,
            self.repos.genres,
        ):
            if await repository.count_by_artwork(artwork_id) > 0:
                return False
        if not await self.artwork_storage.delete(self.session, artwork_id):
            return False
        logger.debug(f"Deleted artwork {artwork_id}: no references left.")
        self.stats.deleted_artwork_count += 1
        return True

    async def delete_artwork(self, artwork_id: int) -> bool:
        """Delete an artwork regardless of references, clearing them first."""
        for repository in (
            self.repos.songs,
            self.repos.albums,
            self.repos.artists,
            self.repos.genres,
        ):
            await repository.clear_artwork_reference(artwork_id)
        if not await self.artwork_storage.delete(self.session, artwork_id):
            return False
        self.stats.deleted_artwork_count += 1
        return True
