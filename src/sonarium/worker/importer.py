"""Library import engine: reconciles one audio file with the library graph.

This module turns the metadata of a single audio file into Song, Album,
Artist and Genre rows. It finds or creates related entities by their natural
keys, updates a changed song in one write, leaves an unchanged song untouched,
and hands entities that lost their last reference to the LibraryCleaner.

The importer works inside the caller's session and never commits: a scan
imports each song in its own transaction so that one broken file never rolls
back another song.

Typical usage example:
    async with AsyncSessionLocal() as session, session.begin():
        importer = LibraryImporter(session, artwork_finder, stats)
        song = await importer.import_audio_data(audio_node, metadata)
"""

from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from sonarium.core.exceptions import ArtworkError, AudioMetadataError
from sonarium.core.models import (
    SOURCE_URI_SCHEME_FILE,
    Album,
    Artist,
    Artwork,
    Genre,
    Song,
)
from sonarium.core.repositories import LibraryRepositories
from sonarium.core.stats import ScanStats
from sonarium.worker.artwork import ArtworkFiles, ArtworkFinder
from sonarium.worker.cleaner import LibraryCleaner
from sonarium.worker.filetree import AudioNode
from sonarium.worker.metadata import AudioMetadata

_UNSET = object()


class LibraryImporter:
    """Creates, updates or skips library rows for imported audio files.

    Attributes:
        session: Async SQLAlchemy session of the current import transaction.
        repos: Library repositories bound to the session.
        artwork_finder: Finder used to extract and store embedded artwork.
        cleaner: LibraryCleaner for entities orphaned by an update.
        stats: Counters for this transaction; merged by the caller on commit.
    """

    def __init__(
        self,
        session: AsyncSession,
        artwork_finder: ArtworkFinder,
        stats: Optional[ScanStats] = None,
    ):
        """Initializes the importer.

        Args:
            session: Async SQLAlchemy session for database operations.
            artwork_finder: ArtworkFinder whose storage also backs deletions.
            stats: Optional ScanStats to count into; a fresh one by default.
        """
        self.session = session
        self.repos = LibraryRepositories(session)
        self.artwork_finder = artwork_finder
        self.stats = stats if stats is not None else ScanStats()
        self.cleaner = LibraryCleaner(session, artwork_finder.storage, self.stats)

    async def import_audio_data(
        self, audio_node: AudioNode, metadata: AudioMetadata
    ) -> Song:
        """Imports one audio file into the library.

        Related rows are resolved in dependency order: Artist (album artist,
        falling back to the track artist), Album (by name and artist), Genre.
        If the song exists and no field differs, nothing is written.

        Args:
            audio_node: File tree node of the audio file.
            metadata: Metadata read from that file.

        Returns:
            The created, updated or unchanged Song.
        """
        path = str(audio_node.path)
        song = await self.repos.songs.find_by_path(path)

        artist = await self._find_or_create_artist(
            metadata.album_artist or metadata.artist
        )
        album = await self._find_or_create_album(metadata.album, artist, metadata.year)
        genre = await self._find_or_create_genre(metadata.genre)

        artwork = await self._find_embedded_artwork(audio_node, song)

        values = self._song_values(metadata)
        if song is None:
            song = Song(path=path, album=album, genre=genre, artwork=artwork, **values)
            await self.repos.songs.save(song)
            self.stats.created_song_count += 1
            logger.debug(f"Created song {song}.")
        else:
            song = await self._update_song(song, values, album, genre, artwork)

        if song.artwork is not None:
            await self._share_artwork(song.artwork, album, artist, genre)
        return song

    async def import_artwork(
        self, song_id: int, artwork_files: ArtworkFiles
    ) -> Optional[Song]:
        """Attaches artwork found by the artwork search to a song without one.

        The artwork is also given to the song's album, album artist and genre
        where they have none.

        Returns:
            The song, or None if it no longer exists.
        """
        song = await self.repos.songs.find_by_id(song_id)
        if song is None:
            return None
        artwork = artwork_files.artwork
        if song.artwork_id is None:
            song.artwork = artwork
            await self.repos.songs.save(song)
            self.stats.updated_song_count += 1
            logger.debug(f"Attached artwork {artwork} to song {song}.")
        await self._share_artwork(
            song.artwork, song.album, song.album.artist, song.genre
        )
        return song

    @staticmethod
    def _song_values(metadata: AudioMetadata) -> Dict[str, Any]:
        return {
            "mime_type": metadata.mime_type,
            "file_extension": metadata.file_extension,
            "size": metadata.size,
            "duration": metadata.duration,
            "bit_rate": metadata.bit_rate,
            "bit_rate_variable": metadata.bit_rate_variable,
            "disc_number": metadata.disc_number,
            "disc_count": metadata.disc_count,
            "track_number": metadata.track_number,
            "track_count": metadata.track_count,
            "name": metadata.title,
            "artist_name": metadata.artist,
            "album_artist_name": metadata.album_artist,
            "album_name": metadata.album,
            "genre_name": metadata.genre,
            "year": metadata.year,
        }

    async def _update_song(
        self,
        song: Song,
        values: Dict[str, Any],
        album: Album,
        genre: Genre,
        artwork: Any,
    ) -> Song:
        if artwork is _UNSET:
            artwork = song.artwork
        changed = [name for name, value in values.items() if getattr(song, name) != value]
        old_album_id = song.album_id
        old_artist_id = song.album.artist_id
        old_genre_id = song.genre_id
        old_artwork_id = song.artwork_id
        new_artwork_id = artwork.id if artwork is not None else None

        if (
            not changed
            and old_album_id == album.id
            and old_genre_id == genre.id
            and old_artwork_id == new_artwork_id
        ):
            return song

        for name in changed:
            setattr(song, name, values[name])
        song.album = album
        song.genre = genre
        song.artwork = artwork
        await self.repos.songs.save(song)
        self.stats.updated_song_count += 1
        logger.debug(f"Updated song {song}: {', '.join(changed) or 'references'} changed.")

        if old_genre_id != genre.id:
            await self.cleaner.delete_genre_if_unused(old_genre_id)
        if old_album_id != album.id:
            await self.cleaner.delete_album_if_unused(old_album_id)
            await self.cleaner.delete_artist_if_unused(old_artist_id)
        if old_artwork_id != new_artwork_id:
            await self.cleaner.delete_artwork_if_unused(old_artwork_id)
        return song

    async def _find_embedded_artwork(
        self, audio_node: AudioNode, song: Optional[Song]
    ) -> Any:
        """Resolve the embedded artwork of a file.

        Returns the Artwork, None when the song should have no artwork, or
        _UNSET when the song's current artwork must be kept: extraction failed,
        or the file has no embedded picture and the song uses folder artwork.
        """
        try:
            files = await self.artwork_finder.find_and_save_embedded_artwork(
                self.session, audio_node
            )
        except (ArtworkError, AudioMetadataError) as e:
            logger.warning(f"Could not extract artwork of {audio_node.path}: {e}")
            return _UNSET if song is not None else None
        if files is not None:
            if files.created:
                self.stats.created_artwork_count += 1
            return files.artwork
        if (
            song is not None
            and song.artwork is not None
            and song.artwork.source_uri_scheme == SOURCE_URI_SCHEME_FILE
        ):
            return _UNSET
        return None

    async def _share_artwork(
        self, artwork: Artwork, album: Album, artist: Artist, genre: Genre
    ) -> None:
        if album.artwork_id is None:
            album.artwork = artwork
            await self.repos.albums.save(album)
            self.stats.updated_album_count += 1
        if artist.artwork_id is None:
            artist.artwork = artwork
            await self.repos.artists.save(artist)
            self.stats.updated_artist_count += 1
        if genre.artwork_id is None:
            genre.artwork = artwork
            await self.repos.genres.save(genre)
            self.stats.updated_genre_count += 1

    async def _find_or_create_artist(self, name: Optional[str]) -> Artist:
        artist = await self.repos.artists.find_by_name(name)
        if artist is None:
            artist = await self.repos.artists.save(Artist(name=name))
            self.stats.created_artist_count += 1
            logger.debug(f"Created artist {artist}.")
        return artist

    async def _find_or_create_album(
        self, name: Optional[str], artist: Artist, year: Optional[int]
    ) -> Album:
        album = await self.repos.albums.find_by_name_and_artist(name, artist.id)
        if album is None:
            album = await self.repos.albums.save(
                Album(name=name, artist=artist, year=year)
            )
            self.stats.created_album_count += 1
            logger.debug(f"Created album {album}.")
        elif year is not None and album.year is None:
            # First known year wins
            album.year = year
            await self.repos.albums.save(album)
            self.stats.updated_album_count += 1
        return album

    async def _find_or_create_genre(self, name: Optional[str]) -> Genre:
        genre = await self.repos.genres.find_by_name(name)
        if genre is None:
            genre = await self.repos.genres.save(Genre(name=name))
            self.stats.created_genre_count += 1
            logger.debug(f"Created genre {genre}.")
        return genre
