"""Repository ports over an AsyncSession, one class per entity.

Repositories never commit: transaction boundaries belong to the caller
(a cleaning chunk, a single song import, a scan job status change). Mutating
methods flush so that the count queries used for orphan checks observe them
within the same transaction.
"""

from typing import Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sonarium.core.models import (
    IN_FLIGHT_STATUSES,
    Album,
    Artist,
    Artwork,
    Genre,
    ScanJob,
    ScanJobStatus,
    ScanResult,
    Song,
)

ModelT = TypeVar("ModelT")


def _name_filter(column, name: Optional[str]):
    """`column IS NULL` for unknown names, equality otherwise."""
    return column.is_(None) if name is None else column == name


class Repository(Generic[ModelT]):
    model: Type[ModelT]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, entity_id: int) -> Optional[ModelT]:
        stmt = select(self.model).where(self.model.id == entity_id)
        res = await self.session.execute(stmt)
        return res.unique().scalar_one_or_none()

    async def find_page(self, after_id: Optional[int], limit: int) -> List[ModelT]:
        """Keyset page ordered by id, starting after the last id seen."""
        stmt = select(self.model).order_by(self.model.id).limit(limit)
        if after_id is not None:
            stmt = stmt.where(self.model.id > after_id)
        res = await self.session.execute(stmt)
        return list(res.unique().scalars().all())

    async def save(self, entity: ModelT) -> ModelT:
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def delete(self, entity: ModelT) -> None:
        await self.session.delete(entity)
        await self.session.flush()

    async def count(self) -> int:
        res = await self.session.execute(select(func.count(self.model.id)))
        return res.scalar() or 0


class ArtworkReferrerRepository(Repository[ModelT]):
    """Repository of an entity with an optional artwork reference."""

    async def clear_artwork_reference(self, artwork_id: int) -> int:
        """Unset artwork_id on every row pointing to the artwork."""
        stmt = (
            update(self.model)
            .where(self.model.artwork_id == artwork_id)
            .values(artwork_id=None)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def count_by_artwork(self, artwork_id: int) -> int:
        stmt = select(func.count(self.model.id)).where(
            self.model.artwork_id == artwork_id
        )
        res = await self.session.execute(stmt)
        return res.scalar() or 0


class ArtistRepository(ArtworkReferrerRepository[Artist]):
    model = Artist

    async def find_by_name(self, name: Optional[str]) -> Optional[Artist]:
        stmt = select(Artist).where(_name_filter(Artist.name, name))
        res = await self.session.execute(stmt)
        return res.unique().scalars().first()


class AlbumRepository(ArtworkReferrerRepository[Album]):
    model = Album

    async def find_by_name_and_artist(
        self, name: Optional[str], artist_id: int
    ) -> Optional[Album]:
        stmt = select(Album).where(
            _name_filter(Album.name, name), Album.artist_id == artist_id
        )
        res = await self.session.execute(stmt)
        return res.unique().scalars().first()

    async def count_by_artist(self, artist_id: int) -> int:
        stmt = select(func.count(Album.id)).where(Album.artist_id == artist_id)
        res = await self.session.execute(stmt)
        return res.scalar() or 0


class GenreRepository(ArtworkReferrerRepository[Genre]):
    model = Genre

    async def find_by_name(self, name: Optional[str]) -> Optional[Genre]:
        stmt = select(Genre).where(_name_filter(Genre.name, name))
        res = await self.session.execute(stmt)
        return res.unique().scalars().first()


class SongRepository(ArtworkReferrerRepository[Song]):
    model = Song

    async def find_by_path(self, path: str) -> Optional[Song]:
        stmt = select(Song).where(Song.path == path)
        res = await self.session.execute(stmt)
        return res.unique().scalar_one_or_none()

    async def count_by_album(self, album_id: int) -> int:
        stmt = select(func.count(Song.id)).where(Song.album_id == album_id)
        res = await self.session.execute(stmt)
        return res.scalar() or 0

    async def count_by_genre(self, genre_id: int) -> int:
        stmt = select(func.count(Song.id)).where(Song.genre_id == genre_id)
        res = await self.session.execute(stmt)
        return res.scalar() or 0

    async def sum_size(self) -> int:
        res = await self.session.execute(select(func.sum(Song.size)))
        return res.scalar() or 0


class ArtworkRepository(Repository[Artwork]):
    model = Artwork

    async def find_by_checksum(self, checksum: str) -> Optional[Artwork]:
        stmt = select(Artwork).where(Artwork.checksum == checksum)
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def sum_size(self) -> int:
        res = await self.session.execute(select(func.sum(Artwork.size)))
        return res.scalar() or 0


class ScanJobRepository(Repository[ScanJob]):
    model = ScanJob

    async def find_by_status_in(
        self, statuses: Sequence[ScanJobStatus]
    ) -> List[ScanJob]:
        stmt = (
            select(ScanJob)
            .where(ScanJob.status.in_(list(statuses)))
            .order_by(ScanJob.id)
        )
        res = await self.session.execute(stmt)
        return list(res.unique().scalars().all())

    async def find_in_flight(self) -> Optional[ScanJob]:
        jobs = await self.find_by_status_in(IN_FLIGHT_STATUSES)
        return jobs[0] if jobs else None

    async def find_newest_first(self, offset: int, limit: int) -> List[ScanJob]:
        stmt = (
            select(ScanJob)
            .order_by(ScanJob.created_at.desc(), ScanJob.id.desc())
            .offset(offset)
            .limit(limit)
        )
        res = await self.session.execute(stmt)
        return list(res.unique().scalars().all())


class ScanResultRepository(Repository[ScanResult]):
    model = ScanResult

    async def find_latest(self) -> Optional[ScanResult]:
        stmt = select(ScanResult).order_by(ScanResult.date.desc(), ScanResult.id.desc()).limit(1)
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()


class LibraryRepositories:
    """Bundle of the library repositories bound to a single session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.songs = SongRepository(session)
        self.albums = AlbumRepository(session)
        self.artists = ArtistRepository(session)
        self.genres = GenreRepository(session)
        self.artworks = ArtworkRepository(session)
