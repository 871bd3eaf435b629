"""Library models: Artwork, Artist, Album, Genre, Song.

Many-to-one references are eagerly joined so that entities loaded through an
AsyncSession can be traversed (song.album.artist) without implicit IO.
Nothing here cascades on delete: orphan removal is the job of LibraryCleaner.
"""

from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sonarium.core.models.base import Base, TimestampMixin

SOURCE_URI_SCHEME_FILE = "file"
SOURCE_URI_SCHEME_EMBEDDED = "embedded"


class Artwork(Base, TimestampMixin):
    """Image stored content-addressed in the artwork storage."""

    __tablename__ = "artworks"

    id: Mapped[int] = mapped_column(primary_key=True)
    checksum: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    mime_type: Mapped[str] = mapped_column(String)
    size: Mapped[int] = mapped_column(BigInteger)
    source_uri: Mapped[str] = mapped_column(String)
    source_uri_scheme: Mapped[str] = mapped_column(String, index=True)
    # st_mtime of the source at the time the artwork was stored
    source_mtime: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    blob_path: Mapped[str] = mapped_column(String)

    def __repr__(self) -> str:
        return f"Artwork(id={self.id!r}, source_uri={self.source_uri!r})"


class Artist(Base, TimestampMixin):
    __tablename__ = "artists"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(
        String, unique=True, index=True, nullable=True
    )
    artwork_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("artworks.id"), nullable=True, index=True
    )

    artwork: Mapped[Optional["Artwork"]] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"Artist(id={self.id!r}, name={self.name!r})"


class Album(Base, TimestampMixin):
    __tablename__ = "albums"
    __table_args__ = (
        UniqueConstraint("name", "artist_id", name="uq_album_name_artist"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String, index=True, nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    artist_id: Mapped[int] = mapped_column(ForeignKey("artists.id"), index=True)
    artwork_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("artworks.id"), nullable=True, index=True
    )

    artist: Mapped["Artist"] = relationship(lazy="joined")
    artwork: Mapped[Optional["Artwork"]] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"Album(id={self.id!r}, name={self.name!r})"


class Genre(Base, TimestampMixin):
    __tablename__ = "genres"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(
        String, unique=True, index=True, nullable=True
    )
    artwork_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("artworks.id"), nullable=True, index=True
    )

    artwork: Mapped[Optional["Artwork"]] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"Genre(id={self.id!r}, name={self.name!r})"


class Song(Base, TimestampMixin):
    """An audio file of the library, identified by its absolute path."""

    __tablename__ = "songs"

    id: Mapped[int] = mapped_column(primary_key=True)
    path: Mapped[str] = mapped_column(String, unique=True, index=True)
    mime_type: Mapped[str] = mapped_column(String)
    file_extension: Mapped[str] = mapped_column(String)
    size: Mapped[int] = mapped_column(BigInteger)
    duration: Mapped[int] = mapped_column(BigInteger)  # milliseconds
    bit_rate: Mapped[int] = mapped_column(Integer)  # kbps
    bit_rate_variable: Mapped[bool] = mapped_column(Boolean, default=False)

    disc_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    disc_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    track_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    track_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    artist_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    album_artist_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    album_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    genre_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    album_id: Mapped[int] = mapped_column(ForeignKey("albums.id"), index=True)
    genre_id: Mapped[int] = mapped_column(ForeignKey("genres.id"), index=True)
    artwork_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("artworks.id"), nullable=True, index=True
    )

    album: Mapped["Album"] = relationship(lazy="joined")
    genre: Mapped["Genre"] = relationship(lazy="joined")
    artwork: Mapped[Optional["Artwork"]] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"Song(id={self.id!r}, path={self.path!r})"
