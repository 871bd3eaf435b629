from pathlib import Path

import pytest

from sonarium.core.repositories import LibraryRepositories
from sonarium.worker.filetree import AudioNode
from sonarium.worker.importer import LibraryImporter
from sonarium.worker.metadata import EmbeddedArtwork


async def _counts(session_factory):
    async with session_factory() as session:
        repos = LibraryRepositories(session)
        return {
            "songs": await repos.songs.count(),
            "albums": await repos.albums.count(),
            "artists": await repos.artists.count(),
            "genres": await repos.genres.count(),
            "artworks": await repos.artworks.count(),
        }


@pytest.mark.asyncio
async def test_import_into_empty_library(session_factory, import_song, make_metadata):
    song, stats = await import_song(
        make_metadata("/music/y.mp3", title="T", artist="Bar", album="Foo", year=2001)
    )

    assert song.path == "/music/y.mp3"
    assert song.name == "T"
    assert song.album.name == "Foo"
    assert song.album.year == 2001
    assert song.album.artist.name == "Bar"
    assert song.genre.name == "Rock"
    assert song.artwork is None
    assert await _counts(session_factory) == {
        "songs": 1,
        "albums": 1,
        "artists": 1,
        "genres": 1,
        "artworks": 0,
    }
    assert stats.created_song_count == 1
    assert stats.created_album_count == 1
    assert stats.created_artist_count == 1
    assert stats.created_genre_count == 1


@pytest.mark.asyncio
async def test_reimport_unchanged_is_noop(session_factory, import_song, make_metadata):
    first, _ = await import_song(make_metadata())
    before = await _counts(session_factory)

    second, stats = await import_song(make_metadata())

    assert second.id == first.id
    assert not stats.has_changes()
    assert await _counts(session_factory) == before


@pytest.mark.asyncio
async def test_find_or_create_uniqueness(session_factory, import_song, make_metadata):
    await import_song(make_metadata("/music/1.mp3", album="Foo", artist="Bar"))
    await import_song(make_metadata("/music/2.mp3", album="Foo", artist="Bar"))
    await import_song(make_metadata("/music/3.mp3", album="Baz", artist="Bar"))

    counts = await _counts(session_factory)
    assert counts["songs"] == 3
    assert counts["albums"] == 2
    assert counts["artists"] == 1
    assert counts["genres"] == 1


@pytest.mark.asyncio
async def test_album_artist_takes_precedence(session_factory, import_song, make_metadata):
    await import_song(make_metadata("/music/1.mp3", artist="A", album_artist="Various"))
    song, _ = await import_song(make_metadata("/music/2.mp3", artist="B", album_artist="Various"))

    assert song.album.artist.name == "Various"
    assert song.artist_name == "B"
    assert song.album_artist_name == "Various"
    counts = await _counts(session_factory)
    assert counts["albums"] == 1
    assert counts["artists"] == 1


@pytest.mark.asyncio
async def test_field_change_updates_song(session_factory, import_song, make_metadata):
    original, _ = await import_song(make_metadata(title="T", bit_rate=192, track_number=1))

    song, stats = await import_song(make_metadata(title="T (Remastered)", bit_rate=320, track_number=2))

    assert song.id == original.id
    assert song.name == "T (Remastered)"
    assert song.bit_rate == 320
    assert song.track_number == 2
    assert stats.updated_song_count == 1
    assert stats.created_song_count == 0


@pytest.mark.asyncio
async def test_album_change_deletes_old_album_and_artist(session_factory, import_song, make_metadata):
    await import_song(make_metadata(album="Foo", artist="Bar"))

    song, stats = await import_song(make_metadata(album="New", artist="Qux"))

    assert song.album.name == "New"
    assert song.album.artist.name == "Qux"
    assert stats.deleted_album_count == 1
    assert stats.deleted_artist_count == 1
    counts = await _counts(session_factory)
    assert counts["albums"] == 1
    assert counts["artists"] == 1


@pytest.mark.asyncio
async def test_album_change_keeps_shared_album(session_factory, import_song, make_metadata):
    await import_song(make_metadata("/music/1.mp3", album="Foo"))
    await import_song(make_metadata("/music/2.mp3", album="Foo"))

    _, stats = await import_song(make_metadata("/music/2.mp3", album="Other"))

    assert stats.deleted_album_count == 0
    assert stats.deleted_artist_count == 0
    assert (await _counts(session_factory))["albums"] == 2


@pytest.mark.asyncio
async def test_genre_change_deletes_old_genre(session_factory, import_song, make_metadata):
    await import_song(make_metadata(genre="Rock"))

    song, stats = await import_song(make_metadata(genre="Jazz"))

    assert song.genre.name == "Jazz"
    assert stats.deleted_genre_count == 1
    assert (await _counts(session_factory))["genres"] == 1


@pytest.mark.asyncio
async def test_year_change_keeps_album_year(session_factory, import_song, make_metadata):
    await import_song(make_metadata(year=2001))

    song, stats = await import_song(make_metadata(year=2002))

    assert song.year == 2002
    assert song.album.year == 2001
    assert stats.updated_album_count == 0
    assert stats.updated_song_count == 1


@pytest.mark.asyncio
async def test_missing_album_year_is_filled(session_factory, import_song, make_metadata):
    await import_song(make_metadata(year=None))

    song, stats = await import_song(make_metadata("/music/z.mp3", year=2003))

    assert song.album.year == 2003
    assert stats.updated_album_count == 1


@pytest.mark.asyncio
async def test_reimport_album_with_mixed_years_is_noop(
    session_factory, import_song, make_metadata
):
    """Songs of one album tagged with different years never churn the album."""
    first = make_metadata("/music/1.mp3", title="One", year=2001)
    second = make_metadata("/music/2.mp3", title="Two", year=2002)
    await import_song(first)
    await import_song(second)
    before = await _counts(session_factory)

    for metadata in (first, second):
        song, stats = await import_song(metadata)
        assert not stats.has_changes()
        assert song.album.year == 2001
    assert await _counts(session_factory) == before


@pytest.mark.asyncio
async def test_embedded_artwork_is_attached_and_shared(
    session_factory, import_song, make_metadata, metadata_reader, tmp_path
):
    audio = tmp_path / "y.mp3"
    audio.write_bytes(b"audio")
    metadata_reader.read_embedded_artwork.return_value = EmbeddedArtwork(
        data=b"art", mime_type="image/jpeg"
    )

    song, stats = await import_song(make_metadata(str(audio)))

    assert song.artwork is not None
    assert song.artwork.source_uri_scheme == "embedded"
    assert song.album.artwork_id == song.artwork_id
    assert song.album.artist.artwork_id == song.artwork_id
    assert song.genre.artwork_id == song.artwork_id
    assert stats.created_artwork_count == 1

    # Same picture again: no new artwork, no update
    _, stats = await import_song(make_metadata(str(audio)))
    assert not stats.has_changes()
    assert (await _counts(session_factory))["artworks"] == 1


@pytest.mark.asyncio
async def test_removed_embedded_artwork_is_cleaned(
    session_factory, import_song, make_metadata, metadata_reader, tmp_path
):
    audio = tmp_path / "y.mp3"
    audio.write_bytes(b"audio")
    metadata_reader.read_embedded_artwork.return_value = EmbeddedArtwork(
        data=b"art", mime_type="image/jpeg"
    )
    first, _ = await import_song(make_metadata(str(audio), album="Foo"))
    # Album keeps the artwork; move the song away so nothing else refers to it
    metadata_reader.read_embedded_artwork.return_value = None

    song, stats = await import_song(make_metadata(str(audio), album="Other"))

    assert song.artwork_id is None
    assert stats.updated_song_count == 1
    assert stats.deleted_album_count == 1
    # Artist and genre still carry the artwork
    assert stats.deleted_artwork_count == 0
    assert first.artwork_id is not None


@pytest.mark.asyncio
async def test_artwork_extraction_failure_is_not_fatal(
    session_factory, import_song, make_metadata, metadata_reader
):
    from sonarium.core.exceptions import AudioMetadataError

    metadata_reader.read_embedded_artwork.side_effect = AudioMetadataError(
        "/music/y.mp3", "broken picture frame"
    )

    song, stats = await import_song(make_metadata())

    assert song.artwork is None
    assert stats.created_song_count == 1


@pytest.mark.asyncio
async def test_import_artwork_attaches_file_artwork(
    session_factory, artwork_finder, artwork_storage, import_song, make_metadata
):
    song, _ = await import_song(make_metadata())
    async with session_factory() as session, session.begin():
        files = await artwork_storage.find_or_save(
            session, "file:///music/cover.jpg", b"cover", "image/jpeg", 1.0
        )
        importer = LibraryImporter(session, artwork_finder)
        updated = await importer.import_artwork(song.id, files)

    assert updated.artwork_id == files.artwork.id
    assert updated.album.artwork_id == files.artwork.id
    assert importer.stats.updated_song_count == 1

    # A later import without embedded artwork keeps the folder artwork
    song, stats = await import_song(make_metadata())
    assert song.artwork_id == files.artwork.id
    assert not stats.has_changes()


@pytest.mark.asyncio
async def test_import_artwork_for_missing_song(session_factory, artwork_finder, artwork_storage):
    async with session_factory() as session, session.begin():
        files = await artwork_storage.find_or_save(
            session, "file:///music/cover.jpg", b"cover", "image/jpeg", 1.0
        )
        importer = LibraryImporter(session, artwork_finder)
        assert await importer.import_artwork(12345, files) is None


@pytest.mark.asyncio
async def test_unknown_tags_import(session_factory, import_song, make_metadata):
    song, _ = await import_song(
        make_metadata(title=None, artist=None, album=None, genre=None, year=None)
    )
    again, stats = await import_song(
        make_metadata(title=None, artist=None, album=None, genre=None, year=None),
        AudioNode(path=Path("/music/y.mp3")),
    )

    assert song.album.name is None
    assert song.album.artist.name is None
    assert again.id == song.id
    assert not stats.has_changes()
