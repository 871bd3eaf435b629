import hashlib
import os
from pathlib import Path

import pytest

from sonarium.core.exceptions import ArtworkError
from sonarium.core.models import Artwork
from sonarium.core.repositories import ArtworkRepository
from sonarium.worker.artwork import (
    ArtworkFinder,
    embedded_source_uri,
    file_source_uri,
    pick_file_artwork,
    source_uri_path,
)
from sonarium.worker.filetree import FileTreeWalker, FolderNode, ImageNode
from sonarium.worker.metadata import EmbeddedArtwork


def _images(*names):
    folder = FolderNode(path=Path("/music/Album"))
    return [
        ImageNode(path=folder.path / name, parent=folder, mime_type="image/jpeg")
        for name in names
    ]


@pytest.mark.parametrize(
    "names, expected",
    [
        (["back.jpg", "Cover.jpg", "folder.jpg"], "Cover.jpg"),
        (["back.jpg", "folder.jpg", "front.jpg"], "folder.jpg"),
        (["scan1.jpg", "Album Front.png"], "Album Front.png"),
        (["b.jpg", "a.jpg"], "a.jpg"),
    ],
)
def test_pick_file_artwork(names, expected):
    assert pick_file_artwork(_images(*names)).path.name == expected


def test_pick_file_artwork_empty():
    assert pick_file_artwork([]) is None


def test_source_uris():
    path = Path("/music/My Album/cover.jpg")
    uri = file_source_uri(path)
    assert uri == "file:///music/My%20Album/cover.jpg"
    assert source_uri_path(uri) == "/music/My Album/cover.jpg"
    assert embedded_source_uri(Path("/music/a.mp3")) == "embedded:/music/a.mp3"
    assert source_uri_path("embedded:/music/a.mp3") == "/music/a.mp3"


@pytest.mark.asyncio
async def test_find_or_save_is_content_addressed(session_factory, artwork_storage):
    data = b"\x89PNG fake image"
    checksum = hashlib.sha256(data).hexdigest()

    async with session_factory() as session, session.begin():
        first = await artwork_storage.find_or_save(
            session, "file:///music/cover.png", data, "image/png", source_mtime=10.0
        )
    async with session_factory() as session, session.begin():
        second = await artwork_storage.find_or_save(
            session, "embedded:/music/a.mp3", data, "image/png"
        )

    assert first.created is True
    assert second.created is False
    assert second.artwork.id == first.artwork.id
    assert first.artwork.checksum == checksum
    assert first.artwork.source_uri_scheme == "file"
    assert first.artwork.source_mtime == 10.0
    assert first.file == artwork_storage.root_dir / checksum[:2] / f"{checksum}.png"
    assert first.file.read_bytes() == data
    async with session_factory() as session:
        assert await ArtworkRepository(session).count() == 1


@pytest.mark.asyncio
async def test_find_or_save_rejects_empty_payload(session_factory, artwork_storage):
    async with session_factory() as session:
        with pytest.raises(ArtworkError):
            await artwork_storage.find_or_save(session, "file:///x.png", b"", "image/png")


@pytest.mark.asyncio
async def test_rollback_removes_written_blob(session_factory, artwork_storage):
    async with session_factory() as session:
        files = await artwork_storage.find_or_save(
            session, "file:///music/cover.png", b"image", "image/png"
        )
        assert files.file.exists()
        await session.rollback()

    assert not files.file.exists()
    async with session_factory() as session:
        assert await ArtworkRepository(session).count() == 0


@pytest.mark.asyncio
async def test_delete_removes_blob_only_after_commit(session_factory, artwork_storage):
    async with session_factory() as session, session.begin():
        files = await artwork_storage.find_or_save(
            session, "file:///music/cover.png", b"image", "image/png"
        )
    artwork_id = files.artwork.id

    async with session_factory() as session:
        assert await artwork_storage.delete(session, artwork_id)
        assert files.file.exists()
        await session.rollback()
    assert files.file.exists()

    async with session_factory() as session, session.begin():
        assert await artwork_storage.delete(session, artwork_id)
        assert files.file.exists()
    assert not files.file.exists()

    async with session_factory() as session:
        assert await session.get(Artwork, artwork_id) is None
        assert not await artwork_storage.delete(session, artwork_id)


@pytest.mark.asyncio
async def test_find_file_artwork_in_folder(tmp_path, session_factory, artwork_storage):
    album = tmp_path / "Album"
    album.mkdir()
    (album / "01.mp3").write_bytes(b"audio")
    (album / "back.jpg").write_bytes(b"back")
    (album / "cover.jpg").write_bytes(b"cover")
    node = FileTreeWalker().walk(tmp_path).root.child_audios_recursively()[0]

    finder = ArtworkFinder(artwork_storage)
    async with session_factory() as session, session.begin():
        files = await finder.find_and_save_file_artwork(session, node)

    assert files.file.read_bytes() == b"cover"
    assert files.artwork.source_uri == (album / "cover.jpg").absolute().as_uri()
    assert files.artwork.source_mtime == os.path.getmtime(album / "cover.jpg")


@pytest.mark.asyncio
async def test_find_file_artwork_in_parent_folder(tmp_path, session_factory, artwork_storage):
    disc = tmp_path / "Album" / "CD1"
    disc.mkdir(parents=True)
    (disc / "01.mp3").write_bytes(b"audio")
    (tmp_path / "Album" / "folder.png").write_bytes(b"folder")
    node = FileTreeWalker().walk(tmp_path).root.child_audios_recursively()[0]

    async with session_factory() as session, session.begin():
        files = await ArtworkFinder(artwork_storage).find_and_save_file_artwork(
            session, node
        )

    assert files.file.read_bytes() == b"folder"
    assert files.artwork.mime_type == "image/png"


@pytest.mark.asyncio
async def test_find_file_artwork_none(tmp_path, session_factory, artwork_storage):
    (tmp_path / "01.mp3").write_bytes(b"audio")
    node = FileTreeWalker().walk(tmp_path).root.child_audios[0]

    async with session_factory() as session:
        files = await ArtworkFinder(artwork_storage).find_and_save_file_artwork(
            session, node
        )
    assert files is None


@pytest.mark.asyncio
async def test_find_embedded_artwork(
    tmp_path, session_factory, artwork_storage, metadata_reader
):
    (tmp_path / "01.mp3").write_bytes(b"audio")
    node = FileTreeWalker().walk(tmp_path).root.child_audios[0]
    metadata_reader.read_embedded_artwork.return_value = EmbeddedArtwork(
        data=b"embedded", mime_type="image/jpeg"
    )

    async with session_factory() as session, session.begin():
        files = await ArtworkFinder(
            artwork_storage, metadata_reader
        ).find_and_save_embedded_artwork(session, node)

    assert files.created
    assert files.artwork.source_uri == f"embedded:{node.path.as_posix()}"
    assert files.artwork.source_uri_scheme == "embedded"
    assert files.file.suffix == ".jpg"
    metadata_reader.read_embedded_artwork.assert_called_once_with(node.path)
