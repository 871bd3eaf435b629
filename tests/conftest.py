import os
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

# Keep settings (logs, artworks) away from the working directory
os.environ.setdefault("SONARIUM_DATA_DIR", tempfile.mkdtemp(prefix="sonarium-test-"))

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from sonarium.api.deps import get_db, get_scan_job_service  # noqa: E402
from sonarium.api.main import app  # noqa: E402
from sonarium.core.models import Base  # noqa: E402
from sonarium.core.progress_store import ScanProgressStore  # noqa: E402
from sonarium.core.scan_config import ScanConfig  # noqa: E402
from sonarium.worker.artwork import ArtworkFinder, ArtworkStorage  # noqa: E402
from sonarium.worker.filetree import AudioNode  # noqa: E402
from sonarium.worker.importer import LibraryImporter  # noqa: E402
from sonarium.worker.metadata import AudioMetadata  # noqa: E402
from sonarium.worker.scanner import ScanJobService  # noqa: E402

# Use in-memory DB for better isolation and speed
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

# Create test-specific engine (NEVER use production engine in tests!)
test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test-specific session factory
TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@pytest.fixture(scope="function")
async def db_engine():
    """Create test database tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
async def session_factory(db_engine):
    """Session factory bound to the fresh test database."""
    return TestSessionLocal


@pytest.fixture(scope="function")
async def db_session(db_engine):
    """Provide a test database session."""
    async with TestSessionLocal() as session:
        yield session
        await session.rollback()


@pytest.fixture
def artwork_storage(tmp_path):
    return ArtworkStorage(tmp_path / "artworks")


@pytest.fixture
def metadata_reader():
    """Metadata reader double: no embedded artwork unless a test sets one."""
    reader = MagicMock()
    reader.read_embedded_artwork.return_value = None
    return reader


@pytest.fixture
def artwork_finder(artwork_storage, metadata_reader):
    return ArtworkFinder(artwork_storage, metadata_reader)


@pytest.fixture
def make_metadata():
    """Build an AudioMetadata record with sensible defaults."""

    def _make(path: str = "/music/y.mp3", **overrides) -> AudioMetadata:
        values = dict(
            path=path,
            mime_type="audio/mpeg",
            file_extension="mp3",
            size=4_000_000,
            duration=215_000,
            bit_rate=320,
            bit_rate_variable=False,
            track_number=1,
            track_count=10,
            title="T",
            artist="Bar",
            album="Foo",
            genre="Rock",
            year=2001,
        )
        values.update(overrides)
        return AudioMetadata(**values)

    return _make


@pytest.fixture
def import_song(session_factory, artwork_finder):
    """Import one song in its own committed transaction, like a scan does."""

    async def _import(metadata: AudioMetadata, node: AudioNode = None):
        node = node or AudioNode(path=Path(metadata.path), mime_type=metadata.mime_type)
        async with session_factory() as session, session.begin():
            importer = LibraryImporter(session, artwork_finder)
            song = await importer.import_audio_data(node, metadata)
        return song, importer.stats

    return _import


@pytest.fixture
def scan_job_service(session_factory, artwork_storage, metadata_reader):
    service = ScanJobService(
        session_factory=session_factory,
        config=ScanConfig(cleaning_batch_size=2, metadata_workers=2),
        progress_store=ScanProgressStore(),
        artwork_storage=artwork_storage,
        metadata_reader=metadata_reader,
    )
    yield service
    service._executor.shutdown(wait=True)


@pytest.fixture(scope="function")
async def client(session_factory, scan_job_service):
    """Create an async test client with DB and service overrides."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scan_job_service] = lambda: scan_job_service
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
