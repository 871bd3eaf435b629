from pathlib import Path

import pytest
from pydantic import ValidationError

from sonarium.core.config import Settings, settings


def test_config_paths():
    """Verify that paths are correctly resolved."""
    assert isinstance(settings.DATA_DIR, Path)
    assert isinstance(settings.DB_PATH, Path)
    assert settings.DB_NAME == "sonarium.db"
    assert settings.ARTWORK_DIR == settings.DATA_DIR / "artworks"


def test_db_url():
    """Verify DB URL construction."""
    assert settings.DB_URL.startswith("sqlite+aiosqlite:///")
    assert settings.DB_PATH.name in settings.DB_URL


def test_data_dir_creation():
    """Verify DATA_DIR exists (it should be created on import)."""
    assert settings.DATA_DIR.exists()
    assert settings.DATA_DIR.is_dir()


def test_scan_defaults():
    fresh = Settings()
    assert fresh.SCAN_CLEANING_BATCH_SIZE == 300
    assert fresh.SCAN_METADATA_WORKERS == 4


def test_library_folders_from_env(monkeypatch):
    monkeypatch.setenv("LIBRARY_FOLDERS", '["/music", "/audiobooks"]')
    assert Settings().LIBRARY_FOLDERS == ["/music", "/audiobooks"]


@pytest.mark.parametrize("value", ["0", "-5"])
def test_cleaning_batch_size_must_be_positive(monkeypatch, value):
    monkeypatch.setenv("SCAN_CLEANING_BATCH_SIZE", value)
    with pytest.raises(ValidationError):
        Settings()
