import os
from pathlib import Path
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Project Paths
    DATA_DIR: Path = Path(
        os.getenv("SONARIUM_DATA_DIR", str(Path.cwd() / "data"))
    )

    # Database
    DB_NAME: str = "sonarium.db"

    @property
    def DB_PATH(self) -> Path:
        return self.DATA_DIR / self.DB_NAME

    @property
    def DB_URL(self) -> str:
        # Use forward slashes so Windows paths work in the URL (no backslash escapes)
        path = self.DB_PATH.resolve().as_posix()
        return f"sqlite+aiosqlite:///{path}"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_RETENTION: str = "10 days"
    LOG_ROTATION: str = "10 MB"

    DB_ECHO: bool = False

    # Library
    LIBRARY_FOLDERS: List[str] = []
    ARTWORK_DIR_NAME: str = "artworks"

    @property
    def ARTWORK_DIR(self) -> Path:
        return self.DATA_DIR / self.ARTWORK_DIR_NAME

    # Scanning
    SCAN_CLEANING_BATCH_SIZE: int = 300
    SCAN_METADATA_WORKERS: int = 4

    @field_validator("SCAN_CLEANING_BATCH_SIZE", "SCAN_METADATA_WORKERS")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value


settings = Settings()

# Ensure data directory exists
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
