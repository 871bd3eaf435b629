"""Configuration for scan pipeline behavior and performance tuning."""

from dataclasses import dataclass
from typing import Optional

from sonarium.core.config import settings


@dataclass
class ScanConfig:
    """Configuration for the scan pipeline components.

    Attributes:
        cleaning_batch_size: Page size of the read phase and chunk size of the
            delete transactions in BatchLibraryCleaner (default: 300)
        metadata_workers: Thread pool size for tag reading and writing
            (default: 4)

    Example:
        >>> config = ScanConfig(cleaning_batch_size=1000)
        >>> cleaner = BatchLibraryCleaner(AsyncSessionLocal, artwork_storage, config=config)
    """

    cleaning_batch_size: int = 300
    metadata_workers: int = 4

    def __post_init__(self):
        """Validate configuration values.

        Raises:
            ValueError: If any configuration value is invalid.
        """
        if self.cleaning_batch_size < 1:
            raise ValueError("cleaning_batch_size must be >= 1")
        if self.metadata_workers < 1:
            raise ValueError("metadata_workers must be >= 1")

    @classmethod
    def from_settings(cls, source: Optional[object] = None) -> "ScanConfig":
        source = source or settings
        return cls(
            cleaning_batch_size=source.SCAN_CLEANING_BATCH_SIZE,
            metadata_workers=source.SCAN_METADATA_WORKERS,
        )
