"""In-memory store for tracking scan job progress.

Progress is transient: it is never persisted, only the ScanJob row is. The
API reads it while the scan worker writes it, possibly from another thread.
"""

import enum
import threading
from typing import Dict, List, Optional

from pydantic import BaseModel

from sonarium.core.models import ScanType


class ScanStep(str, enum.Enum):
    """Ordered phases of a scan job; steps with granular progress report a value."""

    FULL_PREPARING = "FULL_PREPARING"
    FULL_SEARCHING_MEDIA = "FULL_SEARCHING_MEDIA"
    FULL_CLEANING_SONGS = "FULL_CLEANING_SONGS"
    FULL_CLEANING_ARTWORKS = "FULL_CLEANING_ARTWORKS"
    FULL_IMPORTING = "FULL_IMPORTING"
    FULL_SEARCHING_ARTWORKS = "FULL_SEARCHING_ARTWORKS"

    EDIT_PREPARING = "EDIT_PREPARING"
    EDIT_WRITING = "EDIT_WRITING"
    EDIT_SEARCHING_ARTWORKS = "EDIT_SEARCHING_ARTWORKS"

    @property
    def scan_type(self) -> ScanType:
        return ScanType(self.value.split("_", 1)[0])

    @property
    def has_value(self) -> bool:
        return self in _STEPS_WITH_VALUE

    @property
    def step_number(self) -> int:
        return steps_of(self.scan_type).index(self) + 1

    @property
    def total_steps(self) -> int:
        return len(steps_of(self.scan_type))


_STEPS_WITH_VALUE = frozenset(
    {
        ScanStep.FULL_CLEANING_SONGS,
        ScanStep.FULL_CLEANING_ARTWORKS,
        ScanStep.FULL_IMPORTING,
        ScanStep.FULL_SEARCHING_ARTWORKS,
        ScanStep.EDIT_WRITING,
        ScanStep.EDIT_SEARCHING_ARTWORKS,
    }
)


def steps_of(scan_type: ScanType) -> List[ScanStep]:
    """Steps of a scan type in execution order."""
    return [step for step in ScanStep if step.value.startswith(scan_type.value + "_")]


class ProgressValue(BaseModel):
    items_complete: int
    items_total: int


class ScanProgress(BaseModel):
    """Snapshot of the current step of a running scan job."""

    scan_job_id: int
    scan_type: ScanType
    step: ScanStep
    step_number: int
    total_steps: int
    files: List[str] = []
    value: Optional[ProgressValue] = None


class ScanProgressStore:
    """Thread-safe in-memory store of ScanProgress keyed by scan job id.

    Use the module-level `progress_store` for the process-wide instance, or
    instantiate ScanProgressStore() for isolated state (e.g. tests).
    """

    def __init__(self) -> None:
        self._progress: Dict[int, ScanProgress] = {}
        self._lock = threading.Lock()

    def start_step(
        self, scan_job_id: int, step: ScanStep, files: Optional[List[str]] = None
    ) -> ScanProgress:
        """Enter a new step; the item counters of the previous step are dropped."""
        with self._lock:
            previous = self._progress.get(scan_job_id)
            if files is None:
                files = previous.files if previous else []
            progress = ScanProgress(
                scan_job_id=scan_job_id,
                scan_type=step.scan_type,
                step=step,
                step_number=step.step_number,
                total_steps=step.total_steps,
                files=list(files),
                value=ProgressValue(items_complete=0, items_total=0)
                if step.has_value
                else None,
            )
            self._progress[scan_job_id] = progress
            return progress

    def update_value(
        self, scan_job_id: int, items_complete: int, items_total: int
    ) -> None:
        """Update the item counters of the current step."""
        with self._lock:
            if progress := self._progress.get(scan_job_id):
                if progress.step.has_value:
                    progress.value = ProgressValue(
                        items_complete=items_complete, items_total=items_total
                    )

    def get(self, scan_job_id: int) -> Optional[ScanProgress]:
        with self._lock:
            progress = self._progress.get(scan_job_id)
            return progress.model_copy(deep=True) if progress else None

    def clear(self, scan_job_id: int) -> None:
        with self._lock:
            self._progress.pop(scan_job_id, None)

    def get_all(self) -> Dict[int, ScanProgress]:
        with self._lock:
            return self._progress.copy()


# Global singleton instance
progress_store = ScanProgressStore()


def get_progress_store() -> ScanProgressStore:
    """Return the global progress store instance (for dependency injection)."""
    return progress_store
