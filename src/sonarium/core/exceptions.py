"""Exception hierarchy shared by the scan pipeline and the API layer."""

from typing import Optional


class SonariumError(Exception):
    """Base class for application errors."""


class ScanJobAlreadyRunningError(SonariumError):
    """Raised when a scan is requested while another one is in flight."""

    def __init__(self, scan_job_id: Optional[int] = None):
        self.scan_job_id = scan_job_id
        message = "Scan job is already running"
        if scan_job_id is not None:
            message += f" (id={scan_job_id})"
        super().__init__(message)


class ScanJobNotFoundError(SonariumError):
    def __init__(self, scan_job_id: int):
        self.scan_job_id = scan_job_id
        super().__init__(f"Scan job {scan_job_id} not found")


class LibraryFolderNotFoundError(SonariumError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Library folder not found: {path}")


class AudioMetadataError(SonariumError):
    """Tags of a single audio file could not be read or written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"{path}: {reason}")


class ArtworkError(SonariumError):
    """Artwork could not be extracted or stored."""
