from fastapi import Request

from sonarium.core.db import get_db
from sonarium.worker.scanner import ScanJobService

__all__ = ["get_db", "get_scan_job_service"]


def get_scan_job_service(request: Request) -> ScanJobService:
    """Dependency returning the process-wide scan job service.

    The service is created by the application lifespan.
    """
    return request.app.state.scan_job_service
