from fastapi import APIRouter, Depends, HTTPException

from sonarium.api.deps import get_scan_job_service
from sonarium.api.schemas import LibraryStatisticsResponse
from sonarium.worker.scanner import ScanJobService

router = APIRouter()


@router.get("/statistics", response_model=LibraryStatisticsResponse)
async def get_library_statistics(
    service: ScanJobService = Depends(get_scan_job_service),
):
    """Library totals recorded by the latest completed scan."""
    result = await service.get_scan_statistics()
    if result is None:
        raise HTTPException(status_code=404, detail="No completed scan yet")
    return result
