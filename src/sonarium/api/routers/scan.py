from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from sonarium.api.deps import get_scan_job_service
from sonarium.api.schemas import (
    EditScanRequest,
    ScanJobPageResponse,
    ScanJobResponse,
    ScanProgressResponse,
    ScanRequest,
)
from sonarium.core.exceptions import (
    LibraryFolderNotFoundError,
    ScanJobAlreadyRunningError,
    ScanJobNotFoundError,
)
from sonarium.worker.scanner import EditCommand, ScanJobService

router = APIRouter()


@router.post("", response_model=ScanJobResponse, status_code=202)
async def start_scan_job(
    req: ScanRequest, service: ScanJobService = Depends(get_scan_job_service)
):
    """Start a FULL scan in the background."""
    try:
        return await service.start_scan_job(req.target_paths or None)
    except ScanJobAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LibraryFolderNotFoundError as e:
        logger.error(f"Scan request rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/edit", response_model=ScanJobResponse, status_code=202)
async def start_edit_job(
    req: EditScanRequest, service: ScanJobService = Depends(get_scan_job_service)
):
    """Write tag changes to song files and re-import them."""
    commands = [
        EditCommand(song_id=edit.song_id, update=edit.to_update())
        for edit in req.songs
    ]
    try:
        return await service.start_edit_job(commands)
    except ScanJobAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("", response_model=ScanJobPageResponse)
async def get_scan_jobs(
    page_index: int = Query(0, ge=0),
    page_size: int = Query(20, ge=1, le=100),
    service: ScanJobService = Depends(get_scan_job_service),
):
    return await service.get_scan_jobs(page_index, page_size)


@router.get("/progress", response_model=ScanProgressResponse)
async def get_current_scan_job_progress(
    service: ScanJobService = Depends(get_scan_job_service),
):
    return ScanProgressResponse(
        progress=await service.get_current_scan_job_progress()
    )


@router.get("/{scan_job_id}", response_model=ScanJobResponse)
async def get_scan_job(
    scan_job_id: int, service: ScanJobService = Depends(get_scan_job_service)
):
    try:
        return await service.get_scan_job(scan_job_id)
    except ScanJobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
