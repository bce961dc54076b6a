"""Sync control API endpoints."""

import logging
from datetime import datetime
from typing import List, Optional, Tuple
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gatesync.api.dependencies import get_connectivity, get_scheduler, get_sync_service
from gatesync.database.database import get_db
from gatesync.services.connectivity import ConnectivityMonitor
from gatesync.services.scheduler import JobScheduler
from gatesync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


class SyncTickResponse(BaseModel):
    """Result of a manual sync tick."""

    kind: str
    skipped_offline: bool
    attempted: int
    synced: int
    failed: int
    diagnostics_created: int
    diagnostics_deduplicated: int
    sync_run_id: Optional[int] = None


class JobResponse(BaseModel):
    """Scheduled job response."""

    name: str
    interval_ms: int
    is_running: bool
    run_count: int
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    daily_at: Optional[Tuple[int, int]] = None
    max_runs: Optional[int] = None

    class Config:
        from_attributes = True


class SyncStatusResponse(BaseModel):
    """Sync status response."""

    online: bool
    in_progress: bool
    unsynced_diagnostics: int
    unsynced_access_records: int
    running_jobs: int
    jobs: List[JobResponse]


class SyncRunResponse(BaseModel):
    """Sync run history entry."""

    id: int
    kind: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    attempted: int
    synced: int
    failed: int
    error_message: Optional[str] = None
    changes_summary: Optional[str] = None

    class Config:
        from_attributes = True


class ConnectivityUpdate(BaseModel):
    """Connectivity state pushed by the platform."""

    online: bool


class ConnectivityResponse(BaseModel):
    """Connectivity state response."""

    online: bool
    status: str


async def _run_tick(tick) -> SyncTickResponse:
    try:
        result = await tick()
    except Exception as e:
        logger.error(f"Manual sync failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Sync failed: {str(e)}")
    return SyncTickResponse(**result.to_dict())


@router.post("/run", response_model=SyncTickResponse)
async def run_diagnostic_sync(service: SyncService = Depends(get_sync_service)):
    """Run one diagnostic sync tick now."""
    return await _run_tick(service.run_sync_tick)


@router.post("/run/access", response_model=SyncTickResponse)
async def run_access_sync(service: SyncService = Depends(get_sync_service)):
    """Run one access record sync tick now."""
    return await _run_tick(service.run_access_sync_tick)


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    service: SyncService = Depends(get_sync_service),
    scheduler: JobScheduler = Depends(get_scheduler)
):
    """Get connectivity, backlog and job state."""
    status = service.get_sync_status()
    return SyncStatusResponse(
        online=status["online"],
        in_progress=status["in_progress"],
        unsynced_diagnostics=status["unsynced_diagnostics"],
        unsynced_access_records=status["unsynced_access_records"],
        running_jobs=scheduler.get_running_jobs_count(),
        jobs=[JobResponse.model_validate(job) for job in scheduler.get_all_jobs()],
    )


@router.get("/history", response_model=List[SyncRunResponse])
async def get_sync_history(
    limit: int = 10,
    offset: int = 0,
    db: Session = Depends(get_db),
    service: SyncService = Depends(get_sync_service)
):
    """Get past sync runs, most recent first."""
    return service.get_sync_history(db, limit=limit, offset=offset)


@router.get("/history/{sync_run_id}", response_model=SyncRunResponse)
async def get_sync_run(
    sync_run_id: int,
    db: Session = Depends(get_db),
    service: SyncService = Depends(get_sync_service)
):
    """Get one sync run."""
    sync_run = service.get_sync_run(db, sync_run_id)
    if sync_run is None:
        raise HTTPException(status_code=404, detail=f"Sync run {sync_run_id} not found")
    return sync_run


@router.get("/jobs", response_model=List[JobResponse])
async def list_jobs(scheduler: JobScheduler = Depends(get_scheduler)):
    """List scheduled jobs."""
    return [JobResponse.model_validate(job) for job in scheduler.get_all_jobs()]


@router.post("/jobs/{name}/start", response_model=JobResponse)
async def start_job(name: str, scheduler: JobScheduler = Depends(get_scheduler)):
    """Start a scheduled job."""
    if scheduler.get_job(name) is None:
        raise HTTPException(status_code=404, detail=f"Job {name} not found")
    scheduler.start_job(name)
    return JobResponse.model_validate(scheduler.get_job(name))


@router.post("/jobs/{name}/stop", response_model=JobResponse)
async def stop_job(name: str, scheduler: JobScheduler = Depends(get_scheduler)):
    """Stop a scheduled job. A tick already running is not interrupted."""
    if scheduler.get_job(name) is None:
        raise HTTPException(status_code=404, detail=f"Job {name} not found")
    scheduler.stop_job(name)
    return JobResponse.model_validate(scheduler.get_job(name))


@router.post("/connectivity", response_model=ConnectivityResponse)
async def set_connectivity(
    update: ConnectivityUpdate,
    connectivity: ConnectivityMonitor = Depends(get_connectivity)
):
    """Push an online/offline transition from the platform."""
    connectivity.set_online(update.online)
    return ConnectivityResponse(online=connectivity.is_online(), status=connectivity.connection_status)
