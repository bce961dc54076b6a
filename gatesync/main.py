"""Main FastAPI application entry point."""

from fastapi import FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional

from gatesync import __version__
from gatesync.api.access_records import router as access_records_router
from gatesync.api.diagnostics import router as diagnostics_router
from gatesync.api.sync import router as sync_router
from gatesync.api.dependencies import connectivity, get_connectivity, scheduler, sync_service
from gatesync.services.connectivity import ConnectivityMonitor
from gatesync.database.database import init_db, get_db
from gatesync.models.access_record import AccessRecord
from gatesync.models.diagnostic_record import DiagnosticRecord
from gatesync.models.sync_run import SyncRun
from gatesync.services.sync_jobs import register_sync_jobs

app = FastAPI(
    title="GateSync",
    description="Offline-first sync for door access events and diagnostics",
    version=__version__,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(access_records_router)
app.include_router(diagnostics_router)
app.include_router(sync_router)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    network: str
    message: Optional[str] = None


class StatsResponse(BaseModel):
    """Local store statistics response."""

    access_records_count: int
    unsynced_access_records_count: int
    diagnostics_count: int
    unsynced_diagnostics_count: int
    sync_runs_count: int
    last_sync_status: Optional[str] = None


@app.on_event("startup")
async def startup_event():
    """Initialize database and start the sync jobs."""
    init_db()
    register_sync_jobs(scheduler, sync_service, connectivity)


@app.on_event("shutdown")
async def shutdown_event():
    """Stop and remove every scheduled job."""
    sync_service.detach()
    scheduler.remove_all()


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "GateSync API", "version": __version__}


@app.get("/api/health", response_model=HealthResponse)
async def health_check(
    db: Session = Depends(get_db),
    monitor: ConnectivityMonitor = Depends(get_connectivity)
):
    """Health check endpoint.

    Checks local database access and reports the network state.
    """
    network = monitor.connection_status
    try:
        db.execute(text("SELECT 1"))
        return HealthResponse(status="healthy", database="connected", network=network)
    except Exception as e:
        return HealthResponse(
            status="unhealthy",
            database="disconnected",
            network=network,
            message=str(e),
        )


@app.get("/api/stats", response_model=StatsResponse)
async def get_stats(db: Session = Depends(get_db)):
    """Get local record counts and the last sync status."""
    try:
        access_records_count = db.query(AccessRecord).count()
        unsynced_access_records_count = db.query(AccessRecord).filter(AccessRecord.synced == False).count()

        diagnostics_count = db.query(DiagnosticRecord).count()
        unsynced_diagnostics_count = db.query(DiagnosticRecord).filter(DiagnosticRecord.synced == False).count()

        sync_runs_count = db.query(SyncRun).count()

        last_run = db.query(SyncRun).order_by(
            SyncRun.started_at.desc(), SyncRun.id.desc()
        ).first()
        last_sync_status = last_run.status if last_run else None

        return StatsResponse(
            access_records_count=access_records_count,
            unsynced_access_records_count=unsynced_access_records_count,
            diagnostics_count=diagnostics_count,
            unsynced_diagnostics_count=unsynced_diagnostics_count,
            sync_runs_count=sync_runs_count,
            last_sync_status=last_sync_status,
        )

    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get stats: {str(e)}")
