"""Process-wide service instances and their FastAPI dependencies."""

from gatesync.database.database import SessionLocal
from gatesync.services.connectivity import ConnectivityMonitor
from gatesync.services.record_store import RecordStore
from gatesync.services.remote_gateway import RemoteGateway
from gatesync.services.scheduler import JobScheduler
from gatesync.services.sync_service import SyncService

scheduler = JobScheduler()
connectivity = ConnectivityMonitor(gateway_factory=RemoteGateway)
record_store = RecordStore(SessionLocal)
sync_service = SyncService(
    record_store=record_store,
    connectivity=connectivity,
    gateway_factory=RemoteGateway,
    session_factory=SessionLocal,
)


def get_record_store() -> RecordStore:
    """Get record store dependency."""
    return record_store


def get_scheduler() -> JobScheduler:
    """Get scheduler dependency."""
    return scheduler


def get_connectivity() -> ConnectivityMonitor:
    """Get connectivity monitor dependency."""
    return connectivity


def get_sync_service() -> SyncService:
    """Get sync service dependency."""
    return sync_service
