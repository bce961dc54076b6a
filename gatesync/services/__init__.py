"""Services package."""

from gatesync.services.connectivity import ConnectivityMonitor
from gatesync.services.error_classifier import ErrorKind, classify_sync_error, error_code_for
from gatesync.services.record_store import (
    RecordKind,
    RecordStore,
    RecordNotFoundError,
    DuplicateRecordError,
    Subscription,
)
from gatesync.services.remote_gateway import RemoteGateway, RemoteAPIError
from gatesync.services.scheduler import JobScheduler, JobInfo
from gatesync.services.sync_service import SyncService, SyncTickResult

__all__ = [
    "ConnectivityMonitor",
    "ErrorKind",
    "classify_sync_error",
    "error_code_for",
    "RecordKind",
    "RecordStore",
    "RecordNotFoundError",
    "DuplicateRecordError",
    "Subscription",
    "RemoteGateway",
    "RemoteAPIError",
    "JobScheduler",
    "JobInfo",
    "SyncService",
    "SyncTickResult",
]
