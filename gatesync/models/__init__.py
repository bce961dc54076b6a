"""Database models package."""

from gatesync.models.access_record import AccessRecord, ACCESS_STATUSES
from gatesync.models.diagnostic_record import DiagnosticRecord
from gatesync.models.sync_run import SyncRun

__all__ = [
    "AccessRecord",
    "ACCESS_STATUSES",
    "DiagnosticRecord",
    "SyncRun",
]
