"""Sync run database model."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, CheckConstraint
from gatesync.database.database import Base


class SyncRun(Base):
    """Model for tracking sync tick history."""

    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String, nullable=False)  # diagnostic, access
    status = Column(String, nullable=False)  # in_progress, success, partial, failed
    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    attempted = Column(Integer, nullable=False, default=0)
    synced = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    changes_summary = Column(Text, nullable=True)

    # Constraints
    __table_args__ = (
        CheckConstraint("kind IN ('diagnostic', 'access')", name='ck_sync_run_kind'),
        CheckConstraint("status IN ('in_progress', 'success', 'partial', 'failed')", name='ck_sync_run_status'),
    )
