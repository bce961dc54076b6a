"""Access record database model."""

from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, JSON, CheckConstraint, Index
from gatesync.database.database import Base

ACCESS_STATUSES = ("Entering", "Exiting", "Pending")


class AccessRecord(Base):
    """Model for one physical access event at a door."""

    __tablename__ = "access_records"

    id = Column(String, primary_key=True)
    status = Column(String, nullable=False, default="Pending")
    user_name = Column(String, nullable=True)
    subjects = Column(JSON, nullable=False, default=list)
    organizations = Column(JSON, nullable=False, default=list)
    vehicle_plate = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    door_id = Column(String, nullable=True)
    entry_time = Column(DateTime, nullable=True)
    exit_time = Column(DateTime, nullable=True)
    attached_files = Column(JSON, nullable=False, default=list)  # [{"category": ..., "content": ...}]
    synced = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("status IN ('Entering', 'Exiting', 'Pending')", name='ck_access_status'),
        Index('ix_access_records_synced', 'synced'),
        Index('ix_access_records_status', 'status'),
    )
