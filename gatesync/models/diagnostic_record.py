"""Diagnostic record database model."""

from sqlalchemy import Column, String, Boolean, DateTime, Text, Index
from gatesync.database.database import Base


class DiagnosticRecord(Base):
    """Model for one captured failure, waiting to be relayed to the remote API."""

    __tablename__ = "diagnostic_records"

    id = Column(String, primary_key=True)
    message = Column(Text, nullable=False)
    service_name = Column(String, nullable=False)
    error_kind = Column(String, nullable=True)
    code = Column(String, nullable=True)
    timestamp = Column(DateTime, nullable=True)
    door_id = Column(String, nullable=True)
    synced = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index('ix_diagnostic_records_synced', 'synced'),
        Index('ix_diagnostic_records_door_id', 'door_id'),
    )
