"""Diagnostic record API endpoints."""

from datetime import datetime
from typing import List, Optional
from uuid import uuid4
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from gatesync.api.dependencies import get_record_store
from gatesync.services.record_store import DuplicateRecordError, RecordKind, RecordStore

router = APIRouter(prefix="/api/diagnostics", tags=["diagnostics"])


class DiagnosticCreate(BaseModel):
    """Diagnostic record creation request."""

    id: Optional[str] = None
    message: str
    service_name: str
    error_kind: Optional[str] = None
    code: Optional[str] = None
    timestamp: Optional[datetime] = None
    door_id: Optional[str] = None


class DiagnosticResponse(BaseModel):
    """Diagnostic record response."""

    id: str
    message: str
    service_name: str
    error_kind: Optional[str] = None
    code: Optional[str] = None
    timestamp: Optional[datetime] = None
    door_id: Optional[str] = None
    synced: bool

    class Config:
        from_attributes = True


@router.post("", response_model=DiagnosticResponse, status_code=201)
async def create_diagnostic(
    diagnostic: DiagnosticCreate,
    store: RecordStore = Depends(get_record_store)
):
    """Capture an application error locally for later relay."""
    values = diagnostic.model_dump()
    values["id"] = diagnostic.id or f"log-{uuid4().hex}"
    values["timestamp"] = diagnostic.timestamp or datetime.utcnow()
    values["synced"] = False

    try:
        return store.insert(RecordKind.DIAGNOSTIC, values)
    except DuplicateRecordError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("", response_model=List[DiagnosticResponse])
async def list_diagnostics(
    door_id: Optional[str] = None,
    unsynced: bool = False,
    store: RecordStore = Depends(get_record_store)
):
    """List diagnostics, optionally for one door or only those waiting to sync."""
    filters = {}
    if door_id:
        filters["door_id"] = door_id
    if unsynced:
        filters["synced"] = False
    return store.find(RecordKind.DIAGNOSTIC, **filters)


@router.get("/{record_id}", response_model=DiagnosticResponse)
async def get_diagnostic(record_id: str, store: RecordStore = Depends(get_record_store)):
    """Get one diagnostic record."""
    record = store.get(RecordKind.DIAGNOSTIC, record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Diagnostic {record_id} not found")
    return record


@router.delete("/{record_id}", status_code=204)
async def delete_diagnostic(record_id: str, store: RecordStore = Depends(get_record_store)):
    """Delete a diagnostic record."""
    if not store.delete(RecordKind.DIAGNOSTIC, record_id):
        raise HTTPException(status_code=404, detail=f"Diagnostic {record_id} not found")
    return None
