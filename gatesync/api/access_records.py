"""Access record API endpoints."""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import uuid4
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from gatesync.api.dependencies import get_record_store
from gatesync.services.record_store import (
    DuplicateRecordError,
    RecordKind,
    RecordNotFoundError,
    RecordStore,
)

router = APIRouter(prefix="/api/access-records", tags=["access-records"])

AccessStatus = Literal["Entering", "Exiting", "Pending"]


class AttachedFile(BaseModel):
    """File captured with an access event."""

    category: str
    content: Optional[str] = None


class AccessRecordCreate(BaseModel):
    """Access record creation request."""

    id: Optional[str] = None
    status: AccessStatus = "Pending"
    user_name: Optional[str] = None
    subjects: List[str] = Field(default_factory=list)
    organizations: List[str] = Field(default_factory=list)
    vehicle_plate: Optional[str] = None
    phone_number: Optional[str] = None
    door_id: Optional[str] = None
    entry_time: Optional[datetime] = None
    exit_time: Optional[datetime] = None
    attached_files: List[AttachedFile] = Field(default_factory=list)


class AccessRecordUpdate(BaseModel):
    """Access record update request."""

    status: Optional[AccessStatus] = None
    exit_time: Optional[datetime] = None


class AccessRecordResponse(BaseModel):
    """Access record response."""

    id: str
    status: str
    user_name: Optional[str] = None
    subjects: List[str]
    organizations: List[str]
    vehicle_plate: Optional[str] = None
    phone_number: Optional[str] = None
    door_id: Optional[str] = None
    entry_time: Optional[datetime] = None
    exit_time: Optional[datetime] = None
    attached_files: List[AttachedFile]
    synced: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.post("", response_model=AccessRecordResponse, status_code=201)
async def create_access_record(
    record: AccessRecordCreate,
    store: RecordStore = Depends(get_record_store)
):
    """Record an access event locally. It is pushed to the remote API later."""
    values = record.model_dump()
    values["id"] = record.id or f"acc-{uuid4().hex}"
    values["attached_files"] = [f.model_dump() for f in record.attached_files]
    values["synced"] = False

    try:
        return store.insert(RecordKind.ACCESS, values)
    except DuplicateRecordError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=List[AccessRecordResponse])
async def list_access_records(
    status: Optional[AccessStatus] = None,
    unsynced: bool = False,
    store: RecordStore = Depends(get_record_store)
):
    """List access records, optionally by status or only those waiting to sync."""
    filters = {}
    if status:
        filters["status"] = status
    if unsynced:
        filters["synced"] = False
    return store.find(RecordKind.ACCESS, **filters)


@router.get("/{record_id}", response_model=AccessRecordResponse)
async def get_access_record(record_id: str, store: RecordStore = Depends(get_record_store)):
    """Get one access record."""
    record = store.get(RecordKind.ACCESS, record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Access record {record_id} not found")
    return record


@router.patch("/{record_id}", response_model=AccessRecordResponse)
async def update_access_record(
    record_id: str,
    update: AccessRecordUpdate,
    store: RecordStore = Depends(get_record_store)
):
    """Change an access record's status or exit time."""
    changes = update.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes provided")

    try:
        return store.update(RecordKind.ACCESS, record_id, **changes)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{record_id}", status_code=204)
async def delete_access_record(record_id: str, store: RecordStore = Depends(get_record_store)):
    """Delete an access record."""
    if not store.delete(RecordKind.ACCESS, record_id):
        raise HTTPException(status_code=404, detail=f"Access record {record_id} not found")
    return None
