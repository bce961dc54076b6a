"""Local record store for access events and diagnostics."""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from sqlalchemy.exc import IntegrityError

from gatesync.database.database import SessionLocal
from gatesync.models.access_record import AccessRecord, ACCESS_STATUSES
from gatesync.models.diagnostic_record import DiagnosticRecord

logger = logging.getLogger(__name__)

Record = Union[AccessRecord, DiagnosticRecord]


class RecordKind(str, Enum):
    """The record collections held by the store."""

    ACCESS = "access"
    DIAGNOSTIC = "diagnostic"


_MODELS = {
    RecordKind.ACCESS: AccessRecord,
    RecordKind.DIAGNOSTIC: DiagnosticRecord,
}


class RecordNotFoundError(LookupError):
    """Raised when an update targets a record id that is not stored."""


class DuplicateRecordError(ValueError):
    """Raised when an insert reuses an id that is already stored."""


class Subscription:
    """Handle returned by :meth:`RecordStore.subscribe`."""

    def __init__(self, store: "RecordStore", key: Any, callback: Callable):
        self._store = store
        self._key = key
        self._callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        """Stop receiving snapshots. Safe to call more than once."""
        if not self.active:
            return
        self.active = False
        self._store._remove_subscription(self._key, self)


class RecordStore:
    """Durable store for access and diagnostic records.

    Every operation runs in its own short session, so single-record
    writes from concurrent coroutines never share transaction state.
    Returned records are detached ORM instances with all columns loaded.
    """

    def __init__(self, session_factory: Callable = SessionLocal):
        """Initialize record store.

        Args:
            session_factory: Callable returning a new SQLAlchemy session.
        """
        self._session_factory = session_factory
        self._subscriptions: Dict[Any, List[Subscription]] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, kind: RecordKind, record_id: str) -> Optional[Record]:
        """Get a record by id, or None if it is not stored."""
        model = _MODELS[kind]
        with self._session_factory() as db:
            return db.get(model, record_id)

    def list_all(self, kind: RecordKind) -> List[Record]:
        """List every record of a kind, oldest first."""
        return self.find(kind)

    def find(self, kind: RecordKind, **filters: Any) -> List[Record]:
        """List records of a kind whose columns equal the given values.

        Args:
            kind: Record collection to query.
            **filters: Column name to value equality filters.

        Returns:
            Matching records.

        Raises:
            ValueError: If a filter names an unknown column.
        """
        model = _MODELS[kind]
        with self._session_factory() as db:
            query = db.query(model)
            for column, value in filters.items():
                if not hasattr(model, column):
                    raise ValueError(f"Unknown {kind.value} record field: {column}")
                query = query.filter(getattr(model, column) == value)
            if kind == RecordKind.ACCESS:
                query = query.order_by(AccessRecord.created_at, AccessRecord.id)
            else:
                query = query.order_by(DiagnosticRecord.timestamp, DiagnosticRecord.id)
            return query.all()

    def list_unsynced(self, kind: RecordKind) -> List[Record]:
        """List all records of a kind that the remote API has not confirmed."""
        return self.find(kind, synced=False)

    def count_unsynced(self, kind: RecordKind) -> int:
        """Count records of a kind that are still waiting to sync."""
        model = _MODELS[kind]
        with self._session_factory() as db:
            return db.query(model).filter(model.synced == False).count()  # noqa: E712

    def find_access_by_status(self, status: str) -> List[AccessRecord]:
        """List access records in the given status."""
        _validate_status(status)
        return self.find(RecordKind.ACCESS, status=status)

    def find_diagnostics_by_door(self, door_id: str) -> List[DiagnosticRecord]:
        """List diagnostic records captured at a door."""
        return self.find(RecordKind.DIAGNOSTIC, door_id=door_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, kind: RecordKind, record: Union[Record, Dict[str, Any]]) -> Record:
        """Insert a record and return the stored copy.

        Args:
            kind: Record collection to write to.
            record: Model instance or a dict of column values.

        Returns:
            The stored record.

        Raises:
            DuplicateRecordError: If a record with the same id already exists.
            ValueError: If the record is invalid.
        """
        stored = self._insert_one(kind, record)
        logger.debug(f"Inserted {kind.value} record {stored.id}")
        self._notify(kind, stored.id)
        return stored

    def bulk_insert(self, kind: RecordKind, records: Iterable[Union[Record, Dict[str, Any]]]) -> List[Record]:
        """Insert several records, stopping at the first invalid one."""
        stored = []
        try:
            for record in records:
                stored.append(self._insert_one(kind, record))
        finally:
            if stored:
                self._notify(kind, *[r.id for r in stored])
        return stored

    def update(self, kind: RecordKind, record_id: str, **changes: Any) -> Record:
        """Apply column changes to a stored record.

        Args:
            kind: Record collection.
            record_id: Id of the record to change.
            **changes: Column name to new value.

        Returns:
            The updated record.

        Raises:
            RecordNotFoundError: If no record has this id.
            ValueError: If a change names an unknown column, changes the id,
                or sets an invalid access status.
        """
        model = _MODELS[kind]
        if "id" in changes and changes["id"] != record_id:
            raise ValueError("Record id cannot be changed")
        if kind == RecordKind.ACCESS and "status" in changes:
            _validate_status(changes["status"])

        with self._session_factory() as db:
            record = db.get(model, record_id)
            if record is None:
                raise RecordNotFoundError(f"{kind.value} record {record_id} not found")
            for column, value in changes.items():
                if not hasattr(model, column):
                    raise ValueError(f"Unknown {kind.value} record field: {column}")
                setattr(record, column, value)
            db.commit()
            db.refresh(record)

        self._notify(kind, record_id)
        return record

    def mark_as_synced(self, kind: RecordKind, record_id: str) -> Record:
        """Flag a record as accepted by the remote API."""
        return self.update(kind, record_id, synced=True)

    def delete(self, kind: RecordKind, record_id: str) -> bool:
        """Delete a record.

        Returns:
            True if a record was removed, False if it was not found.
        """
        model = _MODELS[kind]
        with self._session_factory() as db:
            record = db.get(model, record_id)
            if record is None:
                return False
            db.delete(record)
            db.commit()

        logger.debug(f"Deleted {kind.value} record {record_id}")
        self._notify(kind, record_id)
        return True

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, kind: RecordKind, callback: Callable[[List[Record]], Any]) -> Subscription:
        """Watch a whole collection.

        The callback receives the full current collection right away and
        again after every mutation of that kind.
        """
        subscription = self._add_subscription(kind, callback)
        self._deliver(subscription, self.list_all(kind))
        return subscription

    def subscribe_record(
        self,
        kind: RecordKind,
        record_id: str,
        callback: Callable[[Optional[Record]], Any]
    ) -> Subscription:
        """Watch one record. The callback receives None once it is deleted."""
        subscription = self._add_subscription((kind, record_id), callback)
        self._deliver(subscription, self.get(kind, record_id))
        return subscription

    def _add_subscription(self, key: Any, callback: Callable) -> Subscription:
        subscription = Subscription(self, key, callback)
        self._subscriptions.setdefault(key, []).append(subscription)
        return subscription

    def _remove_subscription(self, key: Any, subscription: Subscription) -> None:
        subscribers = self._subscriptions.get(key, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscriptions.pop(key, None)

    def _notify(self, kind: RecordKind, *record_ids: str) -> None:
        collection_subs = list(self._subscriptions.get(kind, []))
        if collection_subs:
            snapshot = self.list_all(kind)
            for subscription in collection_subs:
                self._deliver(subscription, snapshot)

        for record_id in record_ids:
            record_subs = list(self._subscriptions.get((kind, record_id), []))
            if record_subs:
                current = self.get(kind, record_id)
                for subscription in record_subs:
                    self._deliver(subscription, current)

    @staticmethod
    def _deliver(subscription: Subscription, payload: Any) -> None:
        if not subscription.active:
            return
        try:
            subscription._callback(payload)
        except Exception as e:
            logger.error(f"Record subscriber failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _insert_one(self, kind: RecordKind, record: Union[Record, Dict[str, Any]]) -> Record:
        model = _MODELS[kind]
        if isinstance(record, dict):
            record = model(**record)
        elif not isinstance(record, model):
            raise ValueError(f"Expected {model.__name__}, got {type(record).__name__}")

        if not record.id:
            raise ValueError(f"{kind.value} record requires an id")
        if record.synced is None:
            record.synced = False
        if kind == RecordKind.ACCESS:
            if record.status is None:
                record.status = "Pending"
            _validate_status(record.status)
            if record.created_at is None:
                record.created_at = datetime.utcnow()

        with self._session_factory() as db:
            if db.get(model, record.id) is not None:
                raise DuplicateRecordError(f"{kind.value} record {record.id} already exists")
            db.add(record)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise DuplicateRecordError(f"Could not insert {kind.value} record {record.id}: {e.orig}") from e
            db.refresh(record)
        return record


def _validate_status(status: str) -> None:
    if status not in ACCESS_STATUSES:
        raise ValueError(f"Invalid access status '{status}', expected one of {', '.join(ACCESS_STATUSES)}")
