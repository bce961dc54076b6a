"""Tests for the local record store."""

import pytest
from datetime import datetime
from unittest.mock import MagicMock

from gatesync.models import AccessRecord, DiagnosticRecord
from gatesync.services.record_store import (
    DuplicateRecordError,
    RecordKind,
    RecordNotFoundError,
)


def make_access(id="acc-1", **overrides):
    values = {
        "id": id,
        "status": "Entering",
        "user_name": "somchai",
        "subjects": ["delivery"],
        "organizations": ["ACME"],
        "vehicle_plate": "1AB-2345",
        "phone_number": "0800000000",
        "door_id": "door-3",
        "entry_time": datetime(2024, 5, 1, 8, 30),
        "attached_files": [{"category": "plate", "content": "aGVsbG8="}],
    }
    values.update(overrides)
    return values


def make_diagnostic(id="log-1", **overrides):
    values = {
        "id": id,
        "message": "Camera disconnected",
        "service_name": "CameraService",
        "error_kind": "DeviceError",
        "code": "CAM_001",
        "timestamp": datetime(2024, 5, 1, 9, 0),
        "door_id": "door-3",
    }
    values.update(overrides)
    return values


class TestInsert:
    """Tests for inserting records."""

    def test_insert_access_record_defaults(self, record_store):
        """Inserted access records start unsynced with a creation time."""
        record = record_store.insert(RecordKind.ACCESS, make_access())

        assert record.id == "acc-1"
        assert record.synced is False
        assert record.created_at is not None
        assert record.subjects == ["delivery"]
        assert record.attached_files[0]["category"] == "plate"

    def test_insert_accepts_model_instance(self, record_store):
        """A model instance can be inserted directly."""
        record = record_store.insert(
            RecordKind.DIAGNOSTIC,
            DiagnosticRecord(**make_diagnostic()),
        )

        assert record.synced is False
        assert record_store.get(RecordKind.DIAGNOSTIC, "log-1").message == "Camera disconnected"

    def test_insert_defaults_status_to_pending(self, record_store):
        """Access records without a status are pending."""
        values = make_access()
        del values["status"]

        record = record_store.insert(RecordKind.ACCESS, values)

        assert record.status == "Pending"

    def test_insert_duplicate_id_raises(self, record_store):
        """Inserting an existing id is a store error."""
        record_store.insert(RecordKind.ACCESS, make_access())

        with pytest.raises(DuplicateRecordError, match="already exists"):
            record_store.insert(RecordKind.ACCESS, make_access())

    def test_insert_invalid_status_raises(self, record_store):
        """Unknown access statuses are rejected."""
        with pytest.raises(ValueError, match="Invalid access status"):
            record_store.insert(RecordKind.ACCESS, make_access(status="IN"))

    def test_insert_wrong_model_raises(self, record_store):
        """A record of the other kind is rejected."""
        with pytest.raises(ValueError, match="Expected AccessRecord"):
            record_store.insert(RecordKind.ACCESS, DiagnosticRecord(**make_diagnostic()))

    def test_bulk_insert(self, record_store):
        """Bulk insert stores every record."""
        stored = record_store.bulk_insert(
            RecordKind.DIAGNOSTIC,
            [make_diagnostic("log-1"), make_diagnostic("log-2")],
        )

        assert [r.id for r in stored] == ["log-1", "log-2"]
        assert len(record_store.list_all(RecordKind.DIAGNOSTIC)) == 2


class TestQueries:
    """Tests for reading records."""

    def test_get_missing_returns_none(self, record_store):
        """Unknown ids read as None."""
        assert record_store.get(RecordKind.ACCESS, "nope") is None

    def test_list_unsynced_excludes_synced(self, record_store):
        """Only records without remote confirmation are unsynced."""
        record_store.insert(RecordKind.DIAGNOSTIC, make_diagnostic("log-1"))
        record_store.insert(RecordKind.DIAGNOSTIC, make_diagnostic("log-2", synced=True))

        unsynced = record_store.list_unsynced(RecordKind.DIAGNOSTIC)

        assert [r.id for r in unsynced] == ["log-1"]
        assert record_store.count_unsynced(RecordKind.DIAGNOSTIC) == 1

    def test_find_access_by_status(self, record_store):
        """Access records can be listed by status."""
        record_store.insert(RecordKind.ACCESS, make_access("acc-1", status="Entering"))
        record_store.insert(RecordKind.ACCESS, make_access("acc-2", status="Exiting"))

        exiting = record_store.find_access_by_status("Exiting")

        assert [r.id for r in exiting] == ["acc-2"]

    def test_find_diagnostics_by_door(self, record_store):
        """Diagnostics can be listed by door."""
        record_store.insert(RecordKind.DIAGNOSTIC, make_diagnostic("log-1", door_id="door-1"))
        record_store.insert(RecordKind.DIAGNOSTIC, make_diagnostic("log-2", door_id="door-2"))

        assert [r.id for r in record_store.find_diagnostics_by_door("door-2")] == ["log-2"]

    def test_find_unknown_field_raises(self, record_store):
        """Filtering on a missing column is an error."""
        with pytest.raises(ValueError, match="Unknown"):
            record_store.find(RecordKind.ACCESS, colour="red")


class TestUpdateAndDelete:
    """Tests for changing and removing records."""

    def test_update_status(self, record_store):
        """Status transitions are persisted."""
        record_store.insert(RecordKind.ACCESS, make_access())

        updated = record_store.update(RecordKind.ACCESS, "acc-1", status="Exiting")

        assert updated.status == "Exiting"
        assert record_store.get(RecordKind.ACCESS, "acc-1").status == "Exiting"

    def test_update_missing_raises(self, record_store):
        """Updating an unknown id raises RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError):
            record_store.update(RecordKind.ACCESS, "nope", status="Exiting")

    def test_update_invalid_status_raises(self, record_store):
        """Updates cannot leave the status enum."""
        record_store.insert(RecordKind.ACCESS, make_access())

        with pytest.raises(ValueError):
            record_store.update(RecordKind.ACCESS, "acc-1", status="Gone")

    def test_mark_as_synced(self, record_store):
        """Marking a record synced removes it from the unsynced set."""
        record_store.insert(RecordKind.ACCESS, make_access())

        record_store.mark_as_synced(RecordKind.ACCESS, "acc-1")

        assert record_store.list_unsynced(RecordKind.ACCESS) == []

    def test_delete(self, record_store):
        """Delete reports whether a record was removed."""
        record_store.insert(RecordKind.DIAGNOSTIC, make_diagnostic())

        assert record_store.delete(RecordKind.DIAGNOSTIC, "log-1") is True
        assert record_store.delete(RecordKind.DIAGNOSTIC, "log-1") is False
        assert record_store.get(RecordKind.DIAGNOSTIC, "log-1") is None


class TestSubscriptions:
    """Tests for change subscriptions."""

    def test_subscribe_receives_snapshot_on_each_mutation(self, record_store):
        """Subscribers get the full collection now and after every change."""
        snapshots = []
        record_store.subscribe(RecordKind.DIAGNOSTIC, lambda logs: snapshots.append([l.id for l in logs]))

        record_store.insert(RecordKind.DIAGNOSTIC, make_diagnostic("log-1"))
        record_store.insert(RecordKind.DIAGNOSTIC, make_diagnostic("log-2"))
        record_store.delete(RecordKind.DIAGNOSTIC, "log-1")

        assert snapshots == [[], ["log-1"], ["log-1", "log-2"], ["log-2"]]

    def test_subscriptions_are_per_kind(self, record_store):
        """Access mutations do not notify diagnostic subscribers."""
        callback = MagicMock()
        record_store.subscribe(RecordKind.DIAGNOSTIC, callback)
        callback.reset_mock()

        record_store.insert(RecordKind.ACCESS, make_access())

        callback.assert_not_called()

    def test_unsubscribe_stops_delivery(self, record_store):
        """An unsubscribed callback receives nothing more."""
        callback = MagicMock()
        subscription = record_store.subscribe(RecordKind.ACCESS, callback)
        subscription.unsubscribe()
        subscription.unsubscribe()

        record_store.insert(RecordKind.ACCESS, make_access())

        assert callback.call_count == 1
        assert subscription.active is False

    def test_subscribe_record(self, record_store):
        """Single-record subscribers see updates and then None on delete."""
        record_store.insert(RecordKind.ACCESS, make_access())
        seen = []
        record_store.subscribe_record(
            RecordKind.ACCESS, "acc-1",
            lambda record: seen.append(record.status if record else None),
        )

        record_store.update(RecordKind.ACCESS, "acc-1", status="Exiting")
        record_store.delete(RecordKind.ACCESS, "acc-1")

        assert seen == ["Entering", "Exiting", None]

    def test_failing_subscriber_does_not_break_writes(self, record_store):
        """A subscriber raising does not undo or block the mutation."""
        record_store.subscribe(RecordKind.ACCESS, MagicMock(side_effect=[None, RuntimeError("ui gone")]))

        record_store.insert(RecordKind.ACCESS, make_access())

        assert record_store.get(RecordKind.ACCESS, "acc-1") is not None
