"""Sync service reconciling locally pending records with the remote API."""

import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4
from sqlalchemy.orm import Session

from gatesync.config import settings
from gatesync.models.access_record import AccessRecord
from gatesync.models.diagnostic_record import DiagnosticRecord
from gatesync.models.sync_run import SyncRun
from gatesync.services.connectivity import ConnectivityMonitor
from gatesync.services.error_classifier import (
    classify_sync_error,
    describe_sync_error,
    error_code_for,
)
from gatesync.services.record_store import RecordKind, RecordStore
from gatesync.services.remote_gateway import RemoteGateway, access_payload, diagnostic_payload

logger = logging.getLogger(__name__)

SERVICE_NAME = "Orchestrator"
NO_DOOR = "N/A"


@dataclass
class SyncTickResult:
    """Outcome counts of one sync tick."""

    kind: str
    skipped_offline: bool = False
    attempted: int = 0
    synced: int = 0
    failed: int = 0
    diagnostics_created: int = 0
    diagnostics_deduplicated: int = 0
    sync_run_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_timestamp(value: Any) -> str:
    """Return ``value`` as an ISO 8601 string, or the current time if it is unusable.

    Accepts datetimes, ISO strings and epoch milliseconds. Anything missing
    or unparsable becomes ``datetime.utcnow()`` so a bad timestamp never
    blocks a send.
    """
    try:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, bool) or value is None or value == "":
            raise ValueError("no timestamp")
        if isinstance(value, (int, float)):
            return datetime.utcfromtimestamp(value / 1000).isoformat()
        if isinstance(value, str):
            return datetime.fromisoformat(value.replace("Z", "+00:00")).isoformat()
        raise ValueError(f"unsupported timestamp type {type(value).__name__}")
    except (ValueError, TypeError, OverflowError, OSError):
        if value not in (None, ""):
            logger.warning(f"Invalid timestamp, using current time: {value!r}")
        return datetime.utcnow().isoformat()


class SyncService:
    """Service for pushing unsynced local records to the remote API.

    Each tick is gated on connectivity, sends every pending record
    independently with bounded concurrency, and turns failures into
    deduplicated diagnostic records.
    """

    def __init__(
        self,
        record_store: RecordStore,
        connectivity: ConnectivityMonitor,
        gateway_factory: Callable[[], RemoteGateway] = RemoteGateway,
        session_factory: Optional[Callable[[], Session]] = None,
        max_concurrency: Optional[int] = None,
        access_on_success: Optional[str] = None
    ):
        """Initialize sync service.

        Args:
            record_store: Local record store.
            connectivity: Connectivity monitor gating each tick.
            gateway_factory: Callable returning a RemoteGateway context manager.
            session_factory: Session factory for sync run history (optional).
            max_concurrency: Max gateway calls in flight per tick.
            access_on_success: "mark_synced" or "delete" for synced access records.
        """
        self.record_store = record_store
        self.connectivity = connectivity
        self.gateway_factory = gateway_factory
        self.session_factory = session_factory
        self.max_concurrency = max_concurrency or settings.sync_max_concurrency
        self.access_on_success = access_on_success or settings.access_sync_on_success
        self._in_flight: Dict[str, int] = {"diagnostic": 0, "access": 0}
        self._detach: Optional[Callable[[], None]] = None
        self._reconnect_tasks: set = set()

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def run_sync_tick(self) -> SyncTickResult:
        """Push every unsynced diagnostic record to the remote API.

        Sent records are deleted locally. Failed sends stay in the store
        and are described by a new diagnostic unless an unsynced one with
        the same kind, code and service already exists.

        Returns:
            SyncTickResult with the tick's counts.

        Raises:
            Exception: Whatever the record store raises while listing records.
        """
        result = SyncTickResult(kind="diagnostic")
        if not self.connectivity.is_online():
            logger.info("Offline, skipping diagnostic sync")
            result.skipped_offline = True
            return result

        logs = self.record_store.list_unsynced(RecordKind.DIAGNOSTIC)
        logger.info(f"Syncing {len(logs)} unsynced diagnostic records...")
        if not logs:
            return result

        await self._run(result, logs, self._sync_diagnostic)
        return result

    async def run_access_sync_tick(self) -> SyncTickResult:
        """Push every unsynced access record to the remote API.

        Same gate, concurrency bound and failure handling as
        :meth:`run_sync_tick`. Sent records are marked synced, or deleted
        when the service is configured with ``access_on_success="delete"``.
        """
        result = SyncTickResult(kind="access")
        if not self.connectivity.is_online():
            logger.info("Offline, skipping access record sync")
            result.skipped_offline = True
            return result

        records = self.record_store.list_unsynced(RecordKind.ACCESS)
        logger.info(f"Syncing {len(records)} unsynced access records...")
        if not records:
            return result

        await self._run(result, records, self._sync_access_record)
        return result

    async def _run(self, result: SyncTickResult, records: List[Any], send: Callable) -> None:
        sync_run = self._start_run(result.kind)
        self._in_flight[result.kind] += 1
        error_message = None
        try:
            semaphore = asyncio.Semaphore(self.max_concurrency)
            async with self.gateway_factory() as gateway:
                outcomes = await asyncio.gather(
                    *(send(gateway, semaphore, record, result) for record in records),
                    return_exceptions=True
                )
            # Send failures are handled per record; anything left is a store error
            errors = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
            if errors:
                if len(errors) > 1:
                    logger.error(f"{len(errors)} local store errors during {result.kind} sync")
                raise errors[0]
        except Exception as e:
            error_message = str(e)
            raise
        finally:
            self._in_flight[result.kind] -= 1
            self._finish_run(sync_run, result, error_message)

        logger.info(
            f"{result.kind.capitalize()} sync finished: {result.synced}/{result.attempted} synced, "
            f"{result.failed} failed, {result.diagnostics_created} diagnostics recorded"
        )

    async def _sync_diagnostic(
        self,
        gateway: RemoteGateway,
        semaphore: asyncio.Semaphore,
        log: DiagnosticRecord,
        result: SyncTickResult
    ) -> None:
        payload = diagnostic_payload(log, normalize_timestamp(log.timestamp))
        result.attempted += 1
        logger.debug(f"Sending diagnostic {log.id} to remote API")

        try:
            async with semaphore:
                response = await gateway.create_diagnostic(payload)
        except Exception as e:
            logger.error(f"Failed to sync diagnostic {log.id}: {e}")
            result.failed += 1
            self._record_failure(e, log.door_id, result)
            return

        logger.debug(f"Diagnostic {log.id} synced: {response}")
        self.record_store.delete(RecordKind.DIAGNOSTIC, log.id)
        result.synced += 1

    async def _sync_access_record(
        self,
        gateway: RemoteGateway,
        semaphore: asyncio.Semaphore,
        record: AccessRecord,
        result: SyncTickResult
    ) -> None:
        result.attempted += 1
        logger.debug(f"Sending access record {record.id} to remote API")

        try:
            payload = access_payload(record)
            async with semaphore:
                response = await gateway.create_access_record(payload)
        except Exception as e:
            logger.error(f"Failed to sync access record {record.id}: {e}")
            result.failed += 1
            self._record_failure(e, record.door_id, result)
            return

        logger.debug(f"Access record {record.id} synced: {response}")
        if self.access_on_success == "delete":
            self.record_store.delete(RecordKind.ACCESS, record.id)
        elif self.record_store.get(RecordKind.ACCESS, record.id) is not None:
            self.record_store.mark_as_synced(RecordKind.ACCESS, record.id)
        result.synced += 1

    def _record_failure(self, error: BaseException, door_id: Optional[str], result: SyncTickResult) -> None:
        """Store a diagnostic describing a failed send, unless one is already pending."""
        error_kind = classify_sync_error(error, online=self.connectivity.is_online())
        code = error_code_for(error_kind)

        if self._has_similar_error(error_kind.value, code, SERVICE_NAME):
            logger.info(f"Similar error already logged, skipping duplicate: {error_kind.value}")
            result.diagnostics_deduplicated += 1
            return

        now = datetime.utcnow()
        self.record_store.insert(RecordKind.DIAGNOSTIC, DiagnosticRecord(
            id=f"sync-error-{error_kind.value.lower()}-{int(now.timestamp() * 1000)}-{uuid4().hex[:6]}",
            message=describe_sync_error(error, error_kind),
            service_name=SERVICE_NAME,
            error_kind=error_kind.value,
            code=code,
            timestamp=now,
            door_id=door_id or NO_DOOR,
            synced=False,
        ))
        result.diagnostics_created += 1
        logger.info(f"New sync error diagnostic created: {error_kind.value}")

    def _has_similar_error(self, error_kind: str, code: str, service_name: str) -> bool:
        return any(
            log.error_kind == error_kind and log.code == code and log.service_name == service_name
            for log in self.record_store.list_unsynced(RecordKind.DIAGNOSTIC)
        )

    # ------------------------------------------------------------------
    # Reconnect
    # ------------------------------------------------------------------

    def attach(self, connectivity: Optional[ConnectivityMonitor] = None) -> None:
        """Run a diagnostic tick whenever the connection comes back."""
        if self._detach:
            self._detach()
        self._detach = (connectivity or self.connectivity).on_change(self._on_connectivity_change)

    def detach(self) -> None:
        if self._detach:
            self._detach()
            self._detach = None

    def _on_connectivity_change(self, online: bool) -> None:
        if not online:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Back online but no event loop is running, sync deferred to next tick")
            return

        logger.info("Back online, starting diagnostic sync")
        task = loop.create_task(self._sync_after_reconnect())
        self._reconnect_tasks.add(task)
        task.add_done_callback(self._reconnect_tasks.discard)

    async def _sync_after_reconnect(self) -> None:
        try:
            await self.run_sync_tick()
        except Exception as e:
            logger.error(f"Sync after reconnect failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _start_run(self, kind: str) -> Optional[int]:
        if self.session_factory is None:
            return None
        with self.session_factory() as db:
            sync_run = SyncRun(kind=kind, status="in_progress", started_at=datetime.utcnow())
            db.add(sync_run)
            db.commit()
            return sync_run.id

    def _finish_run(self, sync_run_id: Optional[int], result: SyncTickResult, error_message: Optional[str]) -> None:
        if sync_run_id is None:
            return
        result.sync_run_id = sync_run_id

        if error_message is not None:
            status = "failed"
        elif result.failed == 0:
            status = "success"
        elif result.synced == 0:
            status = "failed"
        else:
            status = "partial"

        with self.session_factory() as db:
            sync_run = db.get(SyncRun, sync_run_id)
            if sync_run is None:
                return
            sync_run.status = status
            sync_run.completed_at = datetime.utcnow()
            sync_run.attempted = result.attempted
            sync_run.synced = result.synced
            sync_run.failed = result.failed
            sync_run.error_message = error_message
            sync_run.changes_summary = self._build_changes_summary(result)
            db.commit()

    def _build_changes_summary(self, result: SyncTickResult) -> str:
        """Build a human-readable summary of a sync tick."""
        summary_parts = [f"{result.synced} of {result.attempted} {result.kind} records synced"]

        if result.failed:
            summary_parts.append(f"{result.failed} failed")
        if result.diagnostics_created:
            summary_parts.append(f"{result.diagnostics_created} diagnostics recorded")
        if result.diagnostics_deduplicated:
            summary_parts.append(f"{result.diagnostics_deduplicated} duplicate diagnostics skipped")

        return "; ".join(summary_parts)

    def is_sync_in_progress(self) -> bool:
        """Check if any sync tick is currently running."""
        return any(count > 0 for count in self._in_flight.values())

    def get_sync_status(self) -> Dict[str, Any]:
        """Get connectivity, backlog and in-flight tick information."""
        return {
            "online": self.connectivity.is_online(),
            "in_progress": self.is_sync_in_progress(),
            "running_ticks": dict(self._in_flight),
            "unsynced_diagnostics": self.record_store.count_unsynced(RecordKind.DIAGNOSTIC),
            "unsynced_access_records": self.record_store.count_unsynced(RecordKind.ACCESS),
        }

    def get_sync_history(
        self,
        db: Session,
        limit: int = 10,
        offset: int = 0
    ) -> List[SyncRun]:
        """Get history of past sync ticks, most recent first."""
        return db.query(SyncRun).order_by(
            SyncRun.started_at.desc(), SyncRun.id.desc()
        ).limit(limit).offset(offset).all()

    def get_sync_run(self, db: Session, sync_run_id: int) -> Optional[SyncRun]:
        """Get a specific sync run by ID."""
        return db.query(SyncRun).filter(SyncRun.id == sync_run_id).first()
