"""Offline queue for activity-log mutation records.

Every record goes through the queue, online or not: it is written to the
local store first and only then offered to the server. Replay walks the
patient's entries in enqueue order and settles each one:

    pending -> in-flight -> delivered      (removed)
                         -> retry-pending  (kept, retries + 1)
                         -> abandoned      (removed, reported)

Duplicates are safe because the server is idempotent on client_mutation_id;
the queue itself does not deduplicate deliveries.
"""
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pt_tracker.client.store import QueueStore, QueuedMutation
from pt_tracker.client.transport import DeliveryResult, DeliveryStatus, IngestionTransport
from pt_tracker.config import ClientSettings
from pt_tracker.schemas.activity_log import MutationRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 1000
DEFAULT_MAX_RETRIES = 3
DEFAULT_FLUSH_INTERVAL = 60.0


@dataclass
class AbandonedRecord:
    client_mutation_id: str
    reason: str
    attempts: int


@dataclass
class ReplayReport:
    delivered: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    retrying: list[str] = field(default_factory=list)
    abandoned: list[AbandonedRecord] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.delivered) + len(self.duplicates)

    def summary(self) -> str:
        return (
            f"{self.succeeded} synced, {len(self.abandoned)} failed permanently, "
            f"{len(self.retrying)} will retry"
        )


def build_record(exercise_name: str, activity_type: str, sets: list[dict[str, Any]], **fields: Any) -> MutationRecord:
    """Build a new immutable record with a fresh client_mutation_id."""
    fields.setdefault("client_mutation_id", str(uuid.uuid4()))
    fields.setdefault("performed_at", datetime.now(timezone.utc))
    return MutationRecord(exercise_name=exercise_name, activity_type=activity_type, sets=sets, **fields)


class OfflineQueue:
    """Durable, per-patient queue of mutation records awaiting delivery."""

    def __init__(
        self,
        store: QueueStore,
        transport: IngestionTransport,
        patient_id: str,
        max_size: int = DEFAULT_MAX_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        online: bool = True,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
    ):
        self._store = store
        self._transport = transport
        self.patient_id = patient_id
        self.max_size = max_size
        self.max_retries = max_retries
        self.online = online
        self.flush_interval = flush_interval
        self._replay_lock = threading.Lock()

    @classmethod
    def from_settings(cls, patient_id: str, client_settings: Optional[ClientSettings] = None) -> "OfflineQueue":
        client_settings = client_settings or ClientSettings()
        return cls(
            store=QueueStore(client_settings.DB_PATH),
            transport=IngestionTransport.from_settings(patient_id, client_settings),
            patient_id=patient_id,
            max_size=client_settings.MAX_SIZE,
            max_retries=client_settings.MAX_RETRIES,
            flush_interval=client_settings.FLUSH_INTERVAL_SECONDS,
        )

    def enqueue(self, record: MutationRecord) -> str:
        """Persist a record locally. Raises QueueFullError / QueueStorageError, never drops it."""
        payload = record.model_dump(mode="json")
        if payload.get("client_created_at") is None:
            payload["client_created_at"] = datetime.now(timezone.utc).isoformat()
        entry = self._store.append(self.patient_id, record.client_mutation_id, payload, self.max_size)
        logger.info("Queued mutation %s for patient %s (seq %s)", record.client_mutation_id, self.patient_id, entry.seq)
        return record.client_mutation_id

    def submit(self, record: MutationRecord) -> ReplayReport:
        """Queue a record, then try to deliver it right away when online."""
        self.enqueue(record)
        if not self.online:
            logger.info("Offline; %d mutation(s) waiting", self.pending_count())
            return ReplayReport()
        return self.replay()

    def replay(self) -> ReplayReport:
        """Deliver queued records in enqueue order and settle each one."""
        report = ReplayReport()
        # flush_periodically and connectivity events may call in from different threads
        if not self._replay_lock.acquire(blocking=False):
            logger.debug("Replay already running for patient %s", self.patient_id)
            return report

        try:
            entries = self._store.pending(self.patient_id)
            if entries:
                logger.info("Replaying %d queued mutation(s) for patient %s", len(entries), self.patient_id)
            for entry in entries:
                result = self._transport.deliver(entry.payload)
                self._settle(entry, result, report)
        finally:
            self._replay_lock.release()

        if report.abandoned or report.retrying:
            logger.warning("Replay for patient %s: %s", self.patient_id, report.summary())
        elif report.succeeded:
            logger.info("Replay for patient %s: %s", self.patient_id, report.summary())
        return report

    def _settle(self, entry: QueuedMutation, result: DeliveryResult, report: ReplayReport) -> None:
        mutation_id = entry.client_mutation_id

        if result.delivered:
            self._store.remove(entry.seq)
            if result.status == DeliveryStatus.duplicate:
                report.duplicates.append(mutation_id)
            else:
                report.delivered.append(mutation_id)
            return

        if result.status == DeliveryStatus.rejected:
            self._store.remove(entry.seq)
            logger.error("Mutation %s rejected by server: %s", mutation_id, result.error)
            report.abandoned.append(AbandonedRecord(mutation_id, result.error or "rejected", entry.retries + 1))
            return

        retries = self._store.mark_retry(entry.seq, result.error)
        if retries >= self.max_retries:
            self._store.remove(entry.seq)
            logger.error("Max retries (%d) exceeded for mutation %s, discarding: %s",
                         self.max_retries, mutation_id, result.error)
            report.abandoned.append(AbandonedRecord(
                mutation_id, f"gave up after {retries} attempts: {result.error}", retries,
            ))
        else:
            report.retrying.append(mutation_id)

    def on_connectivity_change(self, online: bool) -> Optional[ReplayReport]:
        """Feed a connectivity event; coming back online triggers a replay."""
        was_online, self.online = self.online, online
        if online and not was_online:
            logger.info("Connection restored for patient %s", self.patient_id)
            return self.replay()
        if not online and was_online:
            logger.info("Connection lost for patient %s; %d mutation(s) pending", self.patient_id, self.pending_count())
        return None

    def pending_count(self) -> int:
        return self._store.count(self.patient_id)

    def clear(self) -> int:
        """Discard this patient's queue (sign-out)."""
        removed = self._store.clear(self.patient_id)
        logger.info("Cleared %d queued mutation(s) for patient %s", removed, self.patient_id)
        return removed

    def flush_periodically(self, stop_event: threading.Event, interval: Optional[float] = None) -> None:
        """Replay every ``interval`` seconds (default ``flush_interval``) while online, until ``stop_event`` is set."""
        interval = self.flush_interval if interval is None else interval
        while not stop_event.wait(interval):
            if self.online and self.pending_count():
                self.replay()

    def close(self) -> None:
        self._transport.close()
        self._store.close()
