"""Ingestion of activity-log mutation records.

One contract for both paths into the store: a direct online submission and
an offline-queue replay batch. Each record is validated, mapped to the
patient it belongs to, handed to the atomic persistence operation, and
reported as persisted, duplicate or failed. Every attempt is appended to
the audit ledger afterwards.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from pt_tracker.models.activity_log import ActivityLog
from pt_tracker.models.offline_mutation import MutationType
from pt_tracker.models.user import User
from pt_tracker.schemas.activity_log import MutationRecord
from pt_tracker.services import audit_service
from pt_tracker.services.access_service import SubmissionForbidden, resolve_submitting_patient
from pt_tracker.services.activity_log_service import PersistenceError, create_activity_log

logger = logging.getLogger(__name__)


class IngestionStatus(str, enum.Enum):
    persisted = "persisted"
    duplicate = "duplicate"
    failed = "failed"


class FailureKind(str, enum.Enum):
    validation = "validation"
    forbidden = "forbidden"
    constraint = "constraint"
    unavailable = "unavailable"
    persistence = "persistence"
    unsupported = "unsupported"


class RecordValidationError(Exception):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


@dataclass
class IngestionOutcome:
    status: IngestionStatus
    client_mutation_id: Optional[str] = None
    log_id: Optional[str] = None
    log: Optional[ActivityLog] = None
    reason: Optional[str] = None
    kind: Optional[FailureKind] = None
    field: Optional[str] = None

    @property
    def ok(self) -> bool:
        """Duplicates count as success for the caller."""
        return self.status != IngestionStatus.failed


def _describe(exc: ValidationError) -> tuple[str, str]:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error["loc"]) or "sets"
    message = error["msg"]
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{field}: {message}", field


def validate_record(raw: Any) -> MutationRecord:
    """Validate a raw JSON body into a MutationRecord, or raise with a field-level reason."""
    if not isinstance(raw, dict):
        raise RecordValidationError("Request body must be a JSON object")
    try:
        return MutationRecord.model_validate(raw)
    except ValidationError as exc:
        message, field = _describe(exc)
        raise RecordValidationError(message, field) from exc


def _mutation_id_of(raw: Any) -> Optional[str]:
    if isinstance(raw, dict):
        value = raw.get("client_mutation_id")
        return str(value) if value is not None else None
    return None


def ingest_record(db: Session, caller: User, raw: Any) -> IngestionOutcome:
    """Ingest one raw record. Never raises for record-level problems."""
    caller_id = caller.id  # read before any rollback expires the row
    client_mutation_id = _mutation_id_of(raw)
    try:
        record = validate_record(raw)
        patient_id = resolve_submitting_patient(db, caller, record.patient_id)
        result = create_activity_log(db, patient_id, record)
    except RecordValidationError as exc:
        outcome = IngestionOutcome(
            status=IngestionStatus.failed, client_mutation_id=client_mutation_id,
            reason=exc.message, kind=FailureKind.validation, field=exc.field,
        )
    except SubmissionForbidden as exc:
        outcome = IngestionOutcome(
            status=IngestionStatus.failed, client_mutation_id=client_mutation_id,
            reason=str(exc), kind=FailureKind.forbidden,
        )
    except PersistenceError as exc:
        outcome = IngestionOutcome(
            status=IngestionStatus.failed, client_mutation_id=client_mutation_id,
            reason=str(exc), kind=FailureKind(exc.kind),
        )
    except SQLAlchemyError as exc:
        # raised by the patient lookup, before the persistence operation runs
        db.rollback()
        kind = FailureKind.unavailable if isinstance(exc, OperationalError) else FailureKind.persistence
        logger.warning("Store error resolving patient for mutation %s: %s", client_mutation_id, exc)
        outcome = IngestionOutcome(
            status=IngestionStatus.failed, client_mutation_id=client_mutation_id,
            reason=str(getattr(exc, "orig", None) or exc), kind=kind,
        )
    else:
        outcome = IngestionOutcome(
            status=IngestionStatus.duplicate if result.duplicate else IngestionStatus.persisted,
            client_mutation_id=record.client_mutation_id,
            log_id=result.log_id,
            log=result.log,
        )

    if outcome.status == IngestionStatus.failed:
        logger.info("Mutation %s from user %s failed (%s): %s",
                    client_mutation_id, caller_id, outcome.kind.value, outcome.reason)

    audit_service.record_attempt(
        db.get_bind(),
        user_id=caller_id,
        payload=raw,
        outcome=outcome.status.value,
        client_mutation_id=client_mutation_id,
        error=outcome.reason,
    )
    return outcome


def ingest_batch(db: Session, caller: User, items: list[Any]) -> list[IngestionOutcome]:
    """Ingest queued items independently, in order; one failure never stops the rest.

    Each item is an envelope ``{"operation": ..., "payload": {...}}``.
    """
    outcomes = []
    for item in items:
        if not isinstance(item, dict) or not item.get("operation") or item.get("payload") is None:
            outcomes.append(IngestionOutcome(
                status=IngestionStatus.failed,
                client_mutation_id=_mutation_id_of(item.get("payload") if isinstance(item, dict) else None),
                reason="Missing operation or payload",
                kind=FailureKind.validation,
            ))
            continue
        if item["operation"] != MutationType.create_activity_log.value:
            logger.warning("Unsupported sync operation %r from user %s", item["operation"], caller.id)
            outcomes.append(IngestionOutcome(
                status=IngestionStatus.failed,
                client_mutation_id=_mutation_id_of(item["payload"]),
                reason=f"Unsupported operation: {item['operation']}",
                kind=FailureKind.unsupported,
            ))
            continue
        outcomes.append(ingest_record(db, caller, item["payload"]))

    failed = sum(1 for o in outcomes if not o.ok)
    logger.info("Sync batch from user %s: %d items, %d failed", caller.id, len(outcomes), failed)
    return outcomes
