"""Atomic activity-log persistence.

Responsibilities:
- Idempotency on (patient_id, client_mutation_id), checked inside the same
  transaction that performs the insert
- Three-table write (log, sets, per-set form data) as one all-or-nothing unit
- Form data bound to its own set row, never matched by array position
- Classification of store errors into constraint vs. unavailable failures

No retries happen here. Retrying is the device queue's job, which is safe
because this operation is idempotent on client_mutation_id.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from pt_tracker.models.activity_log import ActivityLog, ActivitySet, ActivitySetFormData
from pt_tracker.schemas.activity_log import MutationRecord

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """The store rejected or could not complete the write."""

    kind = "persistence"


class ConstraintViolation(PersistenceError):
    """Referential or check constraint failure; retrying cannot succeed."""

    kind = "constraint"


class StoreUnavailable(PersistenceError):
    """Connectivity loss or timeout mid-transaction; safe to retry."""

    kind = "unavailable"


@dataclass
class PersistResult:
    log_id: str
    duplicate: bool
    log: Optional[ActivityLog] = None


def find_log_by_mutation(db: Session, patient_id: str, client_mutation_id: str) -> Optional[ActivityLog]:
    return db.query(ActivityLog).filter(
        ActivityLog.patient_id == patient_id,
        ActivityLog.client_mutation_id == client_mutation_id,
    ).first()


def _build_log(patient_id: str, record: MutationRecord, received_at: datetime) -> ActivityLog:
    log = ActivityLog(
        patient_id=patient_id,
        exercise_id=record.exercise_id,
        exercise_name=record.exercise_name,
        client_mutation_id=record.client_mutation_id,
        activity_type=record.activity_type,
        notes=record.notes,
        performed_at=record.performed_at,
        client_created_at=record.client_created_at or received_at,
    )
    for entry in sorted(record.sets, key=lambda s: s.set_number):
        set_row = ActivitySet(
            set_number=entry.set_number,
            reps=entry.reps,
            seconds=entry.seconds,
            distance_feet=entry.distance_feet,
            side=entry.side,
            manual_log=entry.manual_log,
            partial_rep=entry.partial_rep,
            performed_at=entry.performed_at or record.performed_at,
        )
        # null and [] both mean "no parameters for this set"
        for param in entry.form_data or []:
            set_row.form_data.append(ActivitySetFormData(
                parameter_name=param.parameter_name,
                parameter_value=param.parameter_value,
                parameter_unit=param.parameter_unit,
            ))
        log.sets.append(set_row)
    return log


def create_activity_log(db: Session, patient_id: str, record: MutationRecord) -> PersistResult:
    """Persist one validated record, or report it as a duplicate.

    The lookup and the insert share a transaction. A concurrent request that
    inserts the same key between the two trips the unique constraint on
    (patient_id, client_mutation_id); the rollback then re-checks and the
    loser reports ``duplicate`` instead of an error.
    """
    received_at = datetime.now(timezone.utc)
    try:
        existing = find_log_by_mutation(db, patient_id, record.client_mutation_id)
        if existing is not None:
            log_id = existing.id
            db.rollback()
            logger.info("Duplicate mutation %s for patient %s (log %s)", record.client_mutation_id, patient_id, log_id)
            return PersistResult(log_id=log_id, duplicate=True)

        log = _build_log(patient_id, record, received_at)
        db.add(log)
        db.flush()
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        existing_id = _recheck_after_conflict(db, patient_id, record.client_mutation_id)
        if existing_id is not None:
            logger.info("Mutation %s lost an insert race; reporting duplicate", record.client_mutation_id)
            return PersistResult(log_id=existing_id, duplicate=True)
        logger.warning("Constraint violation persisting mutation %s: %s", record.client_mutation_id, exc.orig)
        raise ConstraintViolation(str(exc.orig)) from exc
    except OperationalError as exc:
        db.rollback()
        logger.warning("Store unavailable persisting mutation %s: %s", record.client_mutation_id, exc.orig)
        raise StoreUnavailable(str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to persist mutation %s: %s", record.client_mutation_id, exc)
        raise PersistenceError(str(exc)) from exc

    db.refresh(log)
    logger.info(
        "Persisted activity log %s (%s, %d sets) for patient %s",
        log.id, record.client_mutation_id, len(record.sets), patient_id,
    )
    return PersistResult(log_id=log.id, duplicate=False, log=log)


def _recheck_after_conflict(db: Session, patient_id: str, client_mutation_id: str) -> Optional[str]:
    try:
        existing = find_log_by_mutation(db, patient_id, client_mutation_id)
        log_id = existing.id if existing is not None else None
        db.rollback()
        return log_id
    except OperationalError as exc:
        db.rollback()
        raise StoreUnavailable(str(exc.orig)) from exc


def _with_children(query):
    return query.options(selectinload(ActivityLog.sets).selectinload(ActivitySet.form_data))


def list_logs(db: Session, patient_id: str, since: Optional[datetime] = None) -> list[ActivityLog]:
    """Recent logs for a patient, newest first, sets and form data loaded."""
    query = _with_children(db.query(ActivityLog)).filter(ActivityLog.patient_id == patient_id)
    if since is not None:
        query = query.filter(ActivityLog.performed_at >= since)
    return query.order_by(ActivityLog.performed_at.desc()).all()


def get_log(db: Session, log_id: str) -> Optional[ActivityLog]:
    return _with_children(db.query(ActivityLog)).filter(ActivityLog.id == log_id).first()
