"""Mutation audit ledger: best-effort, append-only trail of ingestion attempts.

Entries are written in their own session, separate from the transaction that
persisted (or failed to persist) the activity log, so nothing here can change
the outcome reported to the caller.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

from pt_tracker.models.offline_mutation import OfflineMutation, MutationOutcome, MutationType

logger = logging.getLogger(__name__)


def record_attempt(
    bind: Engine | Connection,
    user_id: str,
    payload: Any,
    outcome: str,
    client_mutation_id: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Append one ledger row. Failures are logged and swallowed."""
    try:
        outcome = MutationOutcome(outcome)
        entry = OfflineMutation(
            user_id=user_id,
            mutation_type=MutationType.create_activity_log,
            client_mutation_id=client_mutation_id,
            mutation_payload=payload if payload is not None else {},
            outcome=outcome,
            processed_at=datetime.now(timezone.utc) if outcome != MutationOutcome.failed else None,
            processing_error=error,
        )
        with Session(bind=bind) as audit_db:
            audit_db.add(entry)
            audit_db.commit()
    except Exception:
        logger.exception("Audit ledger write failed for mutation %s (outcome %s)", client_mutation_id, outcome)


def list_attempts(db: Session, user_id: Optional[str] = None, limit: int = 100) -> list[OfflineMutation]:
    query = db.query(OfflineMutation)
    if user_id:
        query = query.filter(OfflineMutation.user_id == user_id)
    return query.order_by(OfflineMutation.created_at.desc()).limit(limit).all()
