"""Activity log API routes: single-record ingestion and history reads."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from pt_tracker.config import settings
from pt_tracker.database import get_db
from pt_tracker.deps import get_current_user
from pt_tracker.models.user import User
from pt_tracker.schemas.activity_log import LogOut, LogListOut
from pt_tracker.services import activity_log_service, ingestion_service
from pt_tracker.services.access_service import can_view_patient
from pt_tracker.services.ingestion_service import FailureKind, IngestionStatus

logger = logging.getLogger(__name__)
router = APIRouter()

FAILURE_STATUS = {
    FailureKind.validation: status.HTTP_400_BAD_REQUEST,
    FailureKind.forbidden: status.HTTP_403_FORBIDDEN,
    FailureKind.constraint: 422,
    FailureKind.unavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    FailureKind.persistence: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@router.post("/", response_model=LogOut, status_code=status.HTTP_201_CREATED)
def create_log(
    payload: Any = Body(...),
    caller: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Ingest one mutation record. 409 means it was already persisted."""
    outcome = ingestion_service.ingest_record(db, caller, payload)

    if outcome.status == IngestionStatus.duplicate:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Duplicate activity log (client_mutation_id already exists)",
                "client_mutation_id": outcome.client_mutation_id,
                "log_id": outcome.log_id,
            },
        )
    if outcome.status == IngestionStatus.failed:
        detail: dict[str, Any] = {"message": outcome.reason}
        if outcome.field:
            detail["field"] = outcome.field
        raise HTTPException(status_code=FAILURE_STATUS[outcome.kind], detail=detail)
    return outcome.log


@router.get("/", response_model=LogListOut)
def list_logs(
    patient_id: Optional[str] = Query(None, description="Defaults to the caller"),
    days: int = Query(settings.LOG_HISTORY_DAYS, ge=1),
    caller: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Recent activity logs with sets, newest first."""
    patient_id = patient_id or caller.id
    if not can_view_patient(db, caller, patient_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot access this patient's logs")

    since = datetime.now(timezone.utc) - timedelta(days=days)
    logs = activity_log_service.list_logs(db, patient_id, since=since)
    return LogListOut(logs=logs, count=len(logs))


@router.get("/{log_id}", response_model=LogOut)
def get_log(log_id: str, caller: User = Depends(get_current_user), db: Session = Depends(get_db)):
    log = activity_log_service.get_log(db, log_id)
    if not log or not can_view_patient(db, caller, log.patient_id):
        raise HTTPException(status_code=404, detail="Activity log not found")
    return log
