"""Audit ledger debug route: admin only, never on the ingestion path."""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pt_tracker.database import get_db
from pt_tracker.deps import require_admin
from pt_tracker.models.user import User
from pt_tracker.schemas.audit import OfflineMutationOut
from pt_tracker.services import audit_service

router = APIRouter()


@router.get("/", response_model=list[OfflineMutationOut])
def list_mutations(
    user_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return audit_service.list_attempts(db, user_id=user_id, limit=limit)
