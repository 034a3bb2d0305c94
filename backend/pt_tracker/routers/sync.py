"""Offline queue sync route: batch ingestion with per-item outcomes."""
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from pt_tracker.config import settings
from pt_tracker.database import get_db
from pt_tracker.deps import get_current_user
from pt_tracker.models.user import User
from pt_tracker.schemas.sync import SyncItemResult, SyncResponse, SyncSummary
from pt_tracker.services import ingestion_service
from pt_tracker.services.ingestion_service import IngestionStatus

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=SyncResponse)
def process_sync(
    body: Any = Body(...),
    caller: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Process ``{"queue": [{"operation", "payload"}, ...]}`` item by item."""
    queue = body.get("queue") if isinstance(body, dict) else None
    if not isinstance(queue, list):
        raise HTTPException(status_code=400, detail="Invalid request body. Expected: { queue: [...] }")
    if len(queue) > settings.SYNC_MAX_BATCH_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"Batch too large: {len(queue)} items (max {settings.SYNC_MAX_BATCH_SIZE})",
        )

    outcomes = ingestion_service.ingest_batch(db, caller, queue)
    results = [
        SyncItemResult(
            client_mutation_id=o.client_mutation_id,
            operation=item.get("operation") if isinstance(item, dict) else None,
            status=o.status.value,
            log_id=o.log_id,
            error=o.reason,
            error_kind=o.kind.value if o.kind else None,
        )
        for item, o in zip(queue, outcomes)
    ]
    summary = SyncSummary(
        total=len(results),
        processed=sum(1 for o in outcomes if o.ok),
        duplicates=sum(1 for o in outcomes if o.status == IngestionStatus.duplicate),
        failed=sum(1 for o in outcomes if not o.ok),
    )
    return SyncResponse(
        results=results,
        processed=[r for r, o in zip(results, outcomes) if o.ok],
        failed=[r for r, o in zip(results, outcomes) if not o.ok],
        summary=summary,
    )
