"""Pydantic schemas for the mutation audit ledger."""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel

from pt_tracker.models.offline_mutation import MutationOutcome, MutationType


class OfflineMutationOut(BaseModel):
    id: str
    user_id: str
    mutation_type: MutationType
    client_mutation_id: Optional[str] = None
    mutation_payload: Any
    outcome: MutationOutcome
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    processing_error: Optional[str] = None

    model_config = {"from_attributes": True}
