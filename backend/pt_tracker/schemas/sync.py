"""Pydantic schemas for batch (offline queue replay) ingestion."""
from typing import Optional
from pydantic import BaseModel


class SyncItemResult(BaseModel):
    client_mutation_id: Optional[str] = None
    operation: Optional[str] = None
    status: str  # persisted, duplicate, failed
    log_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class SyncSummary(BaseModel):
    total: int
    processed: int
    duplicates: int
    failed: int


class SyncResponse(BaseModel):
    results: list[SyncItemResult]
    processed: list[SyncItemResult]  # persisted or duplicate
    failed: list[SyncItemResult]
    summary: SyncSummary
