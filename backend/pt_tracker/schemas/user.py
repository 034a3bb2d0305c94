"""Pydantic schemas for Users."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from pt_tracker.models.user import UserRole


class UserCreate(BaseModel):
    email: str
    display_name: Optional[str] = None
    role: UserRole = UserRole.patient
    therapist_id: Optional[str] = None


class UserOut(BaseModel):
    id: str
    email: str
    display_name: Optional[str] = None
    role: UserRole
    therapist_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
