"""Pydantic schemas for activity logs.

``MutationRecord`` is the unit of work shared by the device-side queue and the
ingestion endpoint. It is frozen: once built on the client it is only ever
serialized, queued and resent, never edited.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Annotated, Any, Optional
from pydantic import (
    AliasChoices, BaseModel, Field, NonNegativeInt, StringConstraints,
    field_validator, model_validator,
)

from pt_tracker.models.activity_log import ActivityType, Side

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
# Compared byte-for-byte on the server, so never normalized.
MutationId = Annotated[str, StringConstraints(min_length=1, max_length=255)]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Parameter(BaseModel):
    """One free-form form-data value captured for a single set."""

    model_config = {"frozen": True}

    parameter_name: RequiredText = Field(validation_alias=AliasChoices("parameter_name", "name"))
    parameter_value: RequiredText = Field(validation_alias=AliasChoices("parameter_value", "value"))
    parameter_unit: Optional[str] = Field(default=None, validation_alias=AliasChoices("parameter_unit", "unit"))

    @field_validator("parameter_value", mode="before")
    @classmethod
    def _stringify_numbers(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("parameter_unit", mode="before")
    @classmethod
    def _blank_unit_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SetEntry(BaseModel):
    model_config = {"frozen": True}

    set_number: Annotated[int, Field(gt=0, strict=True)]
    reps: Optional[NonNegativeInt] = None
    seconds: Optional[NonNegativeInt] = None
    distance_feet: Optional[NonNegativeInt] = Field(
        default=None, validation_alias=AliasChoices("distance_feet", "distance"),
    )
    side: Optional[Side] = None
    manual_log: bool = False
    partial_rep: bool = False
    performed_at: Optional[datetime] = None
    form_data: Optional[list[Parameter]] = None

    @field_validator("manual_log", "partial_rep", mode="before")
    @classmethod
    def _null_flag_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("side", mode="before")
    @classmethod
    def _blank_side_is_none(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("performed_at")
    @classmethod
    def _performed_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class MutationRecord(BaseModel):
    """One logged exercise session, keyed by its client-generated mutation id."""

    model_config = {"frozen": True}

    client_mutation_id: MutationId
    patient_id: Optional[str] = None
    exercise_id: Optional[str] = None
    exercise_name: RequiredText
    activity_type: ActivityType
    notes: Optional[str] = None
    performed_at: datetime
    client_created_at: Optional[datetime] = None
    sets: list[SetEntry] = Field(min_length=1)

    @field_validator("performed_at", "client_created_at")
    @classmethod
    def _timestamps_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @field_validator("client_mutation_id")
    @classmethod
    def _mutation_id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("exercise_id", "patient_id", mode="before")
    @classmethod
    def _blank_id_is_none(cls, value: Any) -> Any:
        return None if value == "" else value

    @model_validator(mode="after")
    def _set_numbers_unique(self) -> "MutationRecord":
        seen: set[int] = set()
        for entry in self.sets:
            if entry.set_number in seen:
                raise ValueError(f"duplicate set_number {entry.set_number}")
            seen.add(entry.set_number)
        return self


class FormDataOut(BaseModel):
    id: str
    parameter_name: str
    parameter_value: str
    parameter_unit: Optional[str] = None

    model_config = {"from_attributes": True}


class SetOut(BaseModel):
    id: str
    set_number: int
    reps: Optional[int] = None
    seconds: Optional[int] = None
    distance_feet: Optional[int] = None
    side: Optional[Side] = None
    manual_log: bool
    partial_rep: bool
    performed_at: datetime
    form_data: list[FormDataOut] = []

    model_config = {"from_attributes": True}


class LogOut(BaseModel):
    id: str
    patient_id: str
    exercise_id: Optional[str] = None
    exercise_name: str
    client_mutation_id: str
    activity_type: ActivityType
    notes: Optional[str] = None
    performed_at: datetime
    client_created_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    sets: list[SetOut] = []

    model_config = {"from_attributes": True}


class LogListOut(BaseModel):
    logs: list[LogOut]
    count: int
