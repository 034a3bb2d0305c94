"""Activity log ORM models: one log row, its set rows, and each set's form data.

The three tables form a strict parent/child chain. Form data rows hang off
a specific set row, never off the log, so a parameter can only ever belong
to the set it was captured with.
"""
import uuid
import enum
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, ForeignKey,
    CheckConstraint, UniqueConstraint, Index, Enum as SAEnum,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from pt_tracker.database import Base


class ActivityType(str, enum.Enum):
    reps = "reps"
    hold = "hold"
    duration = "duration"
    distance = "distance"


class Side(str, enum.Enum):
    left = "left"
    right = "right"
    both = "both"


def _uuid() -> str:
    return str(uuid.uuid4())


class ActivityLog(Base):
    __tablename__ = "patient_activity_logs"
    __table_args__ = (
        UniqueConstraint("patient_id", "client_mutation_id", name="uq_activity_logs_patient_mutation"),
        Index("idx_activity_logs_performed_at", "performed_at"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    patient_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_id = Column(String(100), nullable=True)
    exercise_name = Column(String(255), nullable=False)  # denormalized, survives exercise archival
    client_mutation_id = Column(String(255), nullable=False)
    activity_type = Column(SAEnum(ActivityType), nullable=False)
    notes = Column(Text, nullable=True)
    performed_at = Column(DateTime(timezone=True), nullable=False)
    client_created_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    sets = relationship(
        "ActivitySet",
        back_populates="log",
        cascade="all, delete-orphan",
        order_by="ActivitySet.set_number",
    )


class ActivitySet(Base):
    __tablename__ = "patient_activity_sets"
    __table_args__ = (
        CheckConstraint("set_number > 0", name="ck_activity_sets_set_number_positive"),
        CheckConstraint("reps IS NULL OR reps >= 0", name="ck_activity_sets_reps"),
        CheckConstraint("seconds IS NULL OR seconds >= 0", name="ck_activity_sets_seconds"),
        CheckConstraint("distance_feet IS NULL OR distance_feet >= 0", name="ck_activity_sets_distance"),
        Index("idx_activity_sets_set_number", "activity_log_id", "set_number"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    activity_log_id = Column(
        String(36), ForeignKey("patient_activity_logs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    set_number = Column(Integer, nullable=False)
    reps = Column(Integer, nullable=True)
    seconds = Column(Integer, nullable=True)
    distance_feet = Column(Integer, nullable=True)
    side = Column(SAEnum(Side), nullable=True)
    manual_log = Column(Boolean, nullable=False, default=False)
    partial_rep = Column(Boolean, nullable=False, default=False)
    performed_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    log = relationship("ActivityLog", back_populates="sets")
    form_data = relationship("ActivitySetFormData", back_populates="activity_set", cascade="all, delete-orphan")


class ActivitySetFormData(Base):
    __tablename__ = "patient_activity_set_form_data"

    id = Column(String(36), primary_key=True, default=_uuid)
    activity_set_id = Column(
        String(36), ForeignKey("patient_activity_sets.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    parameter_name = Column(String(100), nullable=False)
    parameter_value = Column(String(255), nullable=False)
    parameter_unit = Column(String(20), nullable=True)  # ft, inch, cm, degree
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    activity_set = relationship("ActivitySet", back_populates="form_data")
