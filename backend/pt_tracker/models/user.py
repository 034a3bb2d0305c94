"""User ORM model: identity collaborator for ingestion (id + role)."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Enum as SAEnum
from sqlalchemy.sql import func
from pt_tracker.database import Base


class UserRole(str, enum.Enum):
    patient = "patient"
    therapist = "therapist"
    admin = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(100), nullable=True)
    role = Column(SAEnum(UserRole), nullable=False, default=UserRole.patient)
    therapist_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
