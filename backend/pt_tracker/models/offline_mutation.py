"""OfflineMutation ORM model: append-only audit ledger of ingestion attempts."""
import uuid
import enum
from sqlalchemy import Column, String, Text, DateTime, JSON, ForeignKey, Enum as SAEnum
from sqlalchemy.sql import func
from pt_tracker.database import Base


class MutationType(str, enum.Enum):
    create_activity_log = "create_activity_log"


class MutationOutcome(str, enum.Enum):
    persisted = "persisted"
    duplicate = "duplicate"
    failed = "failed"


class OfflineMutation(Base):
    __tablename__ = "offline_mutations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    mutation_type = Column(SAEnum(MutationType), nullable=False, default=MutationType.create_activity_log)
    client_mutation_id = Column(String(255), nullable=True)
    mutation_payload = Column(JSON, nullable=False)
    outcome = Column(SAEnum(MutationOutcome), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processing_error = Column(Text, nullable=True)
