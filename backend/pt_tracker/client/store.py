"""Durable device-side storage for queued mutation records.

A local SQLite file accessed through SQLAlchemy. Entries survive process
restarts and are scoped per patient so queued work never leaks between
accounts sharing a device. Any storage failure is raised as
``QueueStorageError``: losing a queued record is never acceptable.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, JSON, UniqueConstraint, create_engine, func,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

LocalBase = declarative_base()


class QueueError(Exception):
    """Base class for device queue errors."""


class QueueFullError(QueueError):
    """The queue reached its capacity; nothing was evicted to make room."""


class QueueStorageError(QueueError):
    """The local store could not be read or written."""


class QueuedMutation(LocalBase):
    __tablename__ = "queued_mutations"
    __table_args__ = (
        UniqueConstraint("patient_id", "client_mutation_id", name="uq_queued_patient_mutation"),
    )

    seq = Column(Integer, primary_key=True, autoincrement=True)  # enqueue order
    patient_id = Column(String(36), nullable=False, index=True)
    client_mutation_id = Column(String(255), nullable=False)
    payload = Column(JSON, nullable=False)
    retries = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    enqueued_at = Column(DateTime(timezone=True), nullable=False)


class QueueStore:
    def __init__(self, path: str):
        self.path = path
        try:
            self.engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})
            LocalBase.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            raise QueueStorageError(f"Cannot open offline queue at {path}: {exc}") from exc
        self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Offline queue storage failure at %s: %s", self.path, exc)
            raise QueueStorageError(f"Offline queue storage failure: {exc}") from exc
        finally:
            session.close()

    def append(self, patient_id: str, client_mutation_id: str, payload: dict[str, Any], max_size: int) -> QueuedMutation:
        """Persist one entry. Re-appending an already queued mutation returns the existing entry."""
        with self._session() as session:
            existing = session.query(QueuedMutation).filter(
                QueuedMutation.patient_id == patient_id,
                QueuedMutation.client_mutation_id == client_mutation_id,
            ).first()
            if existing is not None:
                return existing

            size = session.query(func.count(QueuedMutation.seq)).scalar()
            if size >= max_size:
                raise QueueFullError(f"Offline queue full ({size} entries). Go online to sync.")

            entry = QueuedMutation(
                patient_id=patient_id,
                client_mutation_id=client_mutation_id,
                payload=payload,
                retries=0,
                enqueued_at=datetime.now(timezone.utc),
            )
            session.add(entry)
            session.flush()
            return entry

    def pending(self, patient_id: str) -> list[QueuedMutation]:
        with self._session() as session:
            return session.query(QueuedMutation).filter(
                QueuedMutation.patient_id == patient_id,
            ).order_by(QueuedMutation.seq).all()

    def mark_retry(self, seq: int, error: Optional[str]) -> int:
        """Increment an entry's retry counter and return the new value."""
        with self._session() as session:
            entry = session.get(QueuedMutation, seq)
            if entry is None:
                raise QueueStorageError(f"Queued entry {seq} vanished from the store")
            entry.retries += 1
            entry.last_error = error
            return entry.retries

    def remove(self, seq: int) -> None:
        with self._session() as session:
            session.query(QueuedMutation).filter(QueuedMutation.seq == seq).delete()

    def count(self, patient_id: Optional[str] = None) -> int:
        with self._session() as session:
            query = session.query(func.count(QueuedMutation.seq))
            if patient_id is not None:
                query = query.filter(QueuedMutation.patient_id == patient_id)
            return query.scalar()

    def clear(self, patient_id: str) -> int:
        with self._session() as session:
            return session.query(QueuedMutation).filter(QueuedMutation.patient_id == patient_id).delete()

    def close(self) -> None:
        self.engine.dispose()
