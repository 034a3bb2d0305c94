"""Pytest fixtures: file-backed SQLite database per test, isolated and fast."""
import os
import uuid
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from pt_tracker.database import Base, get_db
from pt_tracker.main import app

# Import all models so they register with Base.metadata
from pt_tracker.models.user import User                            # noqa: F401
from pt_tracker.models.activity_log import ActivityLog             # noqa: F401
from pt_tracker.models.offline_mutation import OfflineMutation     # noqa: F401


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})

    # WAL lets the audit ledger session write while a request session is reading
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """Yield a database session bound to the test engine."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_engine):
    """FastAPI TestClient with the database dependency overridden to use SQLite."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def create_test_user(client: TestClient, role: str = "patient", therapist_id: str = None) -> dict:
    """Helper: POST /api/users and return response JSON."""
    resp = client.post("/api/users/", json={
        "email": f"{role}-{uuid.uuid4().hex[:8]}@example.com",
        "display_name": f"Test {role.title()}",
        "role": role,
        "therapist_id": therapist_id,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def auth(user: dict) -> dict:
    """Headers identifying ``user`` as the caller."""
    return {"X-User-Id": user["id"]}


def hours_ago(hours: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()


def hold_record(client_mutation_id: str = "abc-1", **overrides) -> dict:
    """The two-set hold session: a band color on set 1 only."""
    record = {
        "client_mutation_id": client_mutation_id,
        "exercise_id": "ex-bridge",
        "exercise_name": "Glute Bridge Hold",
        "activity_type": "hold",
        "notes": "Felt strong",
        "performed_at": hours_ago(2),
        "sets": [
            {
                "set_number": 1, "reps": 3, "seconds": 10,
                "form_data": [{"name": "band_color", "value": "blue"}],
            },
            {"set_number": 2, "reps": 3, "seconds": 12},
        ],
    }
    record.update(overrides)
    return record
