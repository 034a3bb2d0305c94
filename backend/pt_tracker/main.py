"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pt_tracker.config import settings
from pt_tracker.database import Base, engine

from pt_tracker.routers import users, logs, sync, mutations

# Import all models so Base.metadata knows about them
from pt_tracker.models.user import User                  # noqa: F401
from pt_tracker.models.activity_log import ActivityLog   # noqa: F401
from pt_tracker.models.offline_mutation import OfflineMutation  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="PT Tracker",
    description="Physical-therapy activity logging with offline-tolerant, idempotent ingestion",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(logs.router, prefix="/api/logs", tags=["ActivityLogs"])
app.include_router(sync.router, prefix="/api/sync", tags=["Sync"])
app.include_router(mutations.router, prefix="/api/mutations", tags=["Mutations"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
