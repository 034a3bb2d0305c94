"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Server settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./pt_tracker.db"
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"
    ALLOW_DELEGATED_SUBMISSION: bool = False
    SYNC_MAX_BATCH_SIZE: int = 100
    LOG_HISTORY_DAYS: int = 90

    class Config:
        env_file = ".env"
        extra = "ignore"


class ClientSettings(BaseSettings):
    """Offline queue settings for the device-side client."""

    DB_PATH: str = "./pt_offline_queue.db"
    MAX_SIZE: int = 1000
    MAX_RETRIES: int = 3
    BASE_URL: str = "http://localhost:8000"
    TIMEOUT_SECONDS: float = 10.0
    FLUSH_INTERVAL_SECONDS: float = 60.0

    class Config:
        env_file = ".env"
        env_prefix = "PT_QUEUE_"
        extra = "ignore"


settings = Settings()
