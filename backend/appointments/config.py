# backend/appointments/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    database_url: str = "sqlite:///./appointments.db"
    redis_url: str = "redis://localhost:6379/0"

    # Google Calendar OAuth client
    google_client_id: str = ""
    google_client_secret: str = ""
    calendar_timeout_seconds: float = 10.0

    # "redis" for multi-process deployments, "local" for a single worker
    booking_lock_backend: str = "redis"
    booking_lock_timeout_seconds: float = 10.0
    booking_lock_wait_seconds: float = 5.0

    slots_cache_enabled: bool = True
    slots_cache_ttl_seconds: int = 60

    calendar_sync_worker_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative SQLite paths are anchored at the project root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
