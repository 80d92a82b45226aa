import logging
import os
from typing import Optional

from pydantic import BaseModel


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "development")
    store_backend: str = os.getenv("STORE_BACKEND", "memory")
    supabase_url: Optional[str] = os.getenv("SUPABASE_URL")
    supabase_key: Optional[str] = os.getenv("SUPABASE_KEY")
    test_supabase_url: Optional[str] = os.getenv("TEST_SUPABASE_URL")
    test_supabase_key: Optional[str] = os.getenv("TEST_SUPABASE_KEY")
    # ERROR is the name older client test setups export.
    force_write_failure: bool = _flag("FORCE_WRITE_FAILURE") or _flag("ERROR")
    store_timeout_seconds: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))
    ws_queue_size: int = int(os.getenv("WS_QUEUE_SIZE", "100"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: str = os.getenv("CORS_ORIGINS", "*")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def database_credentials(self) -> tuple[Optional[str], Optional[str]]:
        """Supabase URL and key for the current deployment mode."""
        if self.environment.lower() == "test":
            return self.test_supabase_url, self.test_supabase_key
        return self.supabase_url, self.supabase_key

    @property
    def allowed_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


settings = Settings()
