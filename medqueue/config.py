# medqueue/config.py
import os
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)

    # Application Settings
    APP_NAME: str = "MedQueue Waitlist API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./medqueue.db")

    # Security Settings (tokens are issued by the auth service, we only verify them)
    SECRET_KEY: str = Field(default="change-me-in-prod", alias="JWT_SECRET_KEY")
    ALGORITHM: str = "HS256"
    ADMIN_ROLE: str = "admin"

    # Waitlist timing
    OFFER_WINDOW_MINUTES: int = 120
    JOIN_HORIZON_HOURS: int = 24
    CASCADE_MAX_ATTEMPTS: int = 5
    # Source behaviour: withdrawing a notified entry does not re-offer the slot
    CASCADE_ON_NOTIFIED_WITHDRAWAL: bool = False

    # Expiry reaper
    REAPER_ENABLED: bool = True
    REAPER_INTERVAL_SECONDS: int = 60

    # Pagination
    PATIENT_PAGE_SIZE: int = 10
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings: Settings = get_settings()
