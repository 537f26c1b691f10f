from pathlib import Path
import os
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repo root

ENV_FILE = os.getenv("ENV_FILE", str(BASE_DIR / ".env"))

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_FILE, extra="ignore")

    APP_ENV: str = "local"
    DATABASE_URL: str = "sqlite:///./perfhub.db"
    CORS_ORIGINS: str = "*"  # Comma-separated list of allowed origins, or "*" for all

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Fallback SMTP settings, used when no active EmailConfig row exists
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_FROM_EMAIL: str = "no-reply@perfhub.local"
    SMTP_FROM_NAME: str = "Performance Hub"

    APP_BASE_URL: str = "http://localhost:5173"

    SCHEDULER_INTERVAL_SECONDS: int = 300
    CALENDAR_HTTP_TIMEOUT: float = 15.0
    DEFAULT_MEETING_MINUTES: int = 60

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list, handling '*' for development"""
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST)

settings = Settings()
