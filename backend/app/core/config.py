"""
Application configuration using pydantic-settings.

WHAT: Centralized config from environment variables
WHY: Type-safe, validated config with sensible defaults
HOW: Pydantic BaseSettings reads from .env and environment
"""

from pydantic_settings import BaseSettings
from pydantic import field_validator
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App metadata
    APP_NAME: str = "ThriftLy"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./data/thriftly.db"

    # Auth
    JWT_SECRET: str = "supersecretkey"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_HOURS: int = 24
    COOKIE_NAME: str = "token"
    COOKIE_SECURE: bool = False

    # Comma-separated; registering with one of these emails grants the admin role
    ADMIN_EMAILS: str = ""

    # CORS - accepts comma-separated string or list
    CORS_ORIGINS: str = "http://localhost:5173"

    @field_validator("CORS_ORIGINS", "ADMIN_EMAILS", mode="before")
    @classmethod
    def parse_comma_separated(cls, v):
        """Accept either a comma-separated string or a list."""
        if isinstance(v, list):
            return ",".join(v)
        return v

    def get_cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    def get_admin_emails(self) -> set[str]:
        """Get admin emails, lowercased."""
        return {email.strip().lower() for email in self.ADMIN_EMAILS.split(",") if email.strip()}

    # Uploads
    UPLOAD_DIR: str = "./data/uploads"
    MAX_UPLOAD_MB: float = 25.0

    # Mail (leave SMTP_USER empty to disable outgoing mail)
    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    MAIL_FROM: str = "ThriftLy <no-reply@thriftly.local>"
    SUPPORT_EMAIL: str = ""

    # Frontend, used to build payment callback URLs
    FRONTEND_URL: str = "http://localhost:5173"

    # eSewa sandbox
    ESEWA_PRODUCT_CODE: str = "EPAYTEST"
    ESEWA_SECRET_KEY: str = "8gBm/:&EnhH.1/q"
    ESEWA_FORM_URL: str = "https://rc-epay.esewa.com.np/api/epay/main/v2/form"
    ESEWA_STATUS_URL: str = "https://rc.esewa.com.np/api/epay/transaction/status/"
    ESEWA_VERIFY_REMOTE: bool = False
    ESEWA_TIMEOUT: int = 10  # seconds

    # Boosting
    BOOST_PRICE: float = 100.0
    BOOST_DAYS: int = 7

    # Stories older than this are hidden (0 keeps them forever)
    STORY_TTL_HOURS: int = 24

    # Realtime
    HUB_QUEUE_SIZE: int = 100  # per-subscriber buffered events before dropping
    SSE_HEARTBEAT_INTERVAL: int = 15  # seconds between heartbeat events

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "./data/logs/app.log"

    class Config:
        # Look for .env in project root first, then backend/.env
        env_file = [
            str(Path(__file__).parent.parent.parent.parent / ".env"),
            str(Path(__file__).parent.parent.parent / ".env"),
        ]
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Singleton instance
settings = Settings()
