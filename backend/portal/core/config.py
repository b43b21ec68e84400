"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Manor Portal"
    debug: bool = False
    api_v1_prefix: str = "/api/v1"
    base_url: str = "http://localhost:3000"
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite+aiosqlite:///./portal.db"

    # Security
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    magic_link_expire_minutes: int = 15

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Storage
    documents_dir: Path = Path("./data/documents")
    audit_log_dir: Path = Path("./data/logs")
    audit_log_file: str = "audit.jsonl"

    # Email
    email_host: str | None = None
    email_port: int = 587
    email_user: str | None = None
    email_password: str | None = None
    email_use_tls: bool = True
    email_from: str = "Manor Portal <noreply@manor.local>"
    contact_phone: str = "(313) 555-0100"

    @property
    def audit_log_path(self) -> Path:
        return self.audit_log_dir / self.audit_log_file


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
