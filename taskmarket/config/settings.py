from typing import List

from dotenv import load_dotenv
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """Base settings for the application."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "TaskMarket Admin API"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Admin moderation and reporting API for the TaskMarket platform"
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True
    LOG_EXCLUDE_PATHS: List[str] = Field(default_factory=list, description="Paths the request logger skips")
    TRUST_REQUEST_ID_HEADER: bool = Field(
        default=True,
        description="Reuse an inbound X-Request-ID instead of generating a new one",
    )

    CORS_ALLOW_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    DATABASE_URL: str = ""
    LOCAL_SQLITE_PATH: str = "sqlite+aiosqlite:///./local.db"

    # Supabase settings
    SUPABASE_URL: str = Field(default="", description="Supabase project URL (https://xxx.supabase.co)")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(default="", description="Supabase service role key (for admin operations)")

    # Bearer token verification
    LOCAL_AUTH_SECRET: str = "JWT_SECRET_KEY"
    LOCAL_AUTH_TOKEN_EXP_SECONDS: int = 3600

    # Audit trail
    AUDIT_PERSISTENCE: str = Field(default="database", description="'database' or 'log'")
    AUDIT_QUEUE_SIZE: int = Field(default=1000, ge=1)
    AUDIT_SHUTDOWN_TIMEOUT: float = Field(default=5.0, ge=0)

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """Resolve the database URL used for audit persistence.

        Priority:
        1. Explicit DATABASE_URL (Postgres, SQLite, etc.)
        2. Local SQLite fallback for development: LOCAL_SQLITE_PATH
        """
        if self.DATABASE_URL and self.DATABASE_URL.strip():
            return self.DATABASE_URL.strip()
        if self.LOCAL_SQLITE_PATH and self.LOCAL_SQLITE_PATH.strip():
            return self.LOCAL_SQLITE_PATH.strip()
        return "sqlite+aiosqlite:///./local.db"


settings = Settings()
