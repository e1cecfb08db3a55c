from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Optional


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "Report Card SIS Sync"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./report_sync.db"
    DATABASE_ECHO: bool = False

    # PowerSchool bootstrap credentials (seeded into the settings row on startup)
    PS_ENDPOINT: Optional[str] = None
    PS_CLIENT_ID: Optional[str] = None
    PS_CLIENT_SECRET: Optional[str] = None
    PS_SCHOOL_ID: Optional[int] = None

    # PowerSchool transport settings
    PS_PAGE_SIZE: int = 50
    PS_HTTP_TIMEOUT_SECONDS: int = 30
    PS_TOKEN_EXPIRY_SKEW_SECONDS: int = 300
    PS_DEFAULT_TOKEN_TTL_SECONDS: int = 3600

    # Sync ledger settings
    SYNC_SUMMARY_LIMIT: int = 20
    SYNC_LOG_RETENTION_DAYS: int = 30

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        return v

    @field_validator("PS_PAGE_SIZE")
    @classmethod
    def validate_page_size(cls, v):
        if v < 1:
            raise ValueError("PS_PAGE_SIZE must be a positive integer")
        return v

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()
