"""
Core Configuration
Environment-based settings for the cycle count backend
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    # Environment
    ENVIRONMENT: str = "development"  # development, staging, production
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"
    PROJECT_NAME: str = "Bin Cycle Count"
    VERSION: str = "1.0.0"

    # Storage
    STORAGE_BACKEND: str = "sqlite"  # sqlite, memory
    DATABASE_URL: str = "sqlite:///./cyclecount.db"

    # CORS (local UI dev servers)
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Business Logic
    DEFAULT_UOM: str = "Unit"
    SESSION_ID_PREFIX: str = "SES"
    AUDIT_RECENT_LIMIT: int = 30
    MAX_UPLOAD_ROWS: int = 50000

    # Files
    EXPORT_DIR: str = "/tmp/cyclecount/exports"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
