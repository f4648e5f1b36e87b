"""
QR Inventory Configuration
Core settings for the inventory counting application
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    # Application Info
    APP_NAME: str = "QR Inventory API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./inventory.db"
    DATABASE_ECHO: bool = False

    # CORS
    CORS_ORIGINS: list = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "app.log"
    ERROR_LOG_FILE: str = "error.log"
    LOG_TO_FILE: bool = False

    # API Configuration
    API_V1_STR: str = "/api/v1"
    DOCS_URL: str = "/docs"
    OPENAPI_URL: str = "/openapi.json"

    # Item codes
    QR_CODE_LENGTH: int = 17

    # Transfers
    TRANSFER_NUMBER_PREFIX: str = "TR"

    # Cyclic counting
    DEFAULT_OVERDUE_DAYS: int = 30  # used when a location has no active cyclic count
    DUE_SOON_DAYS: int = 3

    # Blocks
    ENFORCE_ITEM_BLOCKS: bool = True

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v):
        """Fall back to the local SQLite file when the URL is blank"""
        if isinstance(v, str) and v.strip():
            return v
        return "sqlite:///./inventory.db"

    @field_validator("LOG_DIR", mode="before")
    @classmethod
    def coerce_log_dir(cls, v):
        return Path(v) if isinstance(v, str) else v


# Global settings instance
settings = Settings()
