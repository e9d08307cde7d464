"""
Application settings and configuration management.
"""

from typing import Annotated, List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Server configuration
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)
    DEBUG: bool = Field(default=False)

    # Application info
    APP_NAME: str = Field(default="Sheetstore")
    APP_VERSION: str = Field(default="1.0.0")

    # CORS configuration
    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173"
        ]
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: Annotated[List[str], NoDecode] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"]
    )
    CORS_ALLOW_HEADERS: Annotated[List[str], NoDecode] = Field(default=["*"])

    # Identity header set by the authenticating proxy
    USER_HEADER: str = Field(default="X-Username")

    # Sheet defaults (advisory display hints, never enforced)
    DEFAULT_SHEET_NAME: str = Field(default="Sheet1")
    SHEET_DEFAULT_ROW_COUNT: int = Field(default=1000)
    SHEET_DEFAULT_COLUMN_COUNT: int = Field(default=26)

    # File handling
    MEDIA_UPLOAD_DIR: str = Field(default="uploads")
    MAX_UPLOAD_SIZE: int = Field(default=10 * 1024 * 1024)  # 10MB
    MAX_ARCHIVE_SIZE: int = Field(default=50 * 1024 * 1024)  # 50MB

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: Optional[str] = Field(default=None)
    LOG_ROTATION: bool = Field(default=True)
    LOG_MAX_SIZE: str = Field(default="10MB")
    LOG_BACKUP_COUNT: int = Field(default=5)

    # Development settings
    ENABLE_DOCS: bool = Field(default=True)

    @field_validator("CORS_ORIGINS", "CORS_ALLOW_METHODS", "CORS_ALLOW_HEADERS", mode="before")
    @classmethod
    def split_comma_list(cls, v):
        """Accept "a, b, c" from the environment as well as a list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("CORS_ALLOW_METHODS")
    @classmethod
    def upper_methods(cls, v):
        return [method.upper() for method in v]

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('SHEET_DEFAULT_ROW_COUNT', 'SHEET_DEFAULT_COLUMN_COUNT')
    @classmethod
    def validate_dimension_hint(cls, v):
        """Dimension hints must be positive."""
        if v < 1:
            raise ValueError('Sheet dimension hints must be at least 1')
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.DEBUG

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.DEBUG


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
