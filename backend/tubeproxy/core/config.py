"""Application configuration using pydantic-settings."""
import os
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# backend/ directory: downloads live next to the service code
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENV: Literal["development", "production", "test"] = "development"
    DEBUG: bool = False
    PORT: int = Field(default=3001, ge=1, le=65535)

    # API Configuration
    API_PREFIX: str = "/api"

    # CORS Configuration
    CORS_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Security
    ALLOWED_URL_SCHEMES: str = Field(
        default="http,https",
        description="Comma-separated list of allowed URL schemes",
    )

    # Storage
    DOWNLOADS_DIR: str = Field(
        default=os.path.join(BASE_DIR, "downloads"),
        description="Directory where finished downloads are written and served from",
    )
    DOWNLOADS_URL_PREFIX: str = Field(
        default="/downloads",
        description="URL prefix the downloads directory is mounted under",
    )
    RETENTION_MAX_AGE_HOURS: float = Field(
        default=24,
        gt=0,
        description="Files older than this are removed by the cleanup endpoint",
    )

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v: str) -> str:
        """Ensure CORS_ORIGINS is properly formatted."""
        return v.strip()

    @field_validator("DOWNLOADS_URL_PREFIX")
    @classmethod
    def normalize_url_prefix(cls, v: str) -> str:
        """Keep a single leading slash and no trailing slash."""
        return "/" + v.strip().strip("/")

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def allowed_schemes_list(self) -> list[str]:
        """Get allowed URL schemes as a list."""
        return [scheme.strip().lower() for scheme in self.ALLOWED_URL_SCHEMES.split(",") if scheme.strip()]

    @property
    def retention_max_age_seconds(self) -> float:
        """Retention threshold in seconds."""
        return self.RETENTION_MAX_AGE_HOURS * 3600

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "production"

    # yt-dlp invocation
    YTDLP_BINARY: str = Field(
        default="yt-dlp",
        description="Name or path of the yt-dlp executable",
    )
    YTDLP_VERSION_TIMEOUT: float = Field(
        default=10,
        gt=0,
        le=60,
        description="Timeout in seconds for the `yt-dlp --version` availability probe",
    )
    YTDLP_INFO_TIMEOUT: float = Field(
        default=30,
        gt=0,
        le=600,
        description="Timeout in seconds for metadata extraction",
    )
    YTDLP_DOWNLOAD_TIMEOUT: float = Field(
        default=300,
        gt=0,
        le=7200,
        description="Timeout in seconds for a single download",
    )
    YTDLP_SOCKET_TIMEOUT: int = Field(
        default=30,
        ge=1,
        le=300,
        description="yt-dlp --socket-timeout value in seconds"
    )
    YTDLP_COOKIES_FROM_BROWSER: str | None = Field(
        default=None,
        description="Browser to extract cookies from (chrome, firefox, edge, etc.)"
    )
    YTDLP_USER_AGENT: str | None = Field(
        default=None,
        description="Custom user agent string to avoid detection"
    )
    YTDLP_PROXY: str | None = Field(
        default=None,
        description="HTTP/HTTPS/SOCKS proxy URL (e.g., http://proxy:8080)"
    )

    # Download jobs kept in memory for polling
    JOB_TTL_SECONDS: int = Field(
        default=3600,
        ge=60,
        le=86400,
        description="How long a finished job record stays queryable"
    )
    JOB_STORE_MAXSIZE: int = Field(
        default=1024,
        ge=1,
        le=65536,
        description="Max number of finished job records kept in memory"
    )
    JOB_EVENTS_INTERVAL_SECONDS: float = Field(
        default=1.0,
        gt=0,
        le=30,
        description="Polling interval of the job event stream"
    )


# Global settings instance
settings = Settings()
