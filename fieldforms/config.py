from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Project Info
    PROJECT_NAME: str = "Field Forms Engine"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = Field(default="development", description="Environment: development, staging, production")

    # Database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./data/field_forms.db",
        description="Database URL (SQLite or PostgreSQL)"
    )
    DB_POOL_SIZE: int = Field(default=5, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(default=10, description="Database max overflow connections")
    DB_POOL_TIMEOUT: int = Field(default=30, description="Database pool timeout in seconds")
    DB_POOL_RECYCLE: int = Field(default=3600, description="Database pool recycle time in seconds")
    SQLITE_BUSY_TIMEOUT: float = Field(
        default=15.0,
        description="Seconds a SQLite connection waits for a competing writer"
    )

    # Security - CORS
    BACKEND_CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins"
    )

    # Forms engine
    FORM_ID_PREFIX: str = Field(default="FORM", description="Prefix for human readable form ids")
    SUBMIT_CONFLICT_RETRIES: int = Field(
        default=4,
        description="Re-checks after a lost cycle update before answering 'try again'"
    )

    @field_validator('SUBMIT_CONFLICT_RETRIES')
    @classmethod
    def validate_conflict_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError('SUBMIT_CONFLICT_RETRIES must not be negative')
        return v

    # External audit sink (optional, fire-and-forget)
    AUDIT_SINK_URL: str = Field(default="", description="External audit sink base URL (empty disables forwarding)")
    AUDIT_SINK_API_KEY: str = Field(default="", description="API key sent to the external audit sink")
    AUDIT_SINK_TIMEOUT: int = Field(default=5, description="Audit sink timeout in seconds")
    AUDIT_SINK_RETRY_ATTEMPTS: int = Field(default=2, description="Audit sink retry attempts")

    # Request limits
    MAX_REQUEST_SIZE: int = Field(default=1024 * 1024, description="Largest accepted request body in bytes")

    # Server Configuration
    WORKERS: int = Field(default=4, description="Number of Uvicorn workers")
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=8000, description="Server port")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    LOG_DIR: str = Field(default="./logs", description="Directory for log files")
    LOG_RETENTION_DAYS: int = Field(default=30, description="Number of days to keep log files")
    LOG_MASK_SENSITIVE: bool = Field(default=True, description="Enable sensitive data masking in logs")
    LOG_ENABLE_REQUEST_LOGGING: bool = Field(default=True, description="Enable HTTP request/response logging")

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Enable rate limiting")
    RATE_LIMIT_DEFAULT: str = Field(default="100/minute", description="Default rate limit")
    RATE_LIMIT_SUBMISSIONS: str = Field(default="30/minute", description="Rate limit for form submissions")
    RATE_LIMIT_REVIEWS: str = Field(default="60/minute", description="Rate limit for approve/reject calls")
    RATE_LIMIT_STORAGE_URI: str = Field(default="memory://", description="Rate limit storage URI")

    # Circuit Breaker
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(default=5, description="Failures before circuit opens")
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: int = Field(default=30, description="Seconds before attempting reset")
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = Field(default=3, description="Max calls in half-open state")

    def get_log_level(self) -> str:
        """Get log level based on environment."""
        if self.ENVIRONMENT.lower() in ["development", "dev", "test"]:
            return "DEBUG"
        return self.LOG_LEVEL.upper()

    def get_audit_sink_url(self) -> Optional[str]:
        """External audit sink URL, or None when forwarding is disabled."""
        return self.AUDIT_SINK_URL.rstrip("/") or None


settings = Settings()
