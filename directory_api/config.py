"""Configuration management and validation using Pydantic."""

import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    """Application configuration settings loaded from environment variables or .env files."""

    @staticmethod
    def get_env_file() -> str | None:
        """Determine which .env file to load based on environment variables.

        Returns:
            None if SKIP_ENV_FILE is set (Docker/direct env vars)
            .env.{APP_ENV} file path otherwise (defaults to .env.dev)
        """
        if os.getenv("SKIP_ENV_FILE"):
            return None
        env = os.getenv("APP_ENV", "dev")
        env_file = f".env.{env}"
        if not os.path.exists(env_file):
            raise FileNotFoundError(
                f"Environment file '{env_file}' not found. "
                f"Create it or set APP_ENV to 'dev' or 'prod'."
            )
        return env_file

    model_config = SettingsConfigDict(
        env_file=get_env_file.__func__(),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # ==================== Application Settings ====================
    APP_NAME: str = "Directory API"
    APP_ENV: str = "dev"
    APP_HOST: str = "http://localhost:8000"  # Public base URL used in email links
    API_PREFIX: str = "/api/v1"
    DB_URL: str  # Required, defined in .env files

    # ==================== Database Connection Pooling ====================
    DB_POOL_SIZE: int = 20  # Persistent connections in pool
    DB_MAX_OVERFLOW: int = 10  # Additional connections beyond pool size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for available connection
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour

    # ==================== Database Resilience ====================
    DB_RETRY_MAX_ATTEMPTS: int = 3  # Max retry attempts for failed queries
    DB_RETRY_BASE_DELAY: float = 0.5  # Base delay for exponential backoff (seconds)
    DB_QUERY_TIMEOUT: int = 60  # Query execution timeout (seconds)
    DB_CONNECT_TIMEOUT: int = 10  # Connection establishment timeout (seconds)

    # ==================== CORS Settings ====================
    CORS_ORIGINS: str = "http://localhost:3000"  # Comma-separated allowed origins

    # ==================== Field Validation ====================
    NAME_MIN_LENGTH: int = 3
    NAME_MAX_LENGTH: int = 30
    EMAIL_MIN_LENGTH: int = 4
    EMAIL_MAX_LENGTH: int = 45
    PASSWORD_MIN_LENGTH: int = 6
    PASSWORD_MAX_LENGTH: int = 75

    # ==================== Credentials & Tokens ====================
    BCRYPT_ROUNDS: int = 12  # bcrypt work factor (log2 iterations)
    JWT_SECRET_KEY: str  # Required, defined in .env files
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_DAYS: int = 30
    VERIFICATION_TOKEN_BYTES: int = 32

    # ==================== Rate Limiting ====================
    RATE_LIMIT_WRITE: str = "60/minute"
    RATE_LIMIT_AUTH: str = "20/minute"
    RATE_LIMIT_READ: str = "100/minute"

    # ==================== Graceful Shutdown ====================
    GRACEFUL_SHUTDOWN_TIMEOUT: int = 30  # Max wait time for active requests (seconds)

    # ==================== Background Tasks ====================
    TASK_WORKERS: int = 2  # Workers draining the post-signup queue

    # ==================== Logging ====================
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_FILE: str | None = "app.log"  # None to disable file logging
    LOG_FORMAT: str = "console"  # "console" for dev, "json" for production

    # ==================== Redis Caching ====================
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL: int = 300  # Default TTL in seconds (5 minutes)
    CACHE_ENABLED: bool = True  # Global cache toggle

    # ==================== Mail ====================
    MAIL_ENABLED: bool = False  # False logs outgoing mail instead of sending it
    MAIL_FROM: str = "no-reply@directory.local"
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT: int = 10

    @field_validator('DB_URL')
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        """Validate that DB_URL is provided and properly formatted."""
        if not v:
            raise ValueError("DB_URL is required but not provided in environment variables")
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DB_URL must be a PostgreSQL (asyncpg) or SQLite (aiosqlite) connection string")
        return v

    @field_validator('JWT_SECRET_KEY')
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Validate that JWT_SECRET_KEY is provided and sufficiently long."""
        if not v:
            raise ValueError("JWT_SECRET_KEY is required but not provided in environment variables")
        if len(v) < 32:
            raise ValueError("JWT_SECRET_KEY must be at least 32 characters long for security")
        return v

    @field_validator('BCRYPT_ROUNDS')
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        """bcrypt accepts cost factors between 4 and 31."""
        if not 4 <= v <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return v

    def get_cors_origins(self) -> list[str]:
        """Parse CORS_ORIGINS into a list of allowed origins."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.DB_URL.startswith("sqlite")

settings = Settings()
