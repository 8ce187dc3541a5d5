"""TideGate settings, read from the environment (and ``.env`` when present)."""

from enum import Enum
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

# Shipped so a fresh checkout starts; refused in production.
_DEV_TOKEN_SECRET = "dev-insecure-token-secret-change-me"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Startup refused: the settings are unsafe for the current environment."""


class Settings(BaseSettings):
    """
    Every knob the API and the maintenance worker read.

    Field names map to upper-case environment variables
    (``token_hash_secret`` -> ``TOKEN_HASH_SECRET``).
    """

    environment: Environment = Environment.DEVELOPMENT

    # Console origins allowed to call the API with credentials (comma-separated).
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    # Storage. The pool_* values apply to PostgreSQL only.
    database_url: str = "sqlite:///./tidegate.db"
    db_pool_size: int = Field(default=5, ge=1)
    db_max_overflow: int = Field(default=10, ge=0)
    db_pool_timeout: int = Field(default=30, ge=1)
    db_pool_recycle: int = Field(default=1800, ge=-1)
    request_timeout_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Storage deadline per API request; 0 disables it",
    )

    # Sessions. Rotating the secret logs everybody out.
    token_hash_secret: str = Field(
        default=_DEV_TOKEN_SECRET,
        description="HMAC key applied to access and refresh tokens before storage",
    )
    session_ttl_seconds: int = 24 * 60 * 60
    session_sweep_interval_seconds: int = Field(default=15 * 60, ge=0)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Audit entries older than this are purged; 0 keeps them forever.
    audit_retention_days: int = Field(default=365, ge=0)

    # First super_admin, created on startup when both are set and the user is absent.
    admin_initial_username: str = ""
    admin_initial_password: str = ""

    log_level: str = "INFO"
    log_format: str = Field(default="json", description="'json' or 'text'")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @field_validator("session_ttl_seconds")
    @classmethod
    def validate_session_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("SESSION_TTL_SECONDS must be positive")
        return v

    def get_cors_origins(self) -> List[str]:
        """Split ``cors_allowed_origins``. A wildcard is rejected outright."""
        origins = [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]
        if "*" in origins:
            raise ValueError("CORS_ALLOWED_ORIGINS may not contain '*'; list the console origins")
        return origins

    def uses_default_token_secret(self) -> bool:
        return self.token_hash_secret == _DEV_TOKEN_SECRET

    def insecure_settings(self) -> List[str]:
        """Describe each setting that must not reach production as-is."""
        problems = []
        if self.uses_default_token_secret():
            problems.append(
                "TOKEN_HASH_SECRET still has its development value "
                "(generate one with: openssl rand -hex 32)"
            )
        local = [o for o in self.get_cors_origins() if "localhost" in o or "127.0.0.1" in o]
        if local:
            problems.append(f"CORS_ALLOWED_ORIGINS includes local origins: {local}")
        return problems

    def validate_production_config(self) -> None:
        """Raise ConfigurationError in production when ``insecure_settings`` is non-empty.

        Development only gets the warnings logged by the application lifespan.
        """
        problems = self.insecure_settings()
        if problems and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "refusing to start with insecure production settings:\n  - "
                + "\n  - ".join(problems)
            )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


settings = Settings()
