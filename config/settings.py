"""
Configuration management for the Redis session store.

Settings are loaded with pydantic-settings from environment variables and
environment-specific .env files. Every field has a development-friendly
default; validate_startup() applies the stricter production rules.
"""

import os
import re
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default constant separating session keys from unrelated data in the same Redis
DEFAULT_NAMESPACE = "session:"

# Cookie names are RFC 6265 tokens
_COOKIE_NAME_PATTERN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the .env files to load for the given environment.

    The base .env file is loaded first, then the environment-specific
    file overrides it.
    """
    return (".env", f".env.{environment.value}")


class Settings(BaseSettings):
    """
    Session store settings loaded from environment variables.

    Variable names are the upper-cased field names, e.g. SESSION_KEY,
    REDIS_HOST, SESSION_EXPIRE_AFTER.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Cookie
    session_key: str = Field(
        default="_session_id",
        description="Name of the cookie carrying the session identifier"
    )
    session_secret: Optional[str] = Field(
        default=None,
        description="When set, the session id cookie is HMAC-signed with this secret"
    )
    session_cookie_path: str = Field(default="/")
    session_cookie_domain: Optional[str] = Field(default=None)
    session_cookie_secure: bool = Field(
        default=False,
        description="Only persist sessions and issue cookies over HTTPS"
    )
    session_cookie_httponly: bool = Field(default=True)
    session_cookie_samesite: Optional[str] = Field(default="lax")

    # Store keys and expiry
    session_key_prefix: str = Field(
        default="",
        description="Prefix prepended to every session key, e.g. 'myapp-'"
    )
    session_namespace: str = Field(
        default=DEFAULT_NAMESPACE,
        description="Namespace placed between the key prefix and the session id"
    )
    session_expire_after: Optional[int] = Field(
        default=None,
        ge=1,
        description="Session lifetime in seconds; maps directly to the Redis TTL"
    )
    session_refresh_expiry: bool = Field(
        default=False,
        description="Renew the TTL of existing sessions on every request, even untouched ones"
    )

    # Backing store
    session_backend: str = Field(
        default="redis",
        description="Backing store: 'redis' or 'memory' (development only)"
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL; overrides host, port and db when set"
    )
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_db: int = Field(default=0, ge=0)
    redis_socket_timeout: Optional[float] = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait on a Redis socket before treating the store as unavailable"
    )

    # Server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000, ge=1, le=65535)
    forwarded_allow_ips: str = Field(
        default="127.0.0.1",
        description=(
            "Comma-separated proxy addresses trusted for X-Forwarded-Proto; "
            "secure-only sessions behind a TLS-terminating proxy need the proxy listed"
        )
    )

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=3, ge=1)
    circuit_recovery_seconds: float = Field(default=30.0, gt=0)

    # Observability
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry collector endpoint URL"
    )
    otel_service_name: str = Field(default="redis-session-store")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("session_key")
    @classmethod
    def validate_session_key(cls, v: str) -> str:
        """Validate that the cookie name is a non-empty RFC 6265 token."""
        v = v.strip()
        if not v:
            raise ValueError("session_key cannot be empty")
        if not _COOKIE_NAME_PATTERN.match(v):
            raise ValueError(f"session_key is not a valid cookie name: {v!r}")
        return v

    @field_validator("session_secret")
    @classmethod
    def validate_session_secret(cls, v: Optional[str]) -> Optional[str]:
        """Treat a blank secret as unset and reject short ones."""
        if v is None or not v.strip():
            return None
        if len(v) < 16:
            raise ValueError("session_secret must be at least 16 characters")
        return v

    @field_validator("session_cookie_samesite")
    @classmethod
    def validate_samesite(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        if v not in {"lax", "strict", "none"}:
            raise ValueError("session_cookie_samesite must be 'lax', 'strict' or 'none'")
        return v

    @field_validator("session_backend")
    @classmethod
    def validate_session_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"redis", "memory"}:
            raise ValueError("session_backend must be 'redis' or 'memory'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @model_validator(mode="after")
    def validate_cookie_policy(self) -> "Settings":
        """Browsers drop SameSite=None cookies that are not Secure."""
        if self.session_cookie_samesite == "none" and not self.session_cookie_secure:
            raise ValueError(
                "session_cookie_samesite='none' requires session_cookie_secure=true"
            )
        return self


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, invalid_fields: Optional[dict] = None):
        self.message = message
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Create Settings for a specific environment.

    The environment is detected from the ENVIRONMENT variable when not given,
    and the matching .env files are loaded.

    Raises:
        ConfigurationError: If settings are invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = tuple(f for f in _get_env_files(environment) if Path(f).exists())

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=env_files or None,
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        invalid_fields = {}

        # Pydantic ValidationError carries field-level errors
        if hasattr(e, "errors"):
            for error in e.errors():
                field_name = ".".join(str(loc) for loc in error.get("loc", [])) or "settings"
                invalid_fields[field_name] = error.get("msg", str(error))

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Raises:
        ConfigurationError: If settings are invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """Clear the settings cache (used by tests)."""
    global _settings_cache
    _settings_cache = None


def validate_startup(settings: Optional[Settings] = None) -> None:
    """
    Validate settings before the application starts accepting requests.

    Production deployments must issue Secure cookies, sign them, and use
    Redis rather than the in-process memory backend.

    Raises:
        ConfigurationError: If any rule is violated.
    """
    settings = settings or get_settings()
    validation_errors = {}

    if settings.environment == Environment.PRODUCTION:
        if not settings.session_cookie_secure:
            validation_errors["session_cookie_secure"] = (
                "Production requires session cookies to be Secure"
            )
        if not settings.session_secret:
            validation_errors["session_secret"] = (
                "Production requires a session_secret to sign session cookies"
            )
        if settings.session_backend == "memory":
            validation_errors["session_backend"] = (
                "The memory backend is not shared between processes; use redis"
            )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )
