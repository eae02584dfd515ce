"""
Centralized configuration management for the SSO gateway.

This module provides a Pydantic Settings-based configuration system that:
- Validates environment variables at startup
- Groups related settings for better organization
- Keeps secrets (encryption key, password pepper) in SecretStr
- Supports .env file loading

Services never read the environment themselves; they receive the values
they need from these settings objects at construction time.

Usage:
    from sso_gateway.config import get_settings

    settings = get_settings()
    callback_base = settings.oauth.callback_base_url
"""

import re
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

HEX_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


# =============================================================================
# Application Settings
# =============================================================================


class AppSettings(BaseSettings):
    """General application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["development", "production", "test"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(
        default="Persona SSO",
        description="Human-readable application name",
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


# =============================================================================
# Security Settings
# =============================================================================


class SecuritySettings(BaseSettings):
    """Secrets used for config encryption and password derivation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    encryption_key: Optional[SecretStr] = Field(
        default=None,
        description="AES-256 key as 64 hex characters (32 bytes)",
    )
    password_pepper: Optional[SecretStr] = Field(
        default=None,
        description="Server-side pepper for password derivation (min 16 chars)",
    )
    password_app_name: str = Field(
        default="persona-sso",
        description="Application discriminator mixed into derived passwords",
    )

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: Optional[SecretStr]) -> Optional[SecretStr]:
        """Ensure the encryption key is 32 bytes of hex."""
        if v is not None and not HEX_KEY_PATTERN.match(v.get_secret_value()):
            raise ValueError("ENCRYPTION_KEY must be 64 hex characters (32 bytes)")
        return v

    @field_validator("password_pepper")
    @classmethod
    def validate_password_pepper(cls, v: Optional[SecretStr]) -> Optional[SecretStr]:
        """Ensure the pepper is long enough to be useful."""
        if v is not None and len(v.get_secret_value()) < 16:
            raise ValueError("PASSWORD_PEPPER must be at least 16 characters")
        return v

    @property
    def is_configured(self) -> bool:
        """Check if both secrets are present."""
        return bool(self.encryption_key and self.password_pepper)


# =============================================================================
# Redis Settings
# =============================================================================


class RedisSettings(BaseSettings):
    """Configuration for the Redis-backed ephemeral state store."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL",
        pattern=r"^(rediss?|unix)://",
    )
    redis_socket_timeout: float = Field(
        default=5.0,
        gt=0,
        le=30,
        description="Socket timeout in seconds for Redis commands",
    )
    redis_connect_timeout: float = Field(
        default=5.0,
        gt=0,
        le=30,
        description="Connection timeout in seconds",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Redis is configured."""
        return bool(self.redis_url)


# =============================================================================
# OAuth / SSO Settings
# =============================================================================


class OAuthSettings(BaseSettings):
    """Configuration for identity-provider callbacks."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    oauth_callback_url: Optional[str] = Field(
        default=None,
        description="Public base URL identity providers redirect back to",
        pattern=r"^https?://",
    )
    shopify_app_url: Optional[str] = Field(
        default=None,
        description="Public app URL, used when OAUTH_CALLBACK_URL is unset",
        pattern=r"^https?://",
    )
    sso_http_timeout: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="Timeout in seconds for calls to identity providers",
    )

    @property
    def callback_base_url(self) -> Optional[str]:
        """Base URL used to build provider callback URLs."""
        return self.oauth_callback_url or self.shopify_app_url


# =============================================================================
# Rate Limit Settings
# =============================================================================


class RateLimitSettings(BaseSettings):
    """Per-client request limits for the /api/auth endpoints."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rate_limit_enabled: bool = Field(
        default=True,
        description="Enable per-IP rate limiting on auth endpoints",
    )
    rate_limit_max: int = Field(
        default=100,
        gt=0,
        description="Maximum requests per client within the window",
    )
    rate_limit_window_seconds: int = Field(
        default=60,
        gt=0,
        le=3600,
        description="Sliding window size in seconds",
    )


# =============================================================================
# Logging Settings
# =============================================================================


class LoggingSettings(BaseSettings):
    """Configuration for logging."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format_json: bool = Field(
        default=False,
        description="Force JSON log format in development",
    )


# =============================================================================
# Sentry Settings
# =============================================================================


class SentrySettings(BaseSettings):
    """Configuration for Sentry error tracking."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )
    sentry_environment: str = Field(
        default="development",
        description="Sentry environment name",
    )
    sentry_traces_sample_rate: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry transaction sample rate (0.0 to 1.0)",
    )
    sentry_release: Optional[str] = Field(
        default="sso-gateway@1.0.0",
        description="Sentry release version",
    )
    server_name: str = Field(
        default="sso-gateway",
        description="Server name for Sentry",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Sentry is configured."""
        return bool(self.sentry_dsn)


# =============================================================================
# Main Settings Class
# =============================================================================


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration groups.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app.is_production

    @property
    def is_redis_configured(self) -> bool:
        """Check if Redis is available."""
        return self.redis.is_configured

    @property
    def is_sentry_configured(self) -> bool:
        """Check if Sentry is configured."""
        return self.sentry.is_configured

    def get_config_summary(self) -> dict:
        """
        Get a summary of configuration status for logging.

        Returns configuration status WITHOUT exposing any secrets.
        """
        return {
            "environment": self.app.environment,
            "secrets_configured": self.security.is_configured,
            "redis_configured": self.is_redis_configured,
            "sentry_configured": self.is_sentry_configured,
            "callback_base_url": self.oauth.callback_base_url,
            "sso_http_timeout": self.oauth.sso_http_timeout,
            "rate_limit_enabled": self.rate_limit.rate_limit_enabled,
            "rate_limit_max": self.rate_limit.rate_limit_max,
            "log_level": self.logging.log_level,
        }


# =============================================================================
# Settings Singleton
# =============================================================================


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Call get_settings.cache_clear() to reload settings.

    Raises:
        ValidationError: If configuration is invalid
    """
    return Settings()


def reload_settings() -> Settings:
    """Clear the cache and return fresh settings."""
    get_settings.cache_clear()
    return get_settings()
