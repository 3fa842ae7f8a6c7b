"""Configuration management for Suitter.

Centralises environment variable loading and validation logic for both the
salt service and the zkLogin client while keeping the public API
intentionally simple.
"""

from __future__ import annotations

import os
import warnings
from typing import Any, List, Mapping, Optional, TypedDict

_TRUTHY_VALUES = {"1", "true", "yes", "on"}

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"


class AppConfig(TypedDict):
    """Typed representation of the application's configuration."""

    SALT_SECRET: Optional[str]
    SALT_VERIFY_JWT: bool
    OAUTH_JWKS_URL: str
    SALT_ALLOWED_AUDIENCES: List[str]
    GOOGLE_CLIENT_ID: str
    GOOGLE_AUTH_URL: str
    REDIRECT_URI: str
    SUI_NETWORK: str
    SUI_RPC_URL: str
    PROVER_URL: str
    SALT_SERVICE_URL: str
    HTTP_TIMEOUT: int
    SESSION_FILE: str
    SESSION_STORAGE_KEY: str
    FLASK_SECRET_KEY: Optional[str]
    FLASK_ENV: str
    FLASK_DEBUG: bool
    CORS_ORIGINS: str
    RATE_LIMIT_ENABLED: bool
    RATE_LIMIT_DEFAULT: str
    SALT_RATE_LIMIT: str
    RATE_LIMIT_STORAGE: str
    FORCE_HTTPS: bool
    LOG_LEVEL: str
    REDIS_HOST: str
    REDIS_PORT: int
    REDIS_PASSWORD: Optional[str]
    REDIS_DB: int
    REDIS_URL: Optional[str]
    APP_NAME: str
    APP_VERSION: str
    APP_HOST: str
    APP_PORT: int


def _get_env_bool(name: str, default: bool) -> bool:
    """Return an environment variable as a boolean."""

    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in _TRUTHY_VALUES


def _get_env_int(name: str, default: int) -> int:
    """Return an environment variable as an integer, raising on invalid input."""

    raw_value = os.getenv(name)
    if raw_value is None or raw_value == "":
        return default

    try:
        return int(raw_value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer (got {raw_value!r})") from exc


def _get_env_list(name: str, default: List[str]) -> List[str]:
    raw_value = os.getenv(name)
    if not raw_value:
        return default
    return [item.strip() for item in raw_value.split(",") if item.strip()]


def get_config() -> AppConfig:
    """Load application configuration from environment variables."""

    google_client_id = os.getenv("GOOGLE_CLIENT_ID", "")

    return {
        # Salt authority
        "SALT_SECRET": os.getenv("SALT_SECRET") or None,
        "SALT_VERIFY_JWT": _get_env_bool("SALT_VERIFY_JWT", False),
        "OAUTH_JWKS_URL": os.getenv("OAUTH_JWKS_URL", GOOGLE_JWKS_URL),
        "SALT_ALLOWED_AUDIENCES": _get_env_list(
            "SALT_ALLOWED_AUDIENCES", [google_client_id] if google_client_id else []
        ),
        # Identity provider
        "GOOGLE_CLIENT_ID": google_client_id,
        "GOOGLE_AUTH_URL": os.getenv("GOOGLE_AUTH_URL", "https://accounts.google.com/o/oauth2/v2/auth"),
        "REDIRECT_URI": os.getenv("REDIRECT_URI", "http://localhost:5173/auth/callback"),
        # Ledger and proving service
        "SUI_NETWORK": os.getenv("SUI_NETWORK", "testnet"),
        "SUI_RPC_URL": os.getenv("SUI_RPC_URL", "https://fullnode.testnet.sui.io:443"),
        "PROVER_URL": os.getenv("PROVER_URL", "https://prover-dev.mystenlabs.com/v1"),
        "SALT_SERVICE_URL": os.getenv("SALT_SERVICE_URL", "http://localhost:3000/api/zklogin/salt"),
        "HTTP_TIMEOUT": _get_env_int("HTTP_TIMEOUT", 30),
        # Client session persistence
        "SESSION_FILE": os.getenv("SESSION_FILE", "~/.suitter/zklogin_session.json"),
        "SESSION_STORAGE_KEY": os.getenv("SESSION_STORAGE_KEY", "suitter_zklogin_session"),
        # Flask Configuration
        "FLASK_SECRET_KEY": os.getenv("FLASK_SECRET_KEY"),
        "FLASK_ENV": os.getenv("FLASK_ENV", "development"),
        "FLASK_DEBUG": _get_env_bool("FLASK_DEBUG", False),
        # CORS Configuration
        "CORS_ORIGINS": os.getenv("CORS_ORIGINS", "*"),
        # Rate Limiting
        "RATE_LIMIT_ENABLED": _get_env_bool("RATE_LIMIT_ENABLED", True),
        "RATE_LIMIT_DEFAULT": os.getenv("RATE_LIMIT_DEFAULT", "100/hour"),
        "SALT_RATE_LIMIT": os.getenv("SALT_RATE_LIMIT", "30 per minute"),
        "RATE_LIMIT_STORAGE": os.getenv("RATE_LIMIT_STORAGE", ""),
        "FORCE_HTTPS": _get_env_bool(
            "FORCE_HTTPS",
            os.getenv("FLASK_ENV", "development").lower() == "production",
        ),
        # Logging
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        # Redis (rate limit storage, RedisSessionStore)
        "REDIS_HOST": os.getenv("REDIS_HOST", "localhost"),
        "REDIS_PORT": _get_env_int("REDIS_PORT", 6379),
        "REDIS_PASSWORD": os.getenv("REDIS_PASSWORD"),
        "REDIS_DB": _get_env_int("REDIS_DB", 0),
        "REDIS_URL": os.getenv("REDIS_URL") or os.getenv("REDIS_DSN"),
        # Application Settings
        "APP_NAME": os.getenv("APP_NAME", "Suitter"),
        "APP_VERSION": os.getenv("APP_VERSION", "1.0.0"),
        "APP_HOST": os.getenv("APP_HOST", "0.0.0.0"),
        "APP_PORT": _get_env_int("APP_PORT", 3000),
    }


def validate_config(config: Mapping[str, Any]) -> bool:
    """Validate critical configuration values.

    Args:
        config: Configuration mapping to validate.

    Returns:
        True if configuration is valid, raises ValueError otherwise.
    """

    if config.get("FLASK_ENV") == "production":
        # Rotating or losing the salt secret orphans every derived address.
        if not config.get("SALT_SECRET"):
            raise ValueError("⚠️  SALT_SECRET must be set for production!")

        if not config.get("FLASK_SECRET_KEY"):
            raise ValueError("⚠️  FLASK_SECRET_KEY must be set for production!")

        if not config.get("SALT_VERIFY_JWT"):
            warnings.warn(
                "⚠️  SALT_VERIFY_JWT disabled - salts are issued for unverified tokens!",
                stacklevel=2,
            )

    return True
