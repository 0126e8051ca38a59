"""Application configuration settings.

This module provides centralized configuration management using environment
variables with sensible defaults.
"""

import os
from dataclasses import dataclass


def _get_bool_env(name: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set.

    Returns:
        Boolean value from environment.
    """
    value = os.getenv(name, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def _get_int_env(name: str, default: int) -> int:
    """Get an integer value from environment variable, falling back on bad input."""
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """Get a float value from environment variable, falling back on bad input."""
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        WEBHOOK_TIMEOUT_SECONDS: Timeout applied to each delivery attempt.
        WEBHOOK_MAX_RETRIES: Retries after the initial attempt.
        WEBHOOK_BACKOFF_BASE_SECONDS: Base of the exponential backoff.
        WEBHOOK_MAX_CONCURRENT_DELIVERIES: Max in-flight HTTP requests.
        WEBHOOK_USER_AGENT: User-Agent header sent with deliveries.
        LOG_LEVEL: Logging level.
        LOG_JSON: Render logs as JSON instead of console output.
    """

    # Webhook delivery
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    WEBHOOK_MAX_RETRIES: int = 3
    WEBHOOK_BACKOFF_BASE_SECONDS: float = 2.0
    WEBHOOK_MAX_CONCURRENT_DELIVERIES: int = 10
    WEBHOOK_USER_AGENT: str = "DVCS-Webhook/1.0"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Returns:
            Settings instance populated from environment.
        """
        return cls(
            WEBHOOK_TIMEOUT_SECONDS=_get_float_env("WEBHOOK_TIMEOUT_SECONDS", 10.0),
            WEBHOOK_MAX_RETRIES=_get_int_env("WEBHOOK_MAX_RETRIES", 3),
            WEBHOOK_BACKOFF_BASE_SECONDS=_get_float_env("WEBHOOK_BACKOFF_BASE_SECONDS", 2.0),
            WEBHOOK_MAX_CONCURRENT_DELIVERIES=_get_int_env(
                "WEBHOOK_MAX_CONCURRENT_DELIVERIES", 10
            ),
            WEBHOOK_USER_AGENT=os.getenv("WEBHOOK_USER_AGENT", "DVCS-Webhook/1.0"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            LOG_JSON=_get_bool_env("LOG_JSON", default=False),
        )


# Global settings instance
settings = Settings.from_env()
