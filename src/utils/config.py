"""Configuration utility for the Zoom-FileMaker bridge.

This module provides centralized configuration management with:
- Environment variables as primary source (a local `.env` is loaded at app start)
- Type-safe access to configuration values
"""

import os
from typing import Any

DEFAULT_PORT = 3000
# FileMaker Data API tokens expire after ~14 minutes of inactivity; renew at 13.
DEFAULT_FM_SESSION_LEASE_SECONDS = 13 * 60
DEFAULT_FM_HTTP_TIMEOUT_SECONDS = 30.0


def parse_config_value(value: str) -> str | bool | int | float:
    if value.lower() == "true":
        return True
    elif value.lower() == "false":
        return False
    else:
        # Try to parse as a number
        try:
            return int(value)
        except ValueError:
            try:
                return float(value)
            except ValueError:
                # Return as string
                return value


def get_config_value(key: str, default: Any = None) -> Any:
    """Get a configuration value from environment variables.

    Args:
        key: Configuration key name (e.g., "FM_SERVER_URL")
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    env_value = os.environ.get(key)
    if env_value is not None:
        return parse_config_value(env_value)

    return default


def get_config_value_str(key: str) -> str | None:
    """
    Get a configuration value from environment variables. But sometimes you just want a string.

    Passwords and database names that look like numbers must not be coerced.
    """
    return os.environ.get(key)


def require_config_value(key: str) -> str:
    value = os.environ.get(key)
    if value is None:
        raise ValueError(f"Environment variable {key} is required")
    return value


def get_app_environment() -> str:
    """Get the deployment environment from env var."""
    return get_config_value("APP_ENVIRONMENT", "local")


def get_port() -> int:
    return int(get_config_value("PORT", DEFAULT_PORT))


def get_zoom_webhook_secret() -> str | None:
    """Get the Zoom webhook secret token used for signatures and URL validation."""
    return get_config_value_str("ZOOM_WEBHOOK_SECRET_TOKEN")


def get_filemaker_server_url() -> str:
    return require_config_value("FM_SERVER_URL")


def get_filemaker_database() -> str:
    return require_config_value("FM_DATABASE")


def get_filemaker_layout() -> str:
    return require_config_value("FM_LAYOUT")


def get_filemaker_credentials() -> tuple[str, str]:
    """Get the FileMaker Data API account as (username, password)."""
    return require_config_value("FM_USERNAME"), require_config_value("FM_PASSWORD")


def get_filemaker_session_lease_seconds() -> int:
    """Get how long a FileMaker session token is trusted before proactive renewal."""
    lease = int(get_config_value("FM_SESSION_LEASE_SECONDS", DEFAULT_FM_SESSION_LEASE_SECONDS))
    if lease <= 0:
        raise ValueError("FM_SESSION_LEASE_SECONDS must be positive")
    return lease


def get_filemaker_http_timeout_seconds() -> float:
    return float(get_config_value("FM_HTTP_TIMEOUT_SECONDS", DEFAULT_FM_HTTP_TIMEOUT_SECONDS))


def get_display_timezone() -> str:
    """Get the timezone used when rendering timestamps for FileMaker fields."""
    return get_config_value_str("FM_TIMEZONE") or "UTC"


def get_missed_call_sets_end_time() -> bool:
    """Whether missed-call records get `call_end_time` populated."""
    return get_config_value("MISSED_CALL_SETS_END_TIME", False) is True


def get_duration_display_field() -> str | None:
    """Optional FileMaker field that receives the call duration rendered as HH:MM:SS."""
    return get_config_value_str("FM_DURATION_DISPLAY_FIELD") or None
