"""
Configuration Validation for the Smriti Client

This module contains configuration validation logic and the startup
configuration summary.
"""

from urllib.parse import urlparse

from utils.exceptions import ConfigurationError
from utils.helpers import is_valid_url


def validate_settings():
    """
    Validate that all required settings are properly configured.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    # Import settings here to avoid circular imports
    from config import settings

    errors = []

    base_url = settings.API_BASE_URL or ""
    if not is_valid_url(base_url) or urlparse(base_url).scheme not in ("http", "https"):
        errors.append(f"SMRITI_API_BASE_URL must be an http(s) URL, got {settings.API_BASE_URL!r}")

    if not settings.STORAGE_NAMESPACE:
        errors.append("SMRITI_STORAGE_NAMESPACE must not be empty")

    if not settings.STORAGE_FILE:
        errors.append("SMRITI_STORAGE_FILE must not be empty")

    # Validate numeric settings are within reasonable bounds
    numeric_validations = [
        ("FEED_PAGE_SIZE", settings.FEED_PAGE_SIZE, 1, settings.FEED_MAX_PAGE_SIZE),
        ("REQUEST_TIMEOUT", settings.REQUEST_TIMEOUT, 1, 300),
    ]

    for name, value, min_val, max_val in numeric_validations:
        if value < min_val or value > max_val:
            errors.append(f"{name} must be between {min_val} and {max_val}, got {value}")

    if settings.LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        errors.append(f"SMRITI_LOG_LEVEL must be a logging level name, got {settings.LOG_LEVEL!r}")

    # Raise all errors at once
    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)

    return True


def get_config_summary() -> dict:
    """
    Returns a summary of current configuration (without sensitive values).
    Useful for logging startup state.
    """
    # Import settings here to avoid circular imports
    from config import settings

    return {
        "backend": {
            "base_url": settings.API_BASE_URL,
            "timeout": settings.REQUEST_TIMEOUT,
        },
        "storage": {
            "namespace": settings.STORAGE_NAMESPACE,
            "file": settings.STORAGE_FILE,
        },
        "feed": {
            "page_size": settings.FEED_PAGE_SIZE,
        },
        "notifications": {
            "enabled": settings.ENABLE_NOTIFICATIONS,
            "platform": settings.DEVICE_PLATFORM,
            "device_token_configured": bool(settings.DEVICE_PUSH_TOKEN),
        },
    }
