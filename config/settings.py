"""
Configuration Settings for the Smriti Client

This module centralizes all configuration settings for the Smriti client,
including environment variables, backend endpoints, storage keys, and
application constants.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Determine the application root directory
APP_ROOT = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(dotenv_path=os.path.join(APP_ROOT, '.env'))


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


# =============================================================================
# Backend Settings
# =============================================================================

API_BASE_URL = os.getenv("SMRITI_API_BASE_URL", "http://localhost:8000/api/v1").rstrip("/")
REQUEST_TIMEOUT = _env_int("SMRITI_REQUEST_TIMEOUT", 15)   # Seconds per HTTP request

# =============================================================================
# Persistent Storage Settings
# =============================================================================

STORAGE_NAMESPACE = os.getenv("SMRITI_STORAGE_NAMESPACE", "@smriti")
STORAGE_FILE = os.path.expanduser(
    os.getenv("SMRITI_STORAGE_FILE", os.path.join("~", ".smriti", "storage.json"))
)

STORAGE_KEY_USER_TOKEN = f"{STORAGE_NAMESPACE}:userToken"
STORAGE_KEY_USER_DATA = f"{STORAGE_NAMESPACE}:userData"
STORAGE_KEY_DEVICE_TOKEN = f"{STORAGE_NAMESPACE}:deviceToken"

# =============================================================================
# Feed Settings
# =============================================================================

FEED_PAGE_SIZE = _env_int("SMRITI_FEED_PAGE_SIZE", 20)    # Posts per fetch
FEED_MAX_PAGE_SIZE = 100

# =============================================================================
# Notification Settings
# =============================================================================

ENABLE_NOTIFICATIONS = _env_bool("SMRITI_ENABLE_NOTIFICATIONS", True)
DEVICE_PLATFORM = os.getenv("SMRITI_DEVICE_PLATFORM", "cli")
DEVICE_PUSH_TOKEN = os.getenv("SMRITI_DEVICE_PUSH_TOKEN")

# =============================================================================
# Input Validation Settings
# =============================================================================

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6
MAX_TITLE_LENGTH = 50

# =============================================================================
# Logging Settings
# =============================================================================

LOG_LEVEL = os.getenv("SMRITI_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("SMRITI_LOG_FILE")     # File logging is off unless set
