"""
Custom Exception Classes for the Smriti Client

This module defines custom exceptions for better error handling and
categorization of failures across the application.

API errors are not raised past the API client; they travel inside an
ApiResult so callers inspect results instead of catching exceptions.
"""

from typing import Optional


class SmritiError(Exception):
    """Base exception for all Smriti client errors."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(SmritiError):
    """Raised when configuration validation fails or required settings are missing."""
    pass


# =============================================================================
# Input Validation Errors
# =============================================================================

class ValidationError(SmritiError):
    """Raised when user input fails validation, before any network call."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


# =============================================================================
# Persistence Errors
# =============================================================================

class PersistenceError(SmritiError):
    """Raised when the persistent key-value store cannot be read or written."""
    pass


# =============================================================================
# API Errors
# =============================================================================

class ApiError(SmritiError):
    """Base exception for API client errors."""
    pass


class NoAuthToken(ApiError):
    """An authenticated operation was attempted with no stored session token."""

    def __init__(self, message: str = "No authentication token found"):
        super().__init__(message)


class NetworkUnreachable(ApiError):
    """Transport-level failure: DNS, connection refused, timeout."""

    def __init__(self, message: str = "Network error occurred"):
        super().__init__(message)


class ServerRejected(ApiError):
    """The backend answered with a non-2xx status."""

    def __init__(self, status: int, message: Optional[str] = None):
        self.status = status
        self.message = message or f"Server error: {status}"
        super().__init__(self.message)

    @property
    def is_auth_rejection(self) -> bool:
        return self.status == 401


class MalformedResponse(ApiError):
    """The backend answered with a body of an unexpected shape."""

    def __init__(self, message: str = "Unexpected response from server"):
        super().__init__(message)
