"""
Shared Test Fixtures for the Smriti Client

This module provides common fixtures used across all test modules.
Fixtures include mocks for HTTP responses, in-memory stores, log capture,
and data factories for test objects.
"""

import pytest
from unittest.mock import MagicMock, patch
from typing import Optional, Dict, Any
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from data.models import User
from data.storage import MemoryStore


TEST_BASE_URL = "https://api.smriti.test/api/v1"
TEST_TOKEN = "test-session-token-abc123"


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def memory_store():
    """An empty in-memory key-value store."""
    return MemoryStore()


@pytest.fixture
def authed_store(user_factory):
    """
    An in-memory store holding a persisted session.

    Returns:
        MemoryStore: Store with TEST_TOKEN and a JSON-encoded user.
    """
    import json

    user = user_factory()
    return MemoryStore({
        settings.STORAGE_KEY_USER_TOKEN: TEST_TOKEN,
        settings.STORAGE_KEY_USER_DATA: json.dumps(user.to_dict()),
    })


# =============================================================================
# Logging Fixtures
# =============================================================================

@pytest.fixture
def capture_logs():
    """
    Capture log messages for assertion in tests.

    Returns:
        list: A list that will contain captured log records.
    """
    import logging

    class LogCapture(logging.Handler):
        def __init__(self):
            super().__init__()
            self.records = []

        def emit(self, record):
            self.records.append(record)

    handler = LogCapture()
    handler.setLevel(logging.DEBUG)

    app_logger = logging.getLogger("smriti")
    original_level = app_logger.level
    app_logger.setLevel(logging.DEBUG)
    app_logger.addHandler(handler)

    yield handler.records

    app_logger.removeHandler(handler)
    app_logger.setLevel(original_level)


# =============================================================================
# HTTP Response Fixtures
# =============================================================================

@pytest.fixture
def mock_http_response():
    """
    Factory fixture for creating mock HTTP responses.

    Usage:
        def test_http_request(mock_http_response):
            response = mock_http_response(
                status_code=200,
                json_data={'success': True}
            )

    Returns:
        callable: A factory function for creating mock responses.
    """
    def _create_response(
        status_code: int = 200,
        json_data: Optional[Any] = None,
        text: str = '',
        headers: Optional[Dict[str, str]] = None,
    ) -> MagicMock:
        """
        Create a mock HTTP response object.

        Args:
            status_code: HTTP status code (default 200).
            json_data: Value to return from response.json(); None makes json() raise.
            text: Raw body text.
            headers: Response headers dictionary.

        Returns:
            MagicMock: A mock response object mimicking requests.Response.
        """
        import json

        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.headers = headers or {'Content-Type': 'application/json'}
        mock_response.ok = 200 <= status_code < 300
        mock_response.text = text or (json.dumps(json_data) if json_data is not None else '')

        if json_data is not None:
            mock_response.json.return_value = json_data
        else:
            mock_response.json.side_effect = ValueError("No JSON data")

        return mock_response

    return _create_response


@pytest.fixture
def mock_request(mock_http_response):
    """
    Patch requests.request as used by the API client.

    Usage:
        def test_api_call(mock_request):
            mock_request.return_value = mock_request.response(json_data={...})

    Returns:
        MagicMock: The patched function with the response factory attached.
    """
    with patch('services.api_client.requests.request') as mock_req:
        mock_req.response = mock_http_response
        yield mock_req


# =============================================================================
# Data Model Factories
# =============================================================================

@pytest.fixture
def user_factory():
    """
    Factory fixture for creating User test objects.

    Returns:
        callable: A factory function for creating User objects.
    """
    def _create_user(
        id: str = "user-1",
        username: str = "meera",
        email: Optional[str] = "meera@example.com",
        created_at=None,
    ) -> User:
        return User(id=id, username=username, email=email, created_at=created_at)

    return _create_user


@pytest.fixture
def post_payload_factory():
    """
    Factory fixture for backend post payloads (camelCase by default).

    Returns:
        callable: A factory returning a dict shaped like the backend's post object.
    """
    def _create_payload(
        id: str = "post-1",
        title: str = "Morning stillness",
        text_content: str = "Sat by the window before anyone woke.",
        username: str = "meera",
        created_at: str = "2024-01-15T10:00:00Z",
        snake_case: bool = False,
        **extra
    ) -> Dict[str, Any]:
        if snake_case:
            payload = {
                "id": id,
                "title": title,
                "text_content": text_content,
                "author": {"username": username, "id": "user-1"},
                "created_at": created_at,
            }
        else:
            payload = {
                "id": id,
                "title": title,
                "textContent": text_content,
                "author": {"username": username, "id": "user-1"},
                "createdAt": created_at,
            }
        payload.update(extra)
        return payload

    return _create_payload
