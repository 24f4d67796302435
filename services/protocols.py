"""
Service Protocol Definitions

This module defines typing.Protocol interfaces for services used in the Smriti
client. These protocols enable loose coupling, dependency injection, and easier testing.

Protocols defined:
- AuthApi: Credential exchange used by the session manager
- PostsApi: Post operations used by the feed synchronizer
- NotificationChannel: Push-notification side channel driven by the session manager
"""

from typing import Protocol, Optional, List, Callable, Awaitable

from data.models import ApiResult, Post


class AuthApi(Protocol):
    """Protocol for the backend authentication endpoints.

    Both methods return an ApiResult whose data is an AuthGrant on success.
    """

    async def sign_up(self, username: str, email: str, password: str) -> ApiResult:
        """Create an account and obtain a session token.

        Args:
            username: The requested username.
            email: The account email address.
            password: The account password.

        Returns:
            ApiResult carrying an AuthGrant, or the failure.
        """
        ...

    async def login(self, username: str, password: str) -> ApiResult:
        """Exchange credentials for a session token.

        Args:
            username: The account username.
            password: The account password.

        Returns:
            ApiResult carrying an AuthGrant, or the failure.
        """
        ...

    def add_unauthorized_handler(self, handler: Callable[[str], Awaitable[None]]) -> None:
        """Register a coroutine called with the rejected token on any 401."""
        ...


class PostsApi(Protocol):
    """Protocol for the backend post endpoints."""

    async def fetch_posts(self, skip: int = 0, limit: int = 20) -> List[Post]:
        """Fetch the shared feed. Returns an empty list on any failure."""
        ...

    async def fetch_my_posts(self, skip: int = 0, limit: int = 20) -> ApiResult:
        """Fetch the current user's posts."""
        ...

    async def create_post(
        self,
        title: str,
        text_content: str,
        image_path: Optional[str] = None,
        document_path: Optional[str] = None
    ) -> ApiResult:
        """Create a post, optionally with one attachment."""
        ...

    async def delete_post(self, post_id: str) -> ApiResult:
        """Delete a post owned by the current user."""
        ...


class NotificationChannel(Protocol):
    """Protocol for the push-notification device registration channel.

    Implementations must not raise; failures are logged and reported as False.
    """

    async def register_device(self) -> bool:
        """Register this device's push token for the signed-in user."""
        ...

    async def unregister_device(self, auth_token: Optional[str] = None) -> bool:
        """Unregister this device's push token.

        Args:
            auth_token: Session token to authenticate with, for use after the
                stored token has already been cleared.
        """
        ...
