"""
API Client Module

This module handles HTTP communication with the Smriti backend.
It provides functionality for signing up, logging in, creating, listing
and deleting posts, fetching the user profile, and registering devices
for push notifications.

Every call returns a uniform ApiResult (or, for the feed, a plain list);
transport and server failures are carried in the result and never raised.
The bearer token is read from the persistent store on every call, so a
logout anywhere in the app is reflected on the next request.
"""

import asyncio
import mimetypes
import os
from typing import Optional, List, Dict, Any, Callable, Awaitable

import requests

from config import settings
from data.models import ApiResult, AuthGrant, Post, User
from data.protocols import KeyValueStore
from utils.exceptions import (
    ApiError, NoAuthToken, NetworkUnreachable, ServerRejected, MalformedResponse, PersistenceError
)
from utils.helpers import safe_get
from utils.logger import get_logger, mask_token

logger = get_logger(__name__)

UnauthorizedHandler = Callable[[str], Awaitable[Any]]


class ApiClient:
    """Client for the Smriti REST backend."""

    def __init__(
        self,
        store: KeyValueStore,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        token_key: Optional[str] = None
    ):
        """
        Initialize the API client.

        Args:
            store: Persistent store holding the session token
            base_url: Backend base URL (defaults to settings.API_BASE_URL)
            timeout: Seconds per request (defaults to settings.REQUEST_TIMEOUT)
            token_key: Storage key of the session token
        """
        self.store = store
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self.token_key = token_key or settings.STORAGE_KEY_USER_TOKEN
        self._unauthorized_handlers: List[UnauthorizedHandler] = []

    def add_unauthorized_handler(self, handler: UnauthorizedHandler) -> None:
        """Register a coroutine called with the rejected token whenever the backend answers 401."""
        self._unauthorized_handlers.append(handler)

    async def get_auth_token(self) -> Optional[str]:
        """
        Read the session token from the persistent store.

        Returns:
            Optional[str]: The token, or None if absent or the store is unreadable.
        """
        try:
            token = await self.store.get_item(self.token_key)
        except PersistenceError as e:
            logger.error(f"Error getting auth token: {e}")
            return None
        return token or None

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        notify_unauthorized: bool = True,
        **kwargs
    ) -> ApiResult:
        url = f"{self.base_url}{path}"
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.debug(f"{method} {url} (token: {mask_token(token)})")
        try:
            response = await asyncio.to_thread(
                requests.request, method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error calling {method} {path}: {e}")
            return ApiResult.fail(NetworkUnreachable(str(e) or "Network error occurred"))

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok:
            message = None
            if isinstance(payload, dict):
                message = payload.get("error") or payload.get("message")
            error = ServerRejected(response.status_code, message)
            logger.warning(f"{method} {path} rejected: {error.message}")
            if token and notify_unauthorized and error.is_auth_rejection:
                await self._notify_unauthorized(token)
            return ApiResult.fail(error, raw=payload if isinstance(payload, dict) else None)

        if not isinstance(payload, dict):
            logger.error(f"{method} {path} returned a non-object body")
            return ApiResult.fail(MalformedResponse(f"Expected JSON object from {path}"))

        return ApiResult.ok(payload, raw=payload)

    async def _notify_unauthorized(self, token: str) -> None:
        for handler in self._unauthorized_handlers:
            try:
                await handler(token)
            except Exception as e:
                logger.error(f"Unauthorized handler failed: {e}", exc_info=True)

    async def _authorized(self, method: str, path: str, **kwargs) -> ApiResult:
        token = await self.get_auth_token()
        if not token:
            logger.error(f"No authentication token found for {method} {path}")
            return ApiResult.fail(NoAuthToken())
        return await self._request(method, path, token=token, **kwargs)

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    def _parse_auth(self, result: ApiResult) -> ApiResult:
        if not result.success:
            return result
        payload = result.data
        if not payload.get("success"):
            message = payload.get("error") or payload.get("message") or "Something went wrong"
            return ApiResult.fail(ServerRejected(200, message), raw=payload)

        data = payload.get("data")
        if not isinstance(data, dict) or not data.get("token"):
            return ApiResult.fail(MalformedResponse("Authentication response has no token"), raw=payload)

        # Either {token, user: {...}} or {token, ...userFields}
        user_data = data.get("user") if isinstance(data.get("user"), dict) else {
            k: v for k, v in data.items() if k != "token"
        }
        try:
            user = User.from_api(user_data)
        except MalformedResponse as e:
            return ApiResult.fail(e, raw=payload)

        return ApiResult.ok(AuthGrant(token=str(data["token"]), user=user), raw=payload)

    async def sign_up(self, username: str, email: str, password: str) -> ApiResult:
        """
        Create an account.

        Args:
            username: The requested username
            email: The account email
            password: The account password

        Returns:
            ApiResult: data is an AuthGrant on success
        """
        result = await self._request(
            "POST", "/auth/signup",
            json={"username": username, "email": email, "password": password}
        )
        result = self._parse_auth(result)
        if result.success:
            logger.info(f"Signed up as {username}")
        return result

    async def login(self, username: str, password: str) -> ApiResult:
        """
        Log in with username and password.

        Returns:
            ApiResult: data is an AuthGrant on success
        """
        result = await self._request(
            "POST", "/auth/login",
            json={"username": username, "password": password}
        )
        result = self._parse_auth(result)
        if result.success:
            logger.info(f"Logged in as {username}")
        return result

    # -------------------------------------------------------------------------
    # Posts
    # -------------------------------------------------------------------------

    def _read_attachment(self, field: str, path: str):
        mime_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        with open(path, "rb") as f:
            content = f.read()
        return field, (os.path.basename(path), content, mime_type)

    async def create_post(
        self,
        title: str,
        text_content: str,
        image_path: Optional[str] = None,
        document_path: Optional[str] = None
    ) -> ApiResult:
        """
        Create a post.

        Without attachments the body is form-encoded with content_type "note".
        With an image or document the body becomes multipart and content_type
        names the attachment kind.

        Args:
            title: Post title
            text_content: Post body
            image_path: Optional local image file to attach
            document_path: Optional local document file to attach

        Returns:
            ApiResult: data is the created Post on success
        """
        token = await self.get_auth_token()
        if not token:
            logger.error("No authentication token found for POST /posts/")
            return ApiResult.fail(NoAuthToken())

        form = {"content_type": "note", "title": title, "text_content": text_content}
        files = {}
        try:
            if image_path:
                form["content_type"] = "image"
                field, value = await asyncio.to_thread(self._read_attachment, "image", image_path)
                files[field] = value
            if document_path:
                if not image_path:
                    form["content_type"] = "document"
                field, value = await asyncio.to_thread(self._read_attachment, "document", document_path)
                files[field] = value
        except OSError as e:
            logger.error(f"Could not read attachment: {e}")
            return ApiResult.fail(ApiError(f"Could not read attachment: {e}"))

        if files:
            result = await self._request("POST", "/posts/", token=token, data=form, files=files)
        else:
            result = await self._request(
                "POST", "/posts/",
                token=token,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"}
            )
        if not result.success:
            return result

        post_data = result.data.get("post") or safe_get(result.data, "data", "post")
        try:
            post = Post.from_api(post_data)
        except MalformedResponse as e:
            logger.error(f"Create post response malformed: {e}")
            return ApiResult.fail(e, raw=result.raw)

        logger.info(f"Created post {post.id}: {title}")
        return ApiResult.ok(post, raw=result.raw)

    def _parse_posts(self, payload: Dict[str, Any]) -> List[Post]:
        raw_posts = safe_get(payload, "data", "posts")
        if raw_posts is None:
            raw_posts = payload.get("posts")
        if not isinstance(raw_posts, list):
            raise MalformedResponse("Response has no posts list")

        posts = []
        for raw in raw_posts:
            try:
                posts.append(Post.from_api(raw))
            except MalformedResponse as e:
                logger.warning(f"Skipping malformed post: {e}")
        return posts

    async def fetch_posts(self, skip: int = 0, limit: int = 20) -> List[Post]:
        """
        Fetch the shared feed.

        Args:
            skip: Number of posts to skip (pagination)
            limit: Maximum number of posts to fetch

        Returns:
            List[Post]: Posts in server order; empty on any failure.
        """
        result = await self._authorized("GET", "/posts/", params={"skip": skip, "limit": limit})
        if not result.success:
            logger.error(f"Failed to fetch posts: {result.message}")
            return []
        try:
            posts = self._parse_posts(result.data)
        except MalformedResponse as e:
            logger.error(f"Failed to fetch posts: {e}")
            return []

        logger.info(f"Fetched {len(posts)} posts")
        return posts

    async def fetch_my_posts(self, skip: int = 0, limit: int = 20) -> ApiResult:
        """
        Fetch the signed-in user's own posts.

        Returns:
            ApiResult: data is a list of Post on success
        """
        result = await self._authorized("GET", "/posts/me", params={"skip": skip, "limit": limit})
        if not result.success:
            return result
        try:
            posts = self._parse_posts(result.data)
        except MalformedResponse as e:
            return ApiResult.fail(e, raw=result.raw)
        return ApiResult.ok(posts, raw=result.raw)

    async def delete_post(self, post_id: str) -> ApiResult:
        """
        Delete a post. Ownership is enforced by the backend.

        Returns:
            ApiResult: data is the server's confirmation message
        """
        result = await self._authorized("DELETE", f"/posts/{post_id}")
        if not result.success:
            return result
        logger.info(f"Deleted post {post_id}")
        return ApiResult.ok(result.data.get("message"), raw=result.raw)

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def fetch_user_profile(self) -> ApiResult:
        """
        Fetch the signed-in user's profile.

        Returns:
            ApiResult: data is a User on success
        """
        result = await self._authorized("GET", "/users/me")
        if not result.success:
            return result
        user_data = safe_get(result.data, "data", "user")
        try:
            user = User.from_api(user_data)
        except MalformedResponse as e:
            return ApiResult.fail(e, raw=result.raw)
        return ApiResult.ok(user, raw=result.raw)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def register_notification_token(self, device_token: str, platform: str) -> ApiResult:
        """Register a device push token for the signed-in user."""
        return await self._authorized(
            "POST", "/notifications/register",
            json={"token": device_token, "platform": platform}
        )

    async def unregister_notification_token(
        self,
        device_token: str,
        platform: str,
        auth_token: Optional[str] = None
    ) -> ApiResult:
        """
        Unregister a device push token.

        Args:
            device_token: The push token to remove
            platform: Device platform name
            auth_token: Session token to use instead of the stored one; lets a
                logout unregister after the stored token is already gone.
        """
        body = {"token": device_token, "platform": platform}
        if auth_token:
            return await self._request(
                "POST", "/notifications/unregister",
                token=auth_token, notify_unauthorized=False, json=body
            )
        return await self._authorized("POST", "/notifications/unregister", json=body)
