"""
Data Models for the Smriti Client

This module contains data classes and models used throughout the application:
users, posts, the session and feed snapshots exposed to the UI, and the
uniform result shape returned by the API client.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Tuple

from utils.exceptions import SmritiError, MalformedResponse, ServerRejected
from utils.helpers import first_present, parse_timestamp


@dataclass(frozen=True)
class User:
    """An account on the backend."""
    id: str
    username: str
    email: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "User":
        """
        Build a User from a backend payload, accepting either field naming.

        Raises:
            MalformedResponse: If the payload is not an object or has no id/username.
        """
        if not isinstance(data, dict):
            raise MalformedResponse(f"Expected user object, got {type(data).__name__}")

        user_id = first_present(data, "id", "_id", "user_id", "userId")
        username = first_present(data, "username", "userName")
        if user_id is None or not username:
            raise MalformedResponse("User payload is missing id or username")

        return cls(
            id=str(user_id),
            username=str(username),
            email=first_present(data, "email"),
            created_at=parse_timestamp(first_present(data, "createdAt", "created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the persistent store."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class PostAuthor:
    """Author reference embedded in a post."""
    username: str
    id: Optional[str] = None


@dataclass(frozen=True)
class Post:
    """A reflection in canonical internal shape."""
    id: str
    title: str
    text_content: str
    author: PostAuthor
    created_at: Optional[datetime] = None
    image_url: Optional[str] = None
    document_url: Optional[str] = None
    content_type: str = "note"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Post":
        """
        Normalize a backend post payload into the canonical shape.

        Field names may arrive camelCase or snake_case; older payloads use
        description/date instead of textContent/createdAt.

        Raises:
            MalformedResponse: If the payload is not an object or has no id.
        """
        if not isinstance(data, dict):
            raise MalformedResponse(f"Expected post object, got {type(data).__name__}")

        post_id = first_present(data, "id", "_id")
        if post_id is None:
            raise MalformedResponse("Post payload is missing id")

        raw_author = first_present(data, "author", "user")
        if isinstance(raw_author, dict):
            author_id = first_present(raw_author, "id", "_id")
            author = PostAuthor(
                username=str(first_present(raw_author, "username", default="Unknown")),
                id=str(author_id) if author_id is not None else None,
            )
        elif isinstance(raw_author, str) and raw_author:
            author = PostAuthor(username=raw_author)
        else:
            author_id = first_present(data, "authorId", "author_id", "userId", "user_id")
            author = PostAuthor(
                username=str(first_present(data, "authorUsername", "author_username", default="Unknown")),
                id=str(author_id) if author_id is not None else None,
            )

        return cls(
            id=str(post_id),
            title=str(first_present(data, "title", default="")),
            text_content=str(first_present(data, "textContent", "text_content", "description", default="")),
            author=author,
            created_at=parse_timestamp(first_present(data, "createdAt", "created_at", "date")),
            image_url=first_present(data, "imageUrl", "image_url"),
            document_url=first_present(data, "documentUrl", "document_url"),
            content_type=str(first_present(data, "contentType", "content_type", default="note")),
        )


class SessionState(Enum):
    """Authentication lifecycle states."""
    BOOTSTRAPPING = "bootstrapping"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the session handed to UI listeners."""
    state: SessionState
    token: Optional[str] = None
    user: Optional[User] = None
    epoch: int = 0

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def is_loading(self) -> bool:
        return self.state is SessionState.BOOTSTRAPPING


@dataclass(frozen=True)
class FeedSnapshot:
    """The complete post list currently shown, replaced wholesale on refresh."""
    posts: Tuple[Post, ...] = ()
    refreshing: bool = False
    generation: int = 0


@dataclass(frozen=True)
class AuthGrant:
    """Token and account returned by a successful sign-up or login."""
    token: str
    user: User


@dataclass
class ApiResult:
    """Uniform result of an API client call; errors are carried, never raised."""
    success: bool
    data: Any = None
    error: Optional[SmritiError] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None, raw: Optional[Dict[str, Any]] = None) -> "ApiResult":
        return cls(success=True, data=data, raw=raw or {})

    @classmethod
    def fail(cls, error: SmritiError, raw: Optional[Dict[str, Any]] = None) -> "ApiResult":
        return cls(success=False, error=error, raw=raw or {})

    @property
    def message(self) -> Optional[str]:
        """Server or error message suitable for showing to the user."""
        if self.error is not None:
            return str(self.error)
        if isinstance(self.raw, dict):
            return self.raw.get("message")
        return None

    @property
    def status(self) -> Optional[int]:
        if isinstance(self.error, ServerRejected):
            return self.error.status
        return None
