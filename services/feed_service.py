"""
Feed Service Module

This module keeps the post feed shown to the user in sync with the backend.
It exposes refresh, pull-to-refresh and foreground-resume refreshes, and
publishing/removing posts followed by a refresh.

Every refresh replaces the whole snapshot. Refreshes are numbered; only the
most recently started one may write the snapshot, and a result that started
under a different session (logout or re-login in between) is dropped.
"""

from typing import Optional, List, Callable, Tuple

from config import settings
from data.models import ApiResult, FeedSnapshot, Post, SessionSnapshot
from services.protocols import PostsApi
from utils.logger import get_logger

logger = get_logger(__name__)

FeedListener = Callable[[FeedSnapshot], None]

APP_STATE_ACTIVE = "active"
APP_STATE_INACTIVE = "inactive"
APP_STATE_BACKGROUND = "background"

FEED_SOURCES = ("all", "mine")


class FeedSynchronizer:
    """Maintains the feed snapshot for one post source."""

    def __init__(self, api_client: PostsApi, session, source: str = "all", page_size: Optional[int] = None):
        """
        Initialize the synchronizer.

        Args:
            api_client: PostsApi implementation
            session: SessionManager the feed belongs to
            source: "all" for the shared feed, "mine" for the user's own posts
            page_size: Posts per fetch (defaults to settings.FEED_PAGE_SIZE)
        """
        if source not in FEED_SOURCES:
            raise ValueError(f"Unknown feed source {source!r}, expected one of {FEED_SOURCES}")

        self.api_client = api_client
        self.session = session
        self.source = source
        self.page_size = page_size or settings.FEED_PAGE_SIZE

        self._snapshot = FeedSnapshot()
        self._generation = 0
        self._listeners: List[FeedListener] = []
        self._app_state = APP_STATE_ACTIVE
        self._loaded = False
        self._session_epoch = session.epoch

        session.subscribe(self._on_session_change)

    # -------------------------------------------------------------------------
    # Snapshot and observers
    # -------------------------------------------------------------------------

    @property
    def snapshot(self) -> FeedSnapshot:
        return self._snapshot

    @property
    def posts(self) -> Tuple[Post, ...]:
        return self._snapshot.posts

    @property
    def refreshing(self) -> bool:
        return self._snapshot.refreshing

    @property
    def app_state(self) -> str:
        return self._app_state

    def subscribe(self, listener: FeedListener) -> Callable[[], None]:
        """
        Register a listener called with the FeedSnapshot whenever it changes.

        Returns:
            Callable[[], None]: Call it to unsubscribe.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, snapshot: FeedSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Feed listener failed: {e}", exc_info=True)

    def _on_session_change(self, session: SessionSnapshot) -> None:
        if session.epoch == self._session_epoch:
            return
        self._session_epoch = session.epoch
        # Invalidate anything in flight and drop the previous session's posts
        self._generation += 1
        self._loaded = False
        if self._snapshot.posts or self._snapshot.refreshing:
            logger.debug("Session changed, clearing feed")
            self._publish(FeedSnapshot(posts=(), refreshing=False, generation=self._generation))

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def _fetch(self) -> List[Post]:
        if self.source == "mine":
            result = await self.api_client.fetch_my_posts(skip=0, limit=self.page_size)
            if not result.success:
                logger.error(f"Failed to fetch my posts: {result.message}")
                return []
            return list(result.data or [])
        return list(await self.api_client.fetch_posts(skip=0, limit=self.page_size))

    @staticmethod
    def _unique(posts: List[Post]) -> Tuple[Post, ...]:
        seen = set()
        unique = []
        for post in posts:
            if post.id in seen:
                logger.warning(f"Duplicate post {post.id} in feed response, keeping first")
                continue
            seen.add(post.id)
            unique.append(post)
        return tuple(unique)

    async def refresh(self) -> bool:
        """
        Fetch the feed and replace the snapshot with the result.

        An empty result is applied like any other. If a newer refresh was
        started meanwhile, or the session changed, the result is discarded.

        Returns:
            bool: True if this refresh's result was applied.
        """
        self._generation += 1
        generation = self._generation
        epoch = self.session.epoch

        if not self._snapshot.refreshing:
            self._publish(FeedSnapshot(
                posts=self._snapshot.posts, refreshing=True, generation=self._snapshot.generation
            ))

        posts = await self._fetch()

        if generation != self._generation or epoch != self.session.epoch:
            logger.debug(f"Discarding stale feed result (request {generation}, latest {self._generation})")
            return False

        self._loaded = True
        self._publish(FeedSnapshot(posts=self._unique(posts), refreshing=False, generation=generation))
        logger.info(f"Feed ({self.source}) refreshed with {len(self._snapshot.posts)} posts")
        return True

    async def pull_to_refresh(self) -> bool:
        """Refresh triggered by the pull gesture."""
        return await self.refresh()

    async def initial_load(self) -> bool:
        """
        Load the feed once, waiting for the session to be authenticated first.

        Returns:
            bool: True if the load's result was applied.
        """
        if self._loaded:
            return True
        if not self.session.is_authenticated:
            logger.debug("Deferring initial feed load until signed in")
            await self.session.wait_until_authenticated()
        return await self.refresh()

    async def on_foreground_resume(self) -> bool:
        """Refresh unconditionally when the app becomes active again."""
        logger.debug("App resumed, refreshing feed")
        return await self.refresh()

    async def on_app_state_change(self, next_state: str) -> bool:
        """
        Track app lifecycle and refresh on a transition back to active.

        Args:
            next_state: "active", "inactive" or "background"

        Returns:
            bool: True if a refresh was triggered.
        """
        previous = self._app_state
        self._app_state = next_state
        if previous != APP_STATE_ACTIVE and next_state == APP_STATE_ACTIVE:
            await self.on_foreground_resume()
            return True
        return False

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def publish(
        self,
        title: str,
        text_content: str,
        image_path: Optional[str] = None,
        document_path: Optional[str] = None
    ) -> ApiResult:
        """
        Create a post and refresh the feed so it shows up.

        Returns:
            ApiResult: The create_post result.
        """
        result = await self.api_client.create_post(
            title, text_content, image_path=image_path, document_path=document_path
        )
        if result.success:
            await self.refresh()
        else:
            logger.error(f"Failed to create post: {result.message}")
        return result

    async def remove(self, post_id: str) -> ApiResult:
        """
        Delete a post and refresh the feed.

        Returns:
            ApiResult: The delete_post result.
        """
        result = await self.api_client.delete_post(post_id)
        if result.success:
            await self.refresh()
        else:
            logger.error(f"Failed to delete post {post_id}: {result.message}")
        return result
