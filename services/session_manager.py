"""
Session Manager Module

This module owns the authentication state machine of the Smriti client:

    BOOTSTRAPPING -> UNAUTHENTICATED <-> AUTHENTICATED

It is the single source of truth for who is signed in, keeps the in-memory
session and the persisted token/user pair consistent, and notifies
subscribed listeners after every transition.

Persistence ordering: the user record is written before the token and the
token is cleared before the user record, so an interrupted write can only
ever leave "no session", never a token without its user.
"""

import asyncio
import json
from typing import Optional, List, Callable, Set

from config import settings
from data.models import ApiResult, SessionSnapshot, SessionState, User
from data.protocols import KeyValueStore
from services.protocols import AuthApi, NotificationChannel
from utils.exceptions import MalformedResponse, PersistenceError
from utils.logger import get_logger, mask_token

logger = get_logger(__name__)

SessionListener = Callable[[SessionSnapshot], None]


class SessionManager:
    """Authenticated/unauthenticated state machine backed by a persistent store."""

    def __init__(
        self,
        store: KeyValueStore,
        api_client: Optional[AuthApi] = None,
        notifications: Optional[NotificationChannel] = None,
        token_key: Optional[str] = None,
        user_key: Optional[str] = None
    ):
        """
        Initialize the session manager in the BOOTSTRAPPING state.

        Args:
            store: Persistent store for the token and user record
            api_client: ApiClient used by sign_in/sign_up; its 401 responses expire the session
            notifications: Optional NotificationChannel told about logins and logouts
            token_key: Storage key of the token
            user_key: Storage key of the JSON-encoded user
        """
        self.store = store
        self.api_client = api_client
        self.notifications = notifications
        self.token_key = token_key or settings.STORAGE_KEY_USER_TOKEN
        self.user_key = user_key or settings.STORAGE_KEY_USER_DATA

        self._state = SessionState.BOOTSTRAPPING
        self._token: Optional[str] = None
        self._user: Optional[User] = None
        self._epoch = 0
        self._lock = asyncio.Lock()
        self._authenticated = asyncio.Event()
        self._listeners: List[SessionListener] = []
        self._background_tasks: Set[asyncio.Task] = set()

        if api_client is not None:
            api_client.add_unauthorized_handler(self.expire)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def epoch(self) -> int:
        """Bumped whenever the held token changes; lets callers spot results from an older session."""
        return self._epoch

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    @property
    def is_loading(self) -> bool:
        return self._state is SessionState.BOOTSTRAPPING

    @property
    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(state=self._state, token=self._token, user=self._user, epoch=self._epoch)

    def current_token(self) -> Optional[str]:
        """Synchronous accessor for the in-memory token."""
        return self._token

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a listener called with a SessionSnapshot after every transition.

        Returns:
            Callable[[], None]: Call it to unsubscribe.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)

    async def wait_until_authenticated(self) -> None:
        """Suspend until the session is AUTHENTICATED."""
        await self._authenticated.wait()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _apply(self, state: SessionState, token: Optional[str], user: Optional[User]) -> None:
        changed = (state, token, user) != (self._state, self._token, self._user)
        if token != self._token:
            self._epoch += 1
        self._state = state
        self._token = token
        self._user = user
        if token:
            self._authenticated.set()
        else:
            self._authenticated.clear()
        if changed:
            logger.debug(f"Session is now {state.value} (epoch {self._epoch})")
            self._notify()

    async def restore(self) -> SessionSnapshot:
        """
        Restore the session from the persistent store.

        A stored token is trusted without contacting the backend; an expired
        token is caught by the first 401. Any read or parse failure resolves
        to UNAUTHENTICATED. BOOTSTRAPPING always ends here.

        Returns:
            SessionSnapshot: The resulting session.
        """
        async with self._lock:
            token = None
            user = None
            try:
                stored_token = await self.store.get_item(self.token_key)
                stored_user = await self.store.get_item(self.user_key)
                if stored_token and stored_user:
                    user = User.from_api(json.loads(stored_user))
                    token = stored_token
                elif stored_token:
                    logger.warning("Stored token has no user record, ignoring it")
            except PersistenceError as e:
                logger.error(f"Failed to restore session: {e}")
                token, user = None, None
            except (ValueError, MalformedResponse) as e:
                logger.error(f"Stored user record is unreadable: {e}")
                token, user = None, None

            if token:
                logger.info(f"Restored session for {user.username}")
                self._apply(SessionState.AUTHENTICATED, token, user)
            else:
                logger.info("No stored session found")
                self._apply(SessionState.UNAUTHENTICATED, None, None)
            return self.snapshot

    async def login(self, user: User, token: str) -> bool:
        """
        Persist a new session, then mark it AUTHENTICATED.

        Args:
            user: The signed-in account
            token: Bearer token issued by the backend

        Returns:
            bool: True on success. On a persistence failure False is
            returned and the store is put back to the previous session. If
            that also fails, both store and memory end up signed out.
        """
        if not token:
            logger.error("Refusing to log in with an empty token")
            return False

        async with self._lock:
            user_written = False
            try:
                await self.store.set_item(self.user_key, json.dumps(user.to_dict()))
                user_written = True
                await self.store.set_item(self.token_key, token)
            except PersistenceError as e:
                logger.error(f"Failed to persist session: {e}")
                if user_written:
                    await self._rollback_store()
                return False

            self._apply(SessionState.AUTHENTICATED, token, user)

        logger.info(f"Logged in as {user.username} (token {mask_token(token)})")
        if self.notifications is not None:
            self._spawn(self.notifications.register_device())
        return True

    async def logout(self) -> None:
        """
        End the session.

        The store is cleared first; the in-memory session is cleared even if
        that fails. Device unregistration runs in the background and its
        outcome does not affect the logout.
        """
        async with self._lock:
            token = self._token
            try:
                await self._clear_store()
            finally:
                self._apply(SessionState.UNAUTHENTICATED, None, None)

        logger.info("Logged out")
        if self.notifications is not None and token:
            self._spawn(self.notifications.unregister_device(auth_token=token))

    async def expire(self, rejected_token: Optional[str] = None) -> None:
        """
        Handle a 401 from the backend by dropping the session.

        Args:
            rejected_token: The token the backend refused. If a different
                session has since been established, it is left alone.
        """
        async with self._lock:
            if rejected_token is not None and self._token is not None and rejected_token != self._token:
                logger.debug("Ignoring rejection of a token from an earlier session")
                return
            logger.warning("Session rejected by server, signing out")
            try:
                await self._clear_store()
            finally:
                self._apply(SessionState.UNAUTHENTICATED, None, None)

    async def _rollback_store(self) -> None:
        """Put the store back in line with the in-memory session after a failed login."""
        if not self._token:
            await self._clear_store()
            return
        try:
            await self.store.set_item(self.user_key, json.dumps(self._user.to_dict()))
            await self.store.set_item(self.token_key, self._token)
        except PersistenceError as e:
            logger.error(f"Failed to restore previous session in store, signing out: {e}")
            await self._clear_store()
            self._apply(SessionState.UNAUTHENTICATED, None, None)

    async def _clear_store(self) -> None:
        # Token goes first so a partial clear never leaves a token without its user
        try:
            await self.store.remove_item(self.token_key)
        except PersistenceError as e:
            logger.error(f"Failed to clear stored token: {e}")
        try:
            await self.store.remove_item(self.user_key)
        except PersistenceError as e:
            logger.error(f"Failed to clear stored user: {e}")

    # -------------------------------------------------------------------------
    # Credential flows
    # -------------------------------------------------------------------------

    async def _complete(self, result: ApiResult) -> ApiResult:
        if not result.success:
            return result
        grant = result.data
        if not await self.login(grant.user, grant.token):
            return ApiResult.fail(PersistenceError("Could not save your session on this device"), raw=result.raw)
        return result

    async def sign_in(self, username: str, password: str) -> ApiResult:
        """
        Log in against the backend and start a session on success.

        Returns:
            ApiResult: The backend result; data is an AuthGrant on success.
        """
        if self.api_client is None:
            raise RuntimeError("SessionManager was created without an API client")
        return await self._complete(await self.api_client.login(username, password))

    async def sign_up(self, username: str, email: str, password: str) -> ApiResult:
        """
        Create an account against the backend and start a session on success.

        Returns:
            ApiResult: The backend result; data is an AuthGrant on success.
        """
        if self.api_client is None:
            raise RuntimeError("SessionManager was created without an API client")
        return await self._complete(await self.api_client.sign_up(username, email, password))

    # -------------------------------------------------------------------------
    # Background side effects
    # -------------------------------------------------------------------------

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def wait_for_background_tasks(self) -> None:
        """Await pending notification registration/unregistration calls."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
