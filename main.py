"""
Smriti Client Application

This is the main entry point for the Smriti command-line client.
It restores the saved session, signs users up or in, shows the feed of
reflections, and creates or deletes posts against the Smriti backend.
"""

import sys
import asyncio
import argparse
import getpass
import logging
from typing import Optional, List

from config import settings
from config.validators import validate_settings, get_config_summary
from utils.logger import get_logger, setup_file_logging, set_log_level
from utils.exceptions import SmritiError, ValidationError, ConfigurationError
from utils.helpers import truncate_text
from utils.validators import validate_signup, validate_login, validate_post
from data.models import Post
from data.storage import JsonFileStore
from services.api_client import ApiClient
from services.session_manager import SessionManager
from services.notification_service import PushNotificationService
from services.feed_service import FeedSynchronizer

# Set up logging
logger = get_logger(__name__)


class SmritiApp:
    """
    Main application class for the Smriti client.

    This class wires the persistent store, API client, session manager,
    notification channel and feed synchronizers together and implements
    the user-facing commands on top of them.
    """

    def __init__(
        self,
        store=None,
        api_client: Optional[ApiClient] = None,
        session: Optional[SessionManager] = None,
        notifications: Optional[PushNotificationService] = None,
        feed: Optional[FeedSynchronizer] = None,
        my_feed: Optional[FeedSynchronizer] = None,
        validate: bool = True
    ):
        """
        Initialize the application, building any service not injected.

        Args:
            store: KeyValueStore for session data
            api_client: Backend client
            session: Session manager
            notifications: Push notification channel
            feed: Synchronizer for the shared feed
            my_feed: Synchronizer for the user's own posts
            validate: Whether to validate settings first
        """
        if validate:
            validate_settings()

        self.store = store or JsonFileStore(settings.STORAGE_FILE)
        self.api_client = api_client or ApiClient(self.store)
        self.notifications = notifications or PushNotificationService(self.api_client, self.store)
        self.session = session or SessionManager(
            self.store, api_client=self.api_client, notifications=self.notifications
        )
        self.feed = feed or FeedSynchronizer(self.api_client, self.session, source="all")
        self.my_feed = my_feed or FeedSynchronizer(self.api_client, self.session, source="mine")

    async def start(self) -> None:
        """Restore any saved session."""
        snapshot = await self.session.restore()
        if snapshot.is_authenticated:
            logger.info(f"Signed in as {snapshot.user.username}")

    async def shutdown(self) -> None:
        """Let background notification calls finish."""
        await self.session.wait_for_background_tasks()

    def _require_session(self) -> bool:
        if not self.session.is_authenticated:
            print("You are not signed in. Run 'login' or 'signup' first.")
            return False
        return True

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def signup(self, username: str, email: str, password: str, confirm_password: str) -> bool:
        """Create an account and sign in."""
        username, email = validate_signup(username, email, password, confirm_password)
        result = await self.session.sign_up(username, email, password)
        if not result.success:
            print(f"Sign Up Failed: {result.message}")
            return False
        print(f"Welcome to Smriti, {username}!")
        if result.message:
            print(result.message)
        return True

    async def login(self, username: str, password: str) -> bool:
        """Sign in with existing credentials."""
        username = validate_login(username, password)
        result = await self.session.sign_in(username, password)
        if not result.success:
            print(f"Login Failed: {result.message or 'Invalid username or password'}")
            return False
        print(f"Namaste, {username}!")
        return True

    async def logout(self) -> bool:
        """Sign out locally and unregister this device."""
        if not self.session.is_authenticated:
            print("Already signed out.")
            return True
        await self.session.logout()
        print("Signed out.")
        return True

    async def whoami(self) -> bool:
        """Show the signed-in user, refreshed from the server when possible."""
        if not self._require_session():
            return False
        result = await self.api_client.fetch_user_profile()
        user = result.data if result.success else self.session.user
        if not result.success:
            logger.warning(f"Could not refresh profile: {result.message}")
        if user is None:
            print("Your session has expired. Please sign in again.")
            return False
        print(f"{user.username} <{user.email or 'no email'}> (id {user.id})")
        return True

    async def show_feed(self, mine: bool = False) -> bool:
        """Load and print the shared feed or the user's own posts."""
        if not self._require_session():
            return False
        synchronizer = self.my_feed if mine else self.feed
        await synchronizer.initial_load()
        posts = synchronizer.posts
        if not posts:
            print("No reflections yet.")
            return True
        for post in posts:
            print(format_post(post))
            print()
        return True

    async def create_post(
        self,
        title: str,
        text_content: str,
        image_path: Optional[str] = None,
        document_path: Optional[str] = None
    ) -> bool:
        """Publish a reflection and show the refreshed feed."""
        if not self._require_session():
            return False
        title, text_content = validate_post(title, text_content)
        result = await self.feed.publish(
            title, text_content, image_path=image_path, document_path=document_path
        )
        if not result.success:
            print(f"Could not save post: {result.message}")
            return False
        print(f"Saved \"{result.data.title}\" (id {result.data.id}).")
        return True

    async def delete_post(self, post_id: str) -> bool:
        """Delete one of the user's posts."""
        if not self._require_session():
            return False
        result = await self.my_feed.remove(post_id)
        if not result.success:
            print(f"Could not delete post: {result.message}")
            return False
        print(result.data or "Post deleted.")
        return True


def format_post(post: Post) -> str:
    """Render a post for the terminal."""
    date = post.created_at.strftime("%Y-%m-%d") if post.created_at else "unknown date"
    lines = [
        post.title or "(untitled)",
        f"  Author: {post.author.username or 'Unknown'} | {date}",
        f"  {truncate_text(post.text_content, 280)}",
    ]
    if post.image_url:
        lines.append(f"  Image: {post.image_url}")
    if post.document_url:
        lines.append(f"  Document: {post.document_url}")
    return "\n".join(lines)


def create_app(**kwargs) -> SmritiApp:
    """Factory for a SmritiApp wired from settings."""
    return SmritiApp(**kwargs)


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Smriti - a space for reflection')
    parser.add_argument('--log-file', type=str, default=None, help='Log file path')
    parser.add_argument('--log-level', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        default=None, help='Logging level')
    subparsers = parser.add_subparsers(dest='command', required=True)

    signup = subparsers.add_parser('signup', help='Create an account')
    signup.add_argument('--username', required=True)
    signup.add_argument('--email', required=True)
    signup.add_argument('--password', help='Prompted for when omitted')

    login = subparsers.add_parser('login', help='Sign in')
    login.add_argument('--username', required=True)
    login.add_argument('--password', help='Prompted for when omitted')

    subparsers.add_parser('logout', help='Sign out')
    subparsers.add_parser('whoami', help='Show the signed-in user')
    subparsers.add_parser('feed', help='Show the feed of reflections')
    subparsers.add_parser('my-posts', help='Show your own reflections')

    post = subparsers.add_parser('post', help='Write a new reflection')
    post.add_argument('--title', required=True)
    post.add_argument('--text', required=True)
    post.add_argument('--image', default=None, help='Image file to attach')
    post.add_argument('--document', default=None, help='Document file to attach')

    delete = subparsers.add_parser('delete', help='Delete one of your reflections')
    delete.add_argument('post_id')

    return parser.parse_args(argv)


async def run_command(app: SmritiApp, args) -> bool:
    """Run one parsed command against a started app."""
    if args.command == 'signup':
        password = args.password or getpass.getpass("Password: ")
        confirm = password if args.password else getpass.getpass("Confirm password: ")
        return await app.signup(args.username, args.email, password, confirm)
    if args.command == 'login':
        password = args.password or getpass.getpass("Password: ")
        return await app.login(args.username, password)
    if args.command == 'logout':
        return await app.logout()
    if args.command == 'whoami':
        return await app.whoami()
    if args.command == 'feed':
        return await app.show_feed()
    if args.command == 'my-posts':
        return await app.show_feed(mine=True)
    if args.command == 'post':
        return await app.create_post(args.title, args.text, args.image, args.document)
    if args.command == 'delete':
        return await app.delete_post(args.post_id)
    raise ValueError(f"Unknown command {args.command}")


async def _run(args) -> bool:
    app = create_app()
    await app.start()
    try:
        return await run_command(app, args)
    finally:
        await app.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    args = parse_arguments(argv)

    # Set up logging
    log_level = getattr(logging, args.log_level or settings.LOG_LEVEL, logging.INFO)
    set_log_level(log_level)
    log_file = args.log_file or settings.LOG_FILE
    if log_file:
        setup_file_logging(log_file, log_level)

    logger.debug(f"Configuration: {get_config_summary()}")

    try:
        success = asyncio.run(_run(args))
        exit_code = 0 if success else 1
    except ValidationError as e:
        print(f"Validation Error: {e.message}")
        exit_code = 1
    except ConfigurationError as e:
        logger.error(str(e))
        exit_code = 1
    except SmritiError as e:
        logger.error(f"Smriti error: {e}", exc_info=True)
        exit_code = 1
    except Exception as e:
        logger.error(f"Unhandled exception in Smriti client: {e}", exc_info=True)
        exit_code = 2

    logger.debug(f"Smriti client finished with exit code {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
