"""
Tests for the Smriti Client Application

Tests cover the user-facing commands, argument parsing, exit codes of
the entry point, and one end-to-end run against a mocked backend.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from datetime import datetime, timezone
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import SmritiApp, create_app, format_post, main, parse_arguments, run_command
from data.models import ApiResult, AuthGrant, Post, PostAuthor, User
from data.storage import MemoryStore
from services.api_client import ApiClient
from utils.exceptions import ConfigurationError, ServerRejected, ValidationError
from conftest import TEST_BASE_URL


def make_post(post_id="p1", title="Dawn"):
    return Post(
        id=post_id, title=title, text_content="Light came slowly.",
        author=PostAuthor(username="meera"),
        created_at=datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def app():
    """SmritiApp with every collaborator mocked."""
    session = MagicMock()
    session.is_authenticated = True
    session.user = User(id="user-1", username="meera")
    session.sign_in = AsyncMock()
    session.sign_up = AsyncMock()
    session.logout = AsyncMock()
    session.restore = AsyncMock()
    session.wait_for_background_tasks = AsyncMock()

    api_client = MagicMock()
    api_client.fetch_user_profile = AsyncMock()

    feed = MagicMock()
    feed.initial_load = AsyncMock(return_value=True)
    feed.publish = AsyncMock()
    my_feed = MagicMock()
    my_feed.initial_load = AsyncMock(return_value=True)
    my_feed.remove = AsyncMock()

    return SmritiApp(
        store=MemoryStore(),
        api_client=api_client,
        session=session,
        notifications=MagicMock(),
        feed=feed,
        my_feed=my_feed,
        validate=False,
    )


# =============================================================================
# Initialization Tests
# =============================================================================

class TestSmritiAppInitialization:
    """Tests for SmritiApp wiring."""

    def test_init_with_defaults(self):
        with patch('main.JsonFileStore') as mock_store_cls, \
             patch('main.ApiClient') as mock_api_cls, \
             patch('main.PushNotificationService') as mock_push_cls, \
             patch('main.SessionManager') as mock_session_cls, \
             patch('main.FeedSynchronizer') as mock_feed_cls:

            smriti = SmritiApp(validate=False)

            mock_store_cls.assert_called_once()
            mock_api_cls.assert_called_once_with(mock_store_cls.return_value)
            mock_push_cls.assert_called_once()
            mock_session_cls.assert_called_once()
            assert mock_feed_cls.call_count == 2
            assert smriti.session is mock_session_cls.return_value

    def test_validation_runs_by_default(self):
        with patch('main.validate_settings', side_effect=ConfigurationError("bad")):
            with pytest.raises(ConfigurationError):
                SmritiApp(store=MemoryStore())

    def test_create_app_passes_through(self):
        with patch('main.SmritiApp') as mock_app_cls:
            create_app(validate=False)

            mock_app_cls.assert_called_once_with(validate=False)


# =============================================================================
# Command Tests
# =============================================================================

class TestCommands:
    """Tests for the command methods."""

    def test_login_success(self, app, capsys):
        app.session.sign_in.return_value = ApiResult.ok(
            AuthGrant(token="tok", user=User(id="u1", username="meera"))
        )

        assert asyncio.run(app.login(" meera ", "secret1"))

        app.session.sign_in.assert_awaited_once_with("meera", "secret1")
        assert "Namaste, meera!" in capsys.readouterr().out

    def test_login_failure(self, app, capsys):
        app.session.sign_in.return_value = ApiResult.fail(ServerRejected(401, "Invalid credentials"))

        assert not asyncio.run(app.login("meera", "wrong1"))
        assert "Login Failed: Invalid credentials" in capsys.readouterr().out

    def test_login_validation_before_network(self, app):
        with pytest.raises(ValidationError):
            asyncio.run(app.login("meera", ""))

        app.session.sign_in.assert_not_called()

    def test_signup_success(self, app, capsys):
        app.session.sign_up.return_value = ApiResult.ok(
            AuthGrant(token="tok", user=User(id="u1", username="meera"))
        )

        assert asyncio.run(app.signup("meera", "m@example.com", "secret1", "secret1"))

        app.session.sign_up.assert_awaited_once_with("meera", "m@example.com", "secret1")
        assert "Welcome to Smriti, meera!" in capsys.readouterr().out

    def test_signup_mismatched_passwords(self, app):
        with pytest.raises(ValidationError, match="Passwords do not match"):
            asyncio.run(app.signup("meera", "m@example.com", "secret1", "secret2"))

    def test_logout_when_signed_out(self, app, capsys):
        app.session.is_authenticated = False

        assert asyncio.run(app.logout())
        app.session.logout.assert_not_called()
        assert "Already signed out." in capsys.readouterr().out

    def test_logout(self, app, capsys):
        assert asyncio.run(app.logout())
        app.session.logout.assert_awaited_once()
        assert "Signed out." in capsys.readouterr().out

    def test_whoami_falls_back_to_session_user(self, app, capsys):
        app.api_client.fetch_user_profile.return_value = ApiResult.fail(ServerRejected(500))

        assert asyncio.run(app.whoami())
        assert "meera" in capsys.readouterr().out

    def test_show_feed(self, app, capsys):
        app.feed.posts = (make_post(),)

        assert asyncio.run(app.show_feed())

        app.feed.initial_load.assert_awaited_once()
        assert "Dawn" in capsys.readouterr().out

    def test_show_my_posts_empty(self, app, capsys):
        app.my_feed.posts = ()

        assert asyncio.run(app.show_feed(mine=True))

        app.my_feed.initial_load.assert_awaited_once()
        assert "No reflections yet." in capsys.readouterr().out

    def test_feed_requires_session(self, app, capsys):
        app.session.is_authenticated = False

        assert not asyncio.run(app.show_feed())
        app.feed.initial_load.assert_not_called()
        assert "not signed in" in capsys.readouterr().out

    def test_create_post(self, app, capsys):
        app.feed.publish.return_value = ApiResult.ok(make_post("new-1", "Dawn"))

        assert asyncio.run(app.create_post(" Dawn ", "Light came slowly."))

        app.feed.publish.assert_awaited_once_with(
            "Dawn", "Light came slowly.", image_path=None, document_path=None
        )
        assert 'Saved "Dawn" (id new-1).' in capsys.readouterr().out

    def test_create_post_failure(self, app, capsys):
        app.feed.publish.return_value = ApiResult.fail(ServerRejected(400, "Title is required"))

        assert not asyncio.run(app.create_post("Dawn", "text"))
        assert "Could not save post: Title is required" in capsys.readouterr().out

    def test_delete_post(self, app, capsys):
        app.my_feed.remove.return_value = ApiResult.ok("Post deleted successfully")

        assert asyncio.run(app.delete_post("p1"))

        app.my_feed.remove.assert_awaited_once_with("p1")
        assert "Post deleted successfully" in capsys.readouterr().out


# =============================================================================
# Formatting and Argument Tests
# =============================================================================

class TestFormatting:
    """Tests for format_post."""

    def test_format_post(self):
        post = make_post()
        text = format_post(post)

        assert text.splitlines()[0] == "Dawn"
        assert "Author: meera | 2024-01-15" in text

    def test_format_post_attachments(self):
        post = Post(id="p", title="", text_content="x" * 400, author=PostAuthor(username="meera"),
                    image_url="https://cdn.test/a.png", document_url="https://cdn.test/a.pdf")
        text = format_post(post)

        assert "(untitled)" in text
        assert "unknown date" in text
        assert "Image: https://cdn.test/a.png" in text
        assert "Document: https://cdn.test/a.pdf" in text
        assert "..." in text


class TestArguments:
    """Tests for parse_arguments and run_command."""

    def test_post_arguments(self):
        args = parse_arguments(["post", "--title", "Dawn", "--text", "Light", "--image", "a.png"])

        assert args.command == "post"
        assert args.image == "a.png"
        assert args.document is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_arguments([])

    def test_login_prompts_for_password(self, app):
        app.session.sign_in.return_value = ApiResult.ok(
            AuthGrant(token="tok", user=User(id="u1", username="meera"))
        )
        args = parse_arguments(["login", "--username", "meera"])

        with patch('main.getpass.getpass', return_value="secret1") as mock_getpass:
            assert asyncio.run(run_command(app, args))

        mock_getpass.assert_called_once()
        app.session.sign_in.assert_awaited_once_with("meera", "secret1")


# =============================================================================
# Entry Point Tests
# =============================================================================

def _mock_app():
    mock_app = MagicMock()
    mock_app.start = AsyncMock()
    mock_app.shutdown = AsyncMock()
    mock_app.login = AsyncMock(return_value=True)
    mock_app.show_feed = AsyncMock(return_value=False)
    return mock_app


class TestMain:
    """Tests for main() exit codes."""

    def test_success_exit_code(self):
        mock_app = _mock_app()
        with patch('main.create_app', return_value=mock_app):
            assert main(["login", "--username", "meera", "--password", "secret1"]) == 0

        mock_app.start.assert_awaited_once()
        mock_app.shutdown.assert_awaited_once()

    def test_failed_command_exit_code(self):
        with patch('main.create_app', return_value=_mock_app()):
            assert main(["feed"]) == 1

    def test_validation_error_exit_code(self, capsys):
        mock_app = _mock_app()
        mock_app.login.side_effect = ValidationError("password", "Please enter your password")
        with patch('main.create_app', return_value=mock_app):
            assert main(["login", "--username", "meera", "--password", "x"]) == 1

        assert "Validation Error: Please enter your password" in capsys.readouterr().out
        mock_app.shutdown.assert_awaited_once()

    def test_configuration_error_exit_code(self):
        with patch('main.create_app', side_effect=ConfigurationError("bad url")):
            assert main(["whoami"]) == 1

    def test_unexpected_error_exit_code(self):
        mock_app = _mock_app()
        mock_app.show_feed.side_effect = RuntimeError("boom")
        with patch('main.create_app', return_value=mock_app):
            assert main(["feed"]) == 2


# =============================================================================
# End-to-End Tests
# =============================================================================

class TestEndToEnd:
    """Runs commands through the real services with only HTTP mocked."""

    def test_login_then_feed(self, mock_request, post_payload_factory, capsys):
        store = MemoryStore()
        api_client = ApiClient(store, base_url=TEST_BASE_URL)
        notifications = MagicMock()
        notifications.register_device = AsyncMock(return_value=True)
        notifications.unregister_device = AsyncMock(return_value=True)
        smriti = SmritiApp(store=store, api_client=api_client,
                           notifications=notifications, validate=False)

        mock_request.side_effect = [
            mock_request.response(json_data={
                "success": True,
                "data": {"token": "tok-e2e", "user": {"id": "u1", "username": "meera"}},
            }),
            mock_request.response(json_data={
                "success": True,
                "data": {"posts": [post_payload_factory(title="Morning stillness")]},
            }),
        ]

        async def flow():
            await smriti.start()
            logged_in = await smriti.login("meera", "secret1")
            shown = await smriti.show_feed()
            await smriti.shutdown()
            return logged_in, shown

        assert asyncio.run(flow()) == (True, True)

        out = capsys.readouterr().out
        assert "Namaste, meera!" in out
        assert "Morning stillness" in out
        feed_call = mock_request.call_args_list[1]
        assert feed_call.kwargs["headers"]["Authorization"] == "Bearer tok-e2e"
        notifications.register_device.assert_awaited_once()
