"""
Input Validation Module

Checks applied to user input before anything is sent to the backend.
Each function raises ValidationError naming the offending field.
"""

from typing import Tuple

from config import settings
from utils.exceptions import ValidationError


def validate_signup(username: str, email: str, password: str, confirm_password: str) -> Tuple[str, str]:
    """
    Validate sign-up form input.

    Args:
        username: Requested username
        email: Email address
        password: Chosen password
        confirm_password: Password typed a second time

    Returns:
        Tuple[str, str]: The trimmed username and email.

    Raises:
        ValidationError: If any field is missing or malformed.
    """
    username = (username or "").strip()
    email = (email or "").strip()

    if not username:
        raise ValidationError("username", "Please enter a username")
    if len(username) < settings.MIN_USERNAME_LENGTH:
        raise ValidationError(
            "username", f"Username must be at least {settings.MIN_USERNAME_LENGTH} characters"
        )
    if not email or "@" not in email:
        raise ValidationError("email", "Please enter a valid email address")
    if not password:
        raise ValidationError("password", "Please enter a password")
    if len(password) < settings.MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "password", f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters"
        )
    if password != confirm_password:
        raise ValidationError("confirm_password", "Passwords do not match")

    return username, email


def validate_login(username: str, password: str) -> str:
    """Validate login input and return the trimmed username."""
    username = (username or "").strip()
    if not username:
        raise ValidationError("username", "Please enter your username")
    if not password:
        raise ValidationError("password", "Please enter your password")
    return username


def validate_post(title: str, text_content: str) -> Tuple[str, str]:
    """
    Validate a new reflection before it is submitted.

    Returns:
        Tuple[str, str]: The trimmed title and text.
    """
    title = (title or "").strip()
    text_content = (text_content or "").strip()

    if not title or not text_content:
        raise ValidationError(
            "title" if not title else "text_content",
            "Please fill in both title and description",
        )
    if len(title) > settings.MAX_TITLE_LENGTH:
        raise ValidationError(
            "title", f"Title must be at most {settings.MAX_TITLE_LENGTH} characters"
        )
    return title, text_content
