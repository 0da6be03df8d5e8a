"""Input validation and sanitising for user management requests."""

import re

from pydantic import EmailStr, TypeAdapter, ValidationError

from app.core.exceptions import BadRequestException
from app.core.roles import UserRole, parse_role

_email_adapter = TypeAdapter(EmailStr)

_HTML_TAG = re.compile(r"<[^>]*>")
_SCRIPT_PATTERN = re.compile(r"javascript:|on\w+=", re.IGNORECASE)
_EMAIL_DANGEROUS = re.compile(r"<|>|javascript:|on\w+=", re.IGNORECASE)

COMMON_PASSWORDS = frozenset(
    {
        "password",
        "12345678",
        "qwerty",
        "abc123",
        "password1",
        "password123",
        "123456789",
        "iloveyou",
        "welcome",
    }
)


def sanitize_email(email: str) -> str:
    """Lowercase and trim an email address."""
    return email.strip().lower()


def sanitize_display_name(display_name: str) -> str:
    """Strip markup from a display name."""
    return _HTML_TAG.sub("", display_name).replace("<", "").replace(">", "").strip()


def validate_email(email: str | None) -> str:
    """
    Validate an email address.

    Returns:
        The sanitised email

    Raises:
        BadRequestException: If the email is missing or malformed
    """
    if not email:
        raise BadRequestException("Email is required")
    if len(email) > 254:
        raise BadRequestException("Email is too long")
    if _EMAIL_DANGEROUS.search(email):
        raise BadRequestException("Email contains invalid characters")

    cleaned = sanitize_email(email)
    try:
        _email_adapter.validate_python(cleaned)
    except ValidationError:
        raise BadRequestException("Invalid email format")
    return cleaned


def validate_display_name(display_name: str | None) -> str:
    """Validate a display name and return its sanitised form."""
    if not display_name:
        raise BadRequestException("Display name is required")
    if len(display_name) < 2:
        raise BadRequestException("Display name must be at least 2 characters")
    if len(display_name) > 100:
        raise BadRequestException("Display name must be less than 100 characters")
    if _HTML_TAG.search(display_name):
        raise BadRequestException("Display name cannot contain HTML tags")
    if _SCRIPT_PATTERN.search(display_name):
        raise BadRequestException("Display name contains invalid patterns")
    return sanitize_display_name(display_name)


def validate_password(password: str) -> None:
    """Enforce password strength rules."""
    if len(password) < 8:
        raise BadRequestException("Password must be at least 8 characters")
    if len(password) > 128:
        raise BadRequestException("Password is too long (max 128 characters)")
    if not re.search(r"[A-Z]", password):
        raise BadRequestException("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise BadRequestException("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        raise BadRequestException("Password must contain at least one number")
    if password.lower() in COMMON_PASSWORDS:
        raise BadRequestException("Password is too common. Please choose a stronger password.")


def validate_role(role: str | None) -> UserRole:
    """Validate a role value against the known roles."""
    if not role:
        raise BadRequestException("Role is required")
    parsed = parse_role(role)
    if parsed is None:
        allowed = ", ".join(r.value for r in UserRole)
        raise BadRequestException(f"Invalid role. Must be one of: {allowed}")
    return parsed
