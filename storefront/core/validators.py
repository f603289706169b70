"""Shape checks for the credentials and email addresses accepted by the auth routes."""
import re
from typing import Any

from storefront.core.exceptions import InvalidInput

USERNAME_MIN, USERNAME_MAX = 3, 32
PASSWORD_MIN, PASSWORD_MAX = 6, 72  # bcrypt ignores bytes past 72
EMAIL_MAX = 255

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_username(username: Any) -> str:
    if not isinstance(username, str):
        raise InvalidInput("Invalid request body.")
    clean = username.strip()
    if not USERNAME_MIN <= len(clean) <= USERNAME_MAX:
        raise InvalidInput(f"Username must be {USERNAME_MIN}-{USERNAME_MAX} characters.")
    return clean


def validate_password(password: Any) -> str:
    if not isinstance(password, str):
        raise InvalidInput("Invalid request body.")
    if not PASSWORD_MIN <= len(password) <= PASSWORD_MAX:
        raise InvalidInput(f"Password must be {PASSWORD_MIN}-{PASSWORD_MAX} characters.")
    return password


def validate_credentials(username: Any, password: Any) -> str:
    """Check both fields and return the trimmed username."""
    if not isinstance(username, str) or not isinstance(password, str):
        raise InvalidInput("Invalid request body.")
    clean = validate_username(username)
    validate_password(password)
    return clean


def validate_email(email: Any) -> str:
    """Return the trimmed, lower-cased address or raise ``InvalidInput``."""
    if not isinstance(email, str):
        raise InvalidInput("Email is required.")
    clean = email.strip().lower()
    if not clean:
        raise InvalidInput("Email is required.")
    if len(clean) > EMAIL_MAX or not EMAIL_PATTERN.match(clean):
        raise InvalidInput("Enter a valid email address.")
    return clean


def mask_email(email: Any) -> str:
    # "neo@example.com" -> "ne*@example.com", "a@example.com" -> "a*@example.com"
    if not isinstance(email, str) or "@" not in email:
        return ""
    local, _, domain = email.partition("@")
    if not local or not domain:
        return ""
    if len(local) <= 2:
        return f"{local[0]}*@{domain}"
    return f"{local[:2]}{'*' * (len(local) - 2)}@{domain}"
