"""
core/validation.py -- Input constraint checks shared by every entry point.

The API layer validates request shape with Pydantic, but the core must not
trust its callers: the CLI and tests call the service directly. Each check
raises InvalidInput with a message that names the offending field.
"""

from __future__ import annotations

import re
from typing import Optional

from core.errors import InvalidInput
from core.models import (
    ADDRESS_MAX,
    EMAIL_MAX,
    EMAIL_PATTERN,
    PASSWORD_MAX,
    PASSWORD_MIN,
    PASSWORD_SPECIALS,
    RATING_MAX,
    RATING_MIN,
    STORE_NAME_MAX,
    USER_NAME_MAX,
    USER_NAME_MIN,
)

_EMAIL_RE = re.compile(EMAIL_PATTERN)


def normalize_email(email: str) -> str:
    """Return the canonical stored form of an email (trimmed, lower-cased)."""
    return email.strip().lower()


def check_user_name(name: str) -> str:
    name = name.strip()
    if not USER_NAME_MIN <= len(name) <= USER_NAME_MAX:
        raise InvalidInput(f"Name must be between {USER_NAME_MIN} and {USER_NAME_MAX} characters.")
    return name


def check_email(email: str) -> str:
    email = normalize_email(email)
    if len(email) > EMAIL_MAX or not _EMAIL_RE.match(email):
        raise InvalidInput("Email address is not valid.")
    return email


def check_password(password: str) -> str:
    """Enforce length, one uppercase letter and one special character."""
    if not PASSWORD_MIN <= len(password) <= PASSWORD_MAX:
        raise InvalidInput(f"Password must be between {PASSWORD_MIN} and {PASSWORD_MAX} characters.")
    if not any(c.isupper() for c in password):
        raise InvalidInput("Password must contain at least 1 uppercase letter.")
    if not any(c in PASSWORD_SPECIALS for c in password):
        raise InvalidInput("Password must contain at least 1 special character.")
    return password


def check_address(address: Optional[str]) -> Optional[str]:
    if address is None:
        return None
    address = address.strip()
    if len(address) > ADDRESS_MAX:
        raise InvalidInput(f"Address must be at most {ADDRESS_MAX} characters.")
    return address or None


def check_store_name(name: str) -> str:
    name = name.strip()
    if not 1 <= len(name) <= STORE_NAME_MAX:
        raise InvalidInput(f"Store name must be between 1 and {STORE_NAME_MAX} characters.")
    return name


def check_rating_value(value: int) -> int:
    # bool is an int subclass; True would otherwise pass as a 1-star rating.
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput("Rating must be an integer.")
    if not RATING_MIN <= value <= RATING_MAX:
        raise InvalidInput(f"Rating must be between {RATING_MIN} and {RATING_MAX}.")
    return value


def check_page(page: int, limit: int, max_limit: int) -> None:
    if page < 1:
        raise InvalidInput("page must be at least 1.")
    if not 1 <= limit <= max_limit:
        raise InvalidInput(f"limit must be between 1 and {max_limit}.")
