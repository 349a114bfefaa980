"""
Input normalisation shared by the services.

Normalisers return None for unusable input; ``check_password`` returns the
``ErrorCode`` explaining a rejection.
"""

import re
from uuid import UUID

from authcore.core.config import AuthSettings, settings
from authcore.core.errors import ErrorCode

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE = re.compile(r"^\+?[0-9 ()-]{6,20}$")

FULL_NAME_MIN = 2
FULL_NAME_MAX = 100
EMAIL_MAX = 255


def parse_uuid(value: UUID | str | None) -> UUID | None:
    if isinstance(value, UUID):
        return value
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def normalize_email(email: str | None) -> str | None:
    """Trimmed, lower-cased email, or None when it is not an address."""
    if not email:
        return None
    email = email.strip().lower()
    if len(email) > EMAIL_MAX or not _EMAIL.match(email):
        return None
    return email


def check_password(password: str | None, auth: AuthSettings | None = None) -> ErrorCode | None:
    """Return the reason a new password is unacceptable, or None."""
    auth = auth or settings.auth
    if not password:
        return ErrorCode.PASSWORD_REQUIRED
    if len(password) < auth.password_min_length:
        return ErrorCode.PASSWORD_TOO_SHORT
    # bcrypt only looks at the first 72 bytes
    if len(password.encode("utf-8")) > auth.password_max_length:
        return ErrorCode.PASSWORD_TOO_LONG
    return None


def normalize_full_name(full_name: str | None) -> str | None:
    if full_name is None:
        return None
    full_name = " ".join(full_name.split())
    if not FULL_NAME_MIN <= len(full_name) <= FULL_NAME_MAX:
        return None
    return full_name


def is_valid_phone(phone: str) -> bool:
    return bool(_PHONE.match(phone))
