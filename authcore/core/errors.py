"""
Error taxonomy and operation results.

Every public service operation returns a ``Result``: either a value or an
``AuthError`` tagged with a coarse ``ErrorKind`` (what callers map to a
protocol response) and a precise ``ErrorCode`` (what message catalogs
translate). Errors never unwind across components as exceptions.

Usage:
    result = await oauth.unlink(user_id, "google")
    if not result.ok:
        if result.error.kind is ErrorKind.LAST_AUTH_METHOD_VIOLATION:
            ...

The only exception type crossing a component seam is ``RepositoryError``,
raised by the persistence layer and converted into an ``INTERNAL`` result
by ``service_operation`` at the operation boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Any, Awaitable, Callable, Generic, ParamSpec, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")
P = ParamSpec("P")


class ErrorKind(str, Enum):
    """Coarse error category, independent of transport."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_CREDENTIALS = "invalid_credentials"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    LAST_AUTH_METHOD_VIOLATION = "last_auth_method_violation"
    BAD_GATEWAY = "bad_gateway"
    INTERNAL = "internal"


class ErrorCode(str, Enum):
    """Precise failure reason, used for message lookup."""
    # Validation
    INVALID_USER_ID = "invalid_user_id"
    INVALID_EMAIL = "invalid_email"
    PASSWORD_REQUIRED = "password_required"
    PASSWORD_TOO_SHORT = "password_too_short"
    PASSWORD_TOO_LONG = "password_too_long"
    PASSWORD_UNCHANGED = "password_unchanged"
    INVALID_FULL_NAME = "invalid_full_name"
    INVALID_PHONE = "invalid_phone"
    UNSUPPORTED_PROVIDER = "unsupported_provider"
    PROVIDER_NOT_CONFIGURED = "provider_not_configured"
    PROVIDER_NOT_LINKED = "provider_not_linked"
    INVALID_ROLE_NAME = "invalid_role_name"
    INVALID_PERMISSION_NAME = "invalid_permission_name"

    # Not found
    USER_NOT_FOUND = "user_not_found"
    ROLE_NOT_FOUND = "role_not_found"
    PERMISSION_NOT_FOUND = "permission_not_found"

    # Conflict
    EMAIL_ALREADY_REGISTERED = "email_already_registered"
    DUPLICATE_LINK = "duplicate_link"
    ALREADY_LINKED_TO_ANOTHER_ACCOUNT = "already_linked_to_another_account"
    ROLE_ALREADY_EXISTS = "role_already_exists"
    ROLE_ALREADY_ASSIGNED = "role_already_assigned"
    ROLE_NOT_ASSIGNED = "role_not_assigned"
    PERMISSION_ALREADY_EXISTS = "permission_already_exists"
    PERMISSION_ALREADY_GRANTED = "permission_already_granted"
    PERMISSION_NOT_GRANTED = "permission_not_granted"

    # Credentials / tokens
    INVALID_CREDENTIALS = "invalid_credentials"
    UNAUTHENTICATED = "unauthenticated"
    INVALID_TOKEN = "invalid_token"

    # Authorization
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"
    SYSTEM_ROLE = "system_role"
    CANNOT_DEACTIVATE_SELF = "cannot_deactivate_self"

    # Invariants
    LAST_AUTH_METHOD = "last_auth_method"

    # Infrastructure
    PROVIDER_EXCHANGE_FAILED = "provider_exchange_failed"
    STORAGE_FAILURE = "storage_failure"


@dataclass(frozen=True)
class AuthError:
    """
    A typed failure.

    Attributes:
        kind: Category callers map to protocol responses
        code: Specific reason (message catalog key)
        detail: Optional developer-facing detail (never shown to end users)
        retryable: Whether repeating the same call may succeed
    """
    kind: ErrorKind
    code: ErrorCode
    detail: str | None = None
    retryable: bool = False


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a service operation.

    Example:
        return Result.success(summary)
        return Result.fail(ErrorKind.CONFLICT, ErrorCode.DUPLICATE_LINK)
    """
    value: T | None = None
    error: AuthError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        code: ErrorCode,
        detail: str | None = None,
        *,
        retryable: bool = False,
    ) -> "Result[T]":
        return cls(error=AuthError(kind=kind, code=code, detail=detail, retryable=retryable))

    @classmethod
    def from_error(cls, error: AuthError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise ``ResultError`` (tests and scripts only)."""
        if self.error is not None:
            raise ResultError(self.error)
        return self.value  # type: ignore[return-value]


class ResultError(Exception):
    """Raised by ``Result.unwrap`` on a failed result."""

    def __init__(self, error: AuthError):
        super().__init__(f"{error.kind.value}: {error.code.value}")
        self.error = error


class RepositoryError(Exception):
    """Raised by repositories when the store fails."""
    pass


class UniqueViolation(RepositoryError):
    """Raised when an insert or update breaks a uniqueness constraint."""
    pass


def service_operation(
    name: str,
) -> Callable[[Callable[P, Awaitable[Result[T]]]], Callable[P, Awaitable[Result[T]]]]:
    """
    Decorator marking a public operation boundary.

    Storage failures that escape the operation are logged and returned as
    ``INTERNAL`` results instead of propagating to the caller.
    """
    def decorator(func: Callable[P, Awaitable[Result[T]]]) -> Callable[P, Awaitable[Result[T]]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Result[T]:
            try:
                return await func(*args, **kwargs)
            except RepositoryError as e:
                logger.error("operation_storage_failure", operation=name, error=str(e))
                return Result.fail(
                    ErrorKind.INTERNAL,
                    ErrorCode.STORAGE_FAILURE,
                    str(e),
                    retryable=True,
                )
        return wrapper
    return decorator
