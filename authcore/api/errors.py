"""
HTTP mapping of service errors.
"""

from fastapi import HTTPException, status

from authcore.core.errors import AuthError, ErrorKind, Result
from authcore.core.messages import MessageCatalog, catalog as default_catalog

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.LAST_AUTH_METHOD_VIOLATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.BAD_GATEWAY: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(kind: ErrorKind) -> int:
    return STATUS_BY_KIND.get(kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def http_error(
    error: AuthError,
    locale: str | None = None,
    messages: MessageCatalog | None = None,
) -> HTTPException:
    """
    Build the ``HTTPException`` for a failed result.

    The body carries the stable error code next to the localised message,
    so clients never need to parse text.
    """
    messages = messages or default_catalog
    headers = None
    if error.kind in (ErrorKind.UNAUTHORIZED, ErrorKind.INVALID_CREDENTIALS):
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(
        status_code=status_for(error.kind),
        detail={
            "code": error.code.value,
            "message": messages.describe(error, locale),
            "retryable": error.retryable,
        },
        headers=headers,
    )


def unwrap_or_raise(result: Result, locale: str | None = None):
    """Return the value of a successful result, raise ``HTTPException`` otherwise."""
    if not result.ok:
        raise http_error(result.error, locale)
    return result.value
