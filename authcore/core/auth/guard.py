"""
Request authentication guard.

Turns an ``Authorization`` header into a ``Principal`` or a denial. The
guard only verifies signed tokens; it never touches storage (except
through a supplied resolver for fine-grained checks, which only reads).

Usage:
    guard = AuthenticationGuard(token_service)
    result = guard.authenticate(request.headers.get("Authorization"))
    result = guard.authorize(header, "users:write")
    result = await guard.authorize_with_resolver(header, "reports:export", resolver)
"""

from dataclasses import dataclass
from uuid import UUID

from authcore.core.config import settings
from authcore.core.errors import ErrorCode, ErrorKind, Result

from .permissions import effective_grants, satisfies
from .rbac import RbacResolver
from .tokens import TokenService

BEARER_SCHEME = "bearer"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as described by its access token."""
    user_id: UUID
    email: str
    roles: frozenset[str]

    @property
    def is_admin(self) -> bool:
        return settings.auth.admin_role in self.roles


def extract_bearer_token(raw_header: str | None) -> str | None:
    """Return the token of a ``Bearer <token>`` header, None when malformed."""
    if not raw_header:
        return None
    parts = raw_header.strip().split()
    if len(parts) != 2 or parts[0].lower() != BEARER_SCHEME:
        return None
    return parts[1]


class AuthenticationGuard:
    """Verifies access tokens and applies token-level authorization."""

    def __init__(self, tokens: TokenService, admin_role: str | None = None):
        self.tokens = tokens
        self.admin_role = admin_role or settings.auth.admin_role

    def authenticate(self, raw_header: str | None) -> Result[Principal]:
        """
        Authenticate a request.

        Missing header, wrong scheme and bad token are indistinguishable to
        the caller.
        """
        payload = self.tokens.verify_access_token(extract_bearer_token(raw_header))
        if payload is None:
            return Result.fail(ErrorKind.UNAUTHORIZED, ErrorCode.UNAUTHENTICATED)

        return Result.success(
            Principal(
                user_id=payload.user_id,
                email=payload.email,
                roles=frozenset(payload.roles),
            )
        )

    def authorize(self, raw_header: str | None, required_permission: str) -> Result[Principal]:
        """
        Authenticate, then check ``required_permission`` against the roles in
        the token.

        Token roles are a snapshot and carry no permission names, so only the
        admin grant can pass here; use ``authorize_with_resolver`` for
        permission checks backed by current assignments.
        """
        result = self.authenticate(raw_header)
        if not result.ok:
            return result

        principal = result.value
        grants = effective_grants(principal.roles, admin_role=self.admin_role)
        if not satisfies(grants, required_permission):
            return Result.fail(
                ErrorKind.FORBIDDEN,
                ErrorCode.INSUFFICIENT_PERMISSIONS,
                required_permission,
            )
        return result

    async def authorize_with_resolver(
        self,
        raw_header: str | None,
        required_permission: str,
        resolver: RbacResolver,
    ) -> Result[Principal]:
        """Authenticate, then check ``required_permission`` against resolved grants."""
        result = self.authenticate(raw_header)
        if not result.ok:
            return result

        if not await resolver.has_permission(result.value.user_id, required_permission):
            return Result.fail(
                ErrorKind.FORBIDDEN,
                ErrorCode.INSUFFICIENT_PERMISSIONS,
                required_permission,
            )
        return result
