"""
Token service.

Two credentials with different trade-offs:

- Access token: short-lived HS256 JWT, verified by signature and expiry
  alone, never looked up in storage.
- Refresh token: opaque random secret, longer-lived, tracked in storage by
  its SHA-256 digest so it can be rotated and revoked.

Usage:
    tokens = TokenService(RefreshTokenRepo(db))
    access = tokens.issue_access_token(user.id, user.email, ["user"])
    payload = tokens.verify_access_token(access.token)

    refresh = await tokens.issue_refresh_token(user.id)
    rotated = await tokens.verify_and_consume_refresh_token(refresh.secret)
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable
from uuid import UUID

import structlog
from jose import JWTError, jwt

from authcore.core.config import AuthSettings, settings
from authcore.core.errors import ErrorCode, ErrorKind, Result, service_operation
from authcore.core.hooks.manager import HookManager, hooks as default_hooks
from authcore.core.interfaces.repositories import NewRefreshToken, RefreshTokenRepository
from authcore.utils.timezone import from_timestamp, to_timestamp, to_utc, utc_now

logger = structlog.get_logger()

ACCESS_TOKEN_TYPE = "access"
REFRESH_SECRET_BYTES = 32


@dataclass(frozen=True)
class ClientMetadata:
    """Client details recorded with a refresh token, for audit."""
    user_agent: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class AccessTokenPayload:
    """Verified claims of an access token."""
    user_id: UUID
    email: str
    roles: tuple[str, ...]
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedRefreshToken:
    """A freshly issued refresh token. ``secret`` is never stored."""
    secret: str
    expires_at: datetime
    token_id: UUID


@dataclass(frozen=True)
class RotatedRefreshToken:
    """Outcome of consuming a refresh token: its owner and the successor."""
    user_id: UUID
    refresh_token: IssuedRefreshToken


def hash_refresh_secret(secret: str) -> str:
    """SHA-256 hex digest used as the storage key of a refresh token."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


class TokenService:
    """Issues, verifies, rotates and revokes session credentials."""

    def __init__(
        self,
        refresh_tokens: RefreshTokenRepository,
        auth_settings: AuthSettings | None = None,
        *,
        hooks: HookManager | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.refresh_tokens = refresh_tokens
        self.settings = auth_settings or settings.auth
        self.hooks = hooks or default_hooks
        self.clock = clock

    # ============ Access tokens ============

    def issue_access_token(
        self,
        user_id: UUID,
        email: str,
        roles: Iterable[str],
    ) -> AccessToken:
        """Sign an access token. Pure apart from reading the clock."""
        issued_at = self.clock()
        expires_at = issued_at + timedelta(minutes=self.settings.access_token_expire_minutes)
        payload = {
            "sub": str(user_id),
            "email": email,
            "roles": list(roles),
            "iat": to_timestamp(issued_at),
            "exp": to_timestamp(expires_at),
            "type": ACCESS_TOKEN_TYPE,
        }
        token = jwt.encode(
            payload,
            self.settings.secret_key,
            algorithm=self.settings.algorithm,
        )
        return AccessToken(token=token, expires_at=from_timestamp(payload["exp"]))

    def verify_access_token(self, token: str | None) -> AccessTokenPayload | None:
        """
        Verify an access token.

        Fails closed: any problem (signature, format, type, claims, expiry)
        yields None. Never raises.
        """
        if not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self.settings.secret_key,
                algorithms=[self.settings.algorithm],
                options={"require_exp": True, "require_iat": True, "require_sub": True},
            )
        except JWTError:
            return None

        if claims.get("type") != ACCESS_TOKEN_TYPE:
            return None

        email = claims.get("email")
        roles = claims.get("roles")
        if not isinstance(email, str) or not isinstance(roles, list):
            return None
        if not all(isinstance(role, str) for role in roles):
            return None

        try:
            user_id = UUID(claims["sub"])
            issued_at = from_timestamp(claims["iat"])
            expires_at = from_timestamp(claims["exp"])
        except (ValueError, TypeError, OverflowError):
            return None

        return AccessTokenPayload(
            user_id=user_id,
            email=email,
            roles=tuple(roles),
            issued_at=issued_at,
            expires_at=expires_at,
        )

    # ============ Refresh tokens ============

    async def issue_refresh_token(
        self,
        user_id: UUID,
        client: ClientMetadata | None = None,
    ) -> IssuedRefreshToken:
        """
        Create and persist a refresh token.

        Store failures propagate: a session that cannot be recorded must
        not be handed out.
        """
        secret = secrets.token_hex(REFRESH_SECRET_BYTES)
        expires_at = self.clock() + timedelta(days=self.settings.refresh_token_expire_days)
        client = client or ClientMetadata()

        record = await self.refresh_tokens.create(
            NewRefreshToken(
                user_id=user_id,
                token_hash=hash_refresh_secret(secret),
                expires_at=expires_at,
                user_agent=client.user_agent,
                ip_address=client.ip_address,
            )
        )
        return IssuedRefreshToken(secret=secret, expires_at=expires_at, token_id=record.id)

    @service_operation("tokens.consume_refresh")
    async def verify_and_consume_refresh_token(
        self,
        secret: str,
        client: ClientMetadata | None = None,
    ) -> Result[RotatedRefreshToken]:
        """
        Consume a refresh token and issue its successor.

        The original is revoked by a conditional update, so of two racing
        consumers (or a consumer racing a revoke-all) only one can win.
        Presenting an already rotated token is treated as theft: every
        session of the owner is revoked when reuse revocation is enabled.
        A token revoked by logout or revoke-all is simply rejected.
        """
        if not secret:
            return Result.fail(ErrorKind.UNAUTHORIZED, ErrorCode.INVALID_TOKEN)

        record = await self.refresh_tokens.find_by_hash(hash_refresh_secret(secret))
        if record is None:
            return Result.fail(ErrorKind.UNAUTHORIZED, ErrorCode.INVALID_TOKEN)

        if record.revoked:
            if record.replaced_by_id is not None:
                await self._handle_reuse(record.user_id, record.id)
            return Result.fail(ErrorKind.UNAUTHORIZED, ErrorCode.INVALID_TOKEN)

        now = self.clock()
        if to_utc(record.expires_at) <= now:
            return Result.fail(ErrorKind.UNAUTHORIZED, ErrorCode.INVALID_TOKEN, "expired")

        consumed = await self.refresh_tokens.revoke_if_active(record.id, now)
        if not consumed:
            return Result.fail(ErrorKind.UNAUTHORIZED, ErrorCode.INVALID_TOKEN)

        successor = await self.issue_refresh_token(record.user_id, client)
        await self.refresh_tokens.set_replaced_by(record.id, successor.token_id)

        return Result.success(
            RotatedRefreshToken(user_id=record.user_id, refresh_token=successor)
        )

    @service_operation("tokens.revoke")
    async def revoke_refresh_token(self, secret: str) -> Result[bool]:
        """Revoke a single session. Unknown or already revoked tokens are a no-op."""
        if not secret:
            return Result.success(False)
        record = await self.refresh_tokens.find_by_hash(hash_refresh_secret(secret))
        if record is None:
            return Result.success(False)
        return Result.success(await self.refresh_tokens.revoke(record.id))

    @service_operation("tokens.revoke_all")
    async def revoke_all_for_user(self, user_id: UUID) -> Result[int]:
        """
        Revoke every active refresh token of a user.

        Idempotent. Store failures come back as an ``INTERNAL`` result so
        each caller decides whether they are fatal.
        """
        count = await self.refresh_tokens.revoke_all_for_user(user_id)
        logger.info("refresh_tokens_revoked", user_id=str(user_id), count=count)
        return Result.success(count)

    async def count_active_sessions(self, user_id: UUID) -> int:
        return await self.refresh_tokens.count_active_for_user(user_id, self.clock())

    async def _handle_reuse(self, user_id: UUID, token_id: UUID) -> None:
        logger.warning(
            "refresh_token_reuse_detected",
            user_id=str(user_id),
            token_id=str(token_id),
        )
        if not self.settings.refresh_reuse_revokes_all:
            return

        revoked = await self.revoke_all_for_user(user_id)
        if not revoked.ok:
            logger.warning("refresh_token_reuse_revocation_failed", user_id=str(user_id))
        await self.hooks.trigger("auth.refresh_reuse", user_id=user_id)
