"""
Sign-in flows.

Registration, password login, OAuth sign-in, refresh and logout. Every
flow that starts a session ends in ``_issue_session``: a fresh access token
carrying the user's current role names plus a stored refresh token.
"""

from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.auth.passwords import BcryptPasswordHasher
from authcore.core.auth.rbac import RbacResolver
from authcore.core.auth.tokens import ClientMetadata, TokenService
from authcore.core.config import AuthSettings, settings
from authcore.core.errors import (
    ErrorCode,
    ErrorKind,
    Result,
    UniqueViolation,
    service_operation,
)
from authcore.core.hooks.manager import HookManager, hooks as default_hooks
from authcore.core.interfaces.repositories import (
    OAuthConnectionRepository,
    PermissionRepository,
    RoleRepository,
    UserRepository,
)
from authcore.core.interfaces.security import ExternalIdentity, PasswordHasher, ProviderExchangeError
from authcore.models.oauth import OAuthConnection
from authcore.models.user import User
from authcore.providers.registry import ProviderRegistry
from authcore.repositories.oauth import SQLOAuthConnectionRepository
from authcore.repositories.rbac import SQLPermissionRepository, SQLRoleRepository
from authcore.repositories.user import SQLUserRepository
from authcore.schemas.auth import SessionTokens
from authcore.schemas.user import UserSummary
from authcore.utils.timezone import utc_now

from .oauth import link_conflict
from .validation import (
    FULL_NAME_MAX,
    check_password,
    normalize_email,
    normalize_full_name,
    parse_uuid,
)

logger = structlog.get_logger()

PLACEHOLDER_EMAIL_DOMAIN = "oauth.placeholder"


class AuthService:
    """Authentication flows that create, renew or end sessions."""

    def __init__(
        self,
        db: AsyncSession | None,
        tokens: TokenService,
        providers: ProviderRegistry | None = None,
        hasher: PasswordHasher | None = None,
        *,
        users: UserRepository | None = None,
        roles: RoleRepository | None = None,
        permissions: PermissionRepository | None = None,
        connections: OAuthConnectionRepository | None = None,
        hooks: HookManager | None = None,
        auth_settings: AuthSettings | None = None,
    ):
        self.db = db
        self.tokens = tokens
        self.providers = providers or ProviderRegistry()
        self.hasher = hasher or BcryptPasswordHasher()
        self.users = users or SQLUserRepository(db)
        self.roles = roles or SQLRoleRepository(db)
        self.connections = connections or SQLOAuthConnectionRepository(db)
        self.resolver = RbacResolver(self.roles, permissions or SQLPermissionRepository(db))
        self.hooks = hooks or default_hooks
        self.settings = auth_settings or settings.auth

    async def _issue_session(self, user: User, client: ClientMetadata | None) -> SessionTokens:
        roles = await self.resolver.resolve_roles(user.id)
        access = self.tokens.issue_access_token(user.id, user.email, sorted(roles))
        refresh = await self.tokens.issue_refresh_token(user.id, client)
        return SessionTokens(
            access_token=access.token,
            access_token_expires_at=access.expires_at,
            refresh_token=refresh.secret,
            refresh_token_expires_at=refresh.expires_at,
            user=UserSummary.model_validate(user),
        )

    async def _assign_default_role(self, user: User) -> None:
        role = await self.roles.find_by_name(self.settings.default_role)
        if role is not None:
            await self.roles.assign_to_user(user.id, role.id)

    # ============ Password ============

    @service_operation("auth.register")
    async def register(
        self,
        email: str,
        password: str,
        full_name: str,
        client: ClientMetadata | None = None,
    ) -> Result[SessionTokens]:
        normalized_email = normalize_email(email)
        if normalized_email is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_EMAIL)

        rejected = check_password(password, self.settings)
        if rejected is not None:
            return Result.fail(ErrorKind.VALIDATION, rejected)

        name = normalize_full_name(full_name)
        if name is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_FULL_NAME)

        if await self.users.find_by_email(normalized_email) is not None:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.EMAIL_ALREADY_REGISTERED)

        user = User(
            email=normalized_email,
            password_hash=self.hasher.hash(password),
            full_name=name,
            is_active=True,
        )
        try:
            await self.users.add(user)
        except UniqueViolation:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.EMAIL_ALREADY_REGISTERED)

        await self._assign_default_role(user)

        logger.info("user_registered", user_id=str(user.id))
        await self.hooks.trigger("user.registered", user_id=user.id)

        return Result.success(await self._issue_session(user, client))

    @service_operation("auth.login")
    async def login(
        self,
        email: str,
        password: str,
        client: ClientMetadata | None = None,
    ) -> Result[SessionTokens]:
        """
        Password login.

        Unknown email, inactive account, passwordless account and wrong
        password are indistinguishable to the caller.
        """
        normalized_email = normalize_email(email)
        user = await self.users.find_by_email(normalized_email) if normalized_email else None

        if (
            user is None
            or not user.is_active
            or not user.has_password
            or not self.hasher.verify(password or "", user.password_hash)
        ):
            logger.info("login_failed", email_known=user is not None)
            await self.hooks.trigger("auth.failed", email=normalized_email or email)
            return Result.fail(ErrorKind.INVALID_CREDENTIALS, ErrorCode.INVALID_CREDENTIALS)

        user.last_login_at = utc_now()
        await self.users.save(user)

        logger.info("login_succeeded", user_id=str(user.id))
        await self.hooks.trigger("auth.login", user_id=user.id)

        return Result.success(await self._issue_session(user, client))

    # ============ Session renewal ============

    @service_operation("auth.refresh")
    async def refresh(
        self,
        refresh_token: str,
        client: ClientMetadata | None = None,
    ) -> Result[SessionTokens]:
        """
        Rotate a refresh token and issue a new access token.

        The access token embeds roles resolved now, not the ones of the
        previous token.
        """
        rotated = await self.tokens.verify_and_consume_refresh_token(refresh_token, client)
        if not rotated.ok:
            return Result.from_error(rotated.error)

        user = await self.users.find_by_id(rotated.value.user_id)
        if user is None or not user.is_active:
            await self.tokens.revoke_refresh_token(rotated.value.refresh_token.secret)
            return Result.fail(ErrorKind.UNAUTHORIZED, ErrorCode.INVALID_TOKEN)

        roles = await self.resolver.resolve_roles(user.id)
        access = self.tokens.issue_access_token(user.id, user.email, sorted(roles))
        refresh = rotated.value.refresh_token

        return Result.success(
            SessionTokens(
                access_token=access.token,
                access_token_expires_at=access.expires_at,
                refresh_token=refresh.secret,
                refresh_token_expires_at=refresh.expires_at,
                user=UserSummary.model_validate(user),
            )
        )

    @service_operation("auth.logout")
    async def logout(self, refresh_token: str) -> Result[bool]:
        """End one session. Unknown or already revoked tokens succeed with False."""
        revoked = await self.tokens.revoke_refresh_token(refresh_token)
        if revoked.ok and revoked.value:
            await self.hooks.trigger("auth.logout")
        return revoked

    @service_operation("auth.logout_all")
    async def logout_all(self, user_id: UUID | str) -> Result[int]:
        """End every session of a user. Here a revocation failure is the operation's failure."""
        uid = parse_uuid(user_id)
        if uid is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_USER_ID)

        revoked = await self.tokens.revoke_all_for_user(uid)
        if revoked.ok:
            await self.hooks.trigger("auth.logout_all", user_id=uid, count=revoked.value)
        return revoked

    # ============ OAuth ============

    @service_operation("auth.oauth_sign_in")
    async def oauth_sign_in(
        self,
        provider: str,
        authorization_code: str,
        code_verifier: str | None = None,
        client: ClientMetadata | None = None,
    ) -> Result[SessionTokens]:
        """
        Sign in with an external identity.

        1. A linked identity signs in its user (profile snapshot refreshed).
        2. Otherwise an account with the same email gets the identity linked.
        3. Otherwise a passwordless account is created.
        """
        name = self.providers.normalize(provider)
        if not self.providers.is_supported(name):
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.UNSUPPORTED_PROVIDER, provider)
        exchange = self.providers.get(name)
        if exchange is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.PROVIDER_NOT_CONFIGURED, name)

        try:
            identity = await exchange.exchange(authorization_code, code_verifier)
        except ProviderExchangeError as e:
            logger.warning("oauth_sign_in_exchange_failed", provider=name, error=str(e))
            return Result.fail(
                ErrorKind.BAD_GATEWAY,
                ErrorCode.PROVIDER_EXCHANGE_FAILED,
                str(e),
                retryable=True,
            )

        connection = await self.connections.find_by_provider_identity(name, identity.provider_user_id)
        if connection is not None:
            found = await self._returning_user(connection, identity)
        else:
            found = await self._link_or_create(identity)
        if not found.ok:
            return Result.from_error(found.error)

        user = found.value
        user.last_login_at = utc_now()
        await self.users.save(user)

        logger.info("oauth_sign_in_succeeded", user_id=str(user.id), provider=name)
        await self.hooks.trigger("auth.oauth_login", user_id=user.id, provider=name)

        return Result.success(await self._issue_session(user, client))

    async def _returning_user(
        self,
        connection: OAuthConnection,
        identity: ExternalIdentity,
    ) -> Result[User]:
        user = await self.users.find_by_id(connection.user_id)
        if user is None:
            # Orphaned connection; drop it so the identity can be linked again
            await self.connections.delete(connection.id)
            return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.USER_NOT_FOUND)
        if not user.is_active:
            return Result.fail(ErrorKind.INVALID_CREDENTIALS, ErrorCode.INVALID_CREDENTIALS)

        connection.email = identity.email or connection.email
        connection.display_name = identity.name or connection.display_name
        connection.avatar_url = identity.avatar_url or connection.avatar_url
        return Result.success(user)

    async def _link_or_create(self, identity: ExternalIdentity) -> Result[User]:
        email = normalize_email(identity.email)
        user = await self.users.find_by_email(email) if email else None

        if user is not None:
            if not user.is_active:
                return Result.fail(ErrorKind.INVALID_CREDENTIALS, ErrorCode.INVALID_CREDENTIALS)
            current = await self.connections.find_by_user_id(user.id)
            if any(c.provider == identity.provider for c in current):
                # Same email, different account at the provider
                return Result.fail(ErrorKind.CONFLICT, ErrorCode.DUPLICATE_LINK, identity.provider)
        else:
            user = await self._create_oauth_user(identity, email)
            if user is None:
                return Result.fail(ErrorKind.CONFLICT, ErrorCode.EMAIL_ALREADY_REGISTERED)

        user_id = user.id
        try:
            await self.connections.create(
                OAuthConnection(
                    user_id=user_id,
                    provider=identity.provider,
                    provider_user_id=identity.provider_user_id,
                    email=identity.email,
                    display_name=identity.name,
                    avatar_url=identity.avatar_url,
                    linked_at=utc_now(),
                )
            )
        except UniqueViolation:
            return await link_conflict(
                self.connections, user_id, identity.provider, identity.provider_user_id
            )

        await self.hooks.trigger("oauth.linked", user_id=user_id, provider=identity.provider)
        return Result.success(user)

    async def _create_oauth_user(self, identity: ExternalIdentity, email: str | None) -> User | None:
        """Passwordless account for a first-time OAuth sign-in."""
        email = email or f"{identity.provider}_{identity.provider_user_id}@{PLACEHOLDER_EMAIL_DOMAIN}".lower()
        full_name = normalize_full_name(identity.name) or normalize_full_name(email.split("@")[0])

        user = User(
            email=email,
            password_hash=None,
            full_name=(full_name or "User")[:FULL_NAME_MAX],
            photo_url=identity.avatar_url,
            is_active=True,
        )
        try:
            await self.users.add(user)
        except UniqueViolation:
            return None

        await self._assign_default_role(user)

        logger.info("user_created_via_oauth", user_id=str(user.id), provider=identity.provider)
        await self.hooks.trigger("user.created_via_oauth", user_id=user.id, provider=identity.provider)
        return user
