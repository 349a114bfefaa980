"""
OAuth account linking.

Links and unlinks external identities for a signed-in user while keeping
the sign-in method invariant: an account never ends up with neither a
password nor a linked provider.
"""

from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.auth.policy import AccountAuthMethodsPolicy
from authcore.core.errors import (
    ErrorCode,
    ErrorKind,
    Result,
    UniqueViolation,
    service_operation,
)
from authcore.core.hooks.manager import HookManager, hooks as default_hooks
from authcore.core.interfaces.repositories import OAuthConnectionRepository, UserRepository
from authcore.core.interfaces.security import ProviderExchangeError
from authcore.models.oauth import OAuthConnection
from authcore.providers.registry import ProviderRegistry
from authcore.repositories.oauth import SQLOAuthConnectionRepository
from authcore.repositories.user import SQLUserRepository
from authcore.schemas.oauth import AuthMethodsResponse, ConnectionSummary
from authcore.utils.timezone import utc_now

from .validation import parse_uuid

logger = structlog.get_logger()


async def link_conflict(
    connections: OAuthConnectionRepository,
    user_id: UUID,
    provider: str,
    provider_user_id: str,
) -> Result:
    """
    Conflict for a connection insert rejected by a uniqueness rule.

    The row that won is read back: an identity owned by someone else is
    `ALREADY_LINKED_TO_ANOTHER_ACCOUNT`; otherwise the user already has
    this identity or this provider, which is `DUPLICATE_LINK`.
    """
    owner = await connections.find_by_provider_identity(provider, provider_user_id)
    if owner is not None and owner.user_id != user_id:
        return Result.fail(ErrorKind.CONFLICT, ErrorCode.ALREADY_LINKED_TO_ANOTHER_ACCOUNT)
    return Result.fail(ErrorKind.CONFLICT, ErrorCode.DUPLICATE_LINK, provider)


class OAuthLinkingService:
    """Link, unlink and list external identities of a user."""

    def __init__(
        self,
        db: AsyncSession | None,
        providers: ProviderRegistry,
        *,
        users: UserRepository | None = None,
        connections: OAuthConnectionRepository | None = None,
        hooks: HookManager | None = None,
    ):
        self.db = db
        self.providers = providers
        self.users = users or SQLUserRepository(db)
        self.connections = connections or SQLOAuthConnectionRepository(db)
        self.hooks = hooks or default_hooks
        self.policy = AccountAuthMethodsPolicy()

    @service_operation("oauth.link")
    async def link(
        self,
        user_id: UUID | str,
        provider: str,
        authorization_code: str,
        code_verifier: str | None = None,
    ) -> Result[ConnectionSummary]:
        """
        Link the identity behind ``authorization_code`` to a user.

        Linking never lowers the number of sign-in methods, so no policy
        check is needed. Identity uniqueness is finally enforced by the
        store; a violation it reports maps to the conflict the pre-check
        would have found, had it seen the competing row.
        """
        uid = parse_uuid(user_id)
        if uid is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_USER_ID)

        name = self.providers.normalize(provider)
        if not self.providers.is_supported(name):
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.UNSUPPORTED_PROVIDER, provider)
        exchange = self.providers.get(name)
        if exchange is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.PROVIDER_NOT_CONFIGURED, name)

        user = await self.users.find_by_id(uid)
        if user is None or not user.is_active:
            return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.USER_NOT_FOUND)

        current = await self.connections.find_by_user_id(uid)
        if any(c.provider == name for c in current):
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.DUPLICATE_LINK, name)

        try:
            identity = await exchange.exchange(authorization_code, code_verifier)
        except ProviderExchangeError as e:
            logger.warning("oauth_link_exchange_failed", user_id=str(uid), provider=name, error=str(e))
            return Result.fail(
                ErrorKind.BAD_GATEWAY,
                ErrorCode.PROVIDER_EXCHANGE_FAILED,
                str(e),
                retryable=True,
            )

        existing = await self.connections.find_by_provider_identity(name, identity.provider_user_id)
        if existing is not None:
            if existing.user_id != uid:
                return Result.fail(ErrorKind.CONFLICT, ErrorCode.ALREADY_LINKED_TO_ANOTHER_ACCOUNT)
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.DUPLICATE_LINK, name)

        connection = OAuthConnection(
            user_id=uid,
            provider=name,
            provider_user_id=identity.provider_user_id,
            email=identity.email,
            display_name=identity.name,
            avatar_url=identity.avatar_url,
            linked_at=utc_now(),
        )
        try:
            await self.connections.create(connection)
        except UniqueViolation:
            logger.info("oauth_link_lost_race", user_id=str(uid), provider=name)
            return await link_conflict(self.connections, uid, name, identity.provider_user_id)

        logger.info("oauth_linked", user_id=str(uid), provider=name)
        await self.hooks.trigger("oauth.linked", user_id=uid, provider=name)

        return Result.success(ConnectionSummary.model_validate(connection))

    @service_operation("oauth.unlink")
    async def unlink(self, user_id: UUID | str, provider: str) -> Result[None]:
        """
        Remove a linked provider.

        Not idempotent: a second call for the same provider fails with
        ``PROVIDER_NOT_LINKED``. The delete only goes through while the
        user keeps another sign-in method, as seen by the delete itself.
        """
        uid = parse_uuid(user_id)
        if uid is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_USER_ID)

        name = self.providers.normalize(provider)
        if not self.providers.is_supported(name):
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.UNSUPPORTED_PROVIDER, provider)

        # Row lock: concurrent unlinks for one user run one after the other
        user = await self.users.find_by_id_for_update(uid)
        if user is None:
            return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.USER_NOT_FOUND)

        connections = await self.connections.find_by_user_id(uid)
        target = next((c for c in connections if c.provider == name), None)
        if target is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.PROVIDER_NOT_LINKED, name)

        # Count includes the connection about to be removed
        if not self.policy.can_remove_method(user, connections):
            return Result.fail(
                ErrorKind.LAST_AUTH_METHOD_VIOLATION,
                ErrorCode.LAST_AUTH_METHOD,
            )

        if not await self.connections.delete_unless_last_method(target.id, uid):
            remaining = await self.connections.find_by_user_id(uid)
            if all(c.id != target.id for c in remaining):
                return Result.fail(ErrorKind.VALIDATION, ErrorCode.PROVIDER_NOT_LINKED, name)
            return Result.fail(
                ErrorKind.LAST_AUTH_METHOD_VIOLATION,
                ErrorCode.LAST_AUTH_METHOD,
            )

        logger.info("oauth_unlinked", user_id=str(uid), provider=name)
        await self.hooks.trigger("oauth.unlinked", user_id=uid, provider=name)

        return Result.success(None)

    @service_operation("oauth.list_connections")
    async def list_connections(self, user_id: UUID | str) -> Result[list[ConnectionSummary]]:
        """Linked identities, most recently linked first."""
        uid = parse_uuid(user_id)
        if uid is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_USER_ID)

        if await self.users.find_by_id(uid) is None:
            return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.USER_NOT_FOUND)

        connections = await self.connections.find_by_user_id(uid)
        return Result.success([ConnectionSummary.model_validate(c) for c in connections])

    @service_operation("oauth.auth_methods")
    async def auth_methods(self, user_id: UUID | str) -> Result[AuthMethodsResponse]:
        uid = parse_uuid(user_id)
        if uid is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_USER_ID)

        user = await self.users.find_by_id(uid)
        if user is None:
            return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.USER_NOT_FOUND)

        connections = await self.connections.find_by_user_id(uid)
        methods = self.policy.available_methods(user, connections)
        return Result.success(
            AuthMethodsResponse(
                has_password=methods.has_password,
                providers=list(methods.providers),
                count=methods.count,
                can_remove_method=self.policy.can_remove_method(user, connections),
            )
        )
