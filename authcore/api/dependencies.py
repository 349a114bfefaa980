"""
FastAPI dependencies.

Usage:
    from authcore.api.dependencies import CurrentPrincipal, require_permission

    @router.get("/me")
    async def me(principal: CurrentPrincipal):
        ...

    @router.get("/reports")
    async def reports(principal: Principal = Depends(require_permission("reports:read"))):
        ...
"""

from functools import lru_cache
from typing import Annotated, AsyncGenerator, Callable

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.auth.guard import AuthenticationGuard, Principal
from authcore.core.auth.rbac import RbacResolver
from authcore.core.auth.tokens import TokenService
from authcore.models.database import async_session_factory
from authcore.providers.registry import ProviderRegistry
from authcore.repositories.rbac import SQLPermissionRepository, SQLRoleRepository
from authcore.repositories.token import SQLRefreshTokenRepository
from authcore.services.account import AccountLifecycleService
from authcore.services.auth import AuthService
from authcore.services.oauth import OAuthLinkingService
from authcore.services.rbac import RbacAdminService
from authcore.services.user import UserAdminService

from .errors import http_error


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


DbSession = Annotated[AsyncSession, Depends(get_db)]


@lru_cache
def get_provider_registry() -> ProviderRegistry:
    """Providers enabled by the current OAuth settings."""
    return ProviderRegistry.from_settings()


def get_token_service(db: DbSession) -> TokenService:
    return TokenService(SQLRefreshTokenRepository(db))


def get_guard(tokens: TokenService = Depends(get_token_service)) -> AuthenticationGuard:
    return AuthenticationGuard(tokens)


def get_resolver(db: DbSession) -> RbacResolver:
    return RbacResolver(SQLRoleRepository(db), SQLPermissionRepository(db))


# ============================================================
# PRINCIPAL DEPENDENCIES
# ============================================================

async def get_current_principal(
    authorization: str | None = Header(default=None),
    guard: AuthenticationGuard = Depends(get_guard),
) -> Principal:
    """
    Authenticated caller.

    Raises:
        HTTPException 401: missing, malformed or invalid bearer token
    """
    result = guard.authenticate(authorization)
    if not result.ok:
        raise http_error(result.error)
    return result.value


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def require_permission(permission: str) -> Callable:
    """
    Dependency factory requiring ``permission``.

    Checked against grants resolved from storage, so permissions assigned
    after the token was issued are honoured.

    Usage:
    ```python
    @router.delete("/roles/{role_id}")
    async def delete_role(
        role_id: UUID,
        principal: Principal = Depends(require_permission("roles:delete")),
    ):
        ...
    ```
    """

    async def check_permission(
        authorization: str | None = Header(default=None),
        guard: AuthenticationGuard = Depends(get_guard),
        resolver: RbacResolver = Depends(get_resolver),
    ) -> Principal:
        result = await guard.authorize_with_resolver(authorization, permission, resolver)
        if not result.ok:
            raise http_error(result.error)
        return result.value

    return check_permission


async def require_admin(
    authorization: str | None = Header(default=None),
    guard: AuthenticationGuard = Depends(get_guard),
) -> Principal:
    """Admin-only routes; decided from the token alone."""
    result = guard.authorize(authorization, "admin:*")
    if not result.ok:
        raise http_error(result.error)
    return result.value


AdminPrincipal = Annotated[Principal, Depends(require_admin)]


# ============================================================
# SERVICE DEPENDENCIES
# ============================================================

def get_auth_service(
    db: DbSession,
    tokens: TokenService = Depends(get_token_service),
    providers: ProviderRegistry = Depends(get_provider_registry),
) -> AuthService:
    return AuthService(db, tokens, providers)


def get_oauth_linking_service(
    db: DbSession,
    providers: ProviderRegistry = Depends(get_provider_registry),
) -> OAuthLinkingService:
    return OAuthLinkingService(db, providers)


def get_account_service(
    db: DbSession,
    tokens: TokenService = Depends(get_token_service),
) -> AccountLifecycleService:
    return AccountLifecycleService(db, tokens)


def get_rbac_admin_service(db: DbSession) -> RbacAdminService:
    return RbacAdminService(db)


def get_user_admin_service(
    db: DbSession,
    tokens: TokenService = Depends(get_token_service),
) -> UserAdminService:
    return UserAdminService(db, tokens)
