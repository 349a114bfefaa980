"""
Authentication and authorization core.

Usage:
    from authcore.core.auth import AuthenticationGuard, RbacResolver, TokenService, satisfies
"""

from .guard import AuthenticationGuard, Principal, extract_bearer_token
from .passwords import BcryptPasswordHasher
from .permissions import (
    ADMIN_ROLE,
    GLOBAL_WILDCARD,
    PermissionName,
    effective_grants,
    is_valid_role_name,
    parse_permission,
    satisfies,
    satisfies_all,
    satisfies_any,
)
from .policy import AccountAuthMethodsPolicy, AuthMethods
from .rbac import EffectivePermissions, RbacResolver
from .tokens import (
    AccessToken,
    AccessTokenPayload,
    ClientMetadata,
    IssuedRefreshToken,
    RotatedRefreshToken,
    TokenService,
    hash_refresh_secret,
)

__all__ = [
    "AuthenticationGuard",
    "Principal",
    "extract_bearer_token",
    "BcryptPasswordHasher",
    "ADMIN_ROLE",
    "GLOBAL_WILDCARD",
    "PermissionName",
    "effective_grants",
    "is_valid_role_name",
    "parse_permission",
    "satisfies",
    "satisfies_all",
    "satisfies_any",
    "AccountAuthMethodsPolicy",
    "AuthMethods",
    "EffectivePermissions",
    "RbacResolver",
    "AccessToken",
    "AccessTokenPayload",
    "ClientMetadata",
    "IssuedRefreshToken",
    "RotatedRefreshToken",
    "TokenService",
    "hash_refresh_secret",
]
