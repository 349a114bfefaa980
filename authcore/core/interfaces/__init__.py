"""
Core interfaces.
Services depend on these protocols, never on concrete implementations.
"""

from .repositories import (
    NewRefreshToken,
    OAuthConnectionRepository,
    PermissionRepository,
    RefreshTokenRepository,
    RoleRepository,
    UserRepository,
)
from .security import (
    ExternalIdentity,
    PasswordHasher,
    ProviderExchange,
    ProviderExchangeError,
)

__all__ = [
    "NewRefreshToken",
    "OAuthConnectionRepository",
    "PermissionRepository",
    "RefreshTokenRepository",
    "RoleRepository",
    "UserRepository",
    "ExternalIdentity",
    "PasswordHasher",
    "ProviderExchange",
    "ProviderExchangeError",
]
