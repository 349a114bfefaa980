"""
SQLAlchemy repository implementations.
"""

from .base import BaseRepository, storage_errors
from .oauth import SQLOAuthConnectionRepository
from .rbac import SQLPermissionRepository, SQLRoleRepository
from .token import SQLRefreshTokenRepository
from .user import SQLUserRepository

__all__ = [
    "BaseRepository",
    "storage_errors",
    "SQLOAuthConnectionRepository",
    "SQLPermissionRepository",
    "SQLRoleRepository",
    "SQLRefreshTokenRepository",
    "SQLUserRepository",
]
