"""
Database models.
"""

from .base import Base, TimestampMixin, UUIDMixin, StandardMixin
from .user import User
from .rbac import Role, Permission, UserRole, UserPermission, role_permissions
from .token import RefreshToken
from .oauth import OAuthConnection

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "StandardMixin",
    "User",
    "Role",
    "Permission",
    "UserRole",
    "UserPermission",
    "role_permissions",
    "RefreshToken",
    "OAuthConnection",
]
