"""
Pydantic schemas returned by services.
"""

from .auth import SessionTokens
from .oauth import AuthMethodsResponse, ConnectionSummary
from .rbac import EffectivePermissionsResponse, PermissionSummary, RoleSummary
from .user import UserDetail, UserSummary

__all__ = [
    "SessionTokens",
    "AuthMethodsResponse",
    "ConnectionSummary",
    "EffectivePermissionsResponse",
    "PermissionSummary",
    "RoleSummary",
    "UserDetail",
    "UserSummary",
]
