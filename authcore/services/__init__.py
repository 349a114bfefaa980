"""
Application services.

Every public operation returns a ``Result``; storage failures surface as
``INTERNAL`` results rather than exceptions.
"""

from .account import AccountLifecycleService
from .auth import AuthService
from .oauth import OAuthLinkingService
from .rbac import RbacAdminService
from .user import UserAdminService

__all__ = [
    "AccountLifecycleService",
    "AuthService",
    "OAuthLinkingService",
    "RbacAdminService",
    "UserAdminService",
]
