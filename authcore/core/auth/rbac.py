"""
RBAC resolution.

A user's effective permissions are the union of:
- permissions of every assigned role
- permissions granted to the user directly
- ``admin:*`` when the user holds the admin role (see ``effective_grants``)

Usage:
    resolver = RbacResolver(RoleRepo(db), PermissionRepo(db))
    effective = await resolver.resolve_effective_permissions(user_id)
    if await resolver.has_permission(user_id, "reports:export"):
        ...
"""

from dataclasses import dataclass, field
from typing import Iterable
from uuid import UUID

from authcore.core.config import settings
from authcore.core.interfaces.repositories import PermissionRepository, RoleRepository

from .permissions import effective_grants, satisfies, satisfies_all, satisfies_any


@dataclass(frozen=True)
class EffectivePermissions:
    """Resolved grants of a user."""
    permissions: frozenset[str] = field(default_factory=frozenset)
    roles: frozenset[str] = field(default_factory=frozenset)

    def allows(self, required: str) -> bool:
        return satisfies(self.permissions, required)


class RbacResolver:
    """
    Resolves roles and permissions from storage.

    Results are computed per call; tokens only carry role names, so
    fine-grained checks always reflect current assignments.
    """

    def __init__(
        self,
        roles: RoleRepository,
        permissions: PermissionRepository,
        admin_role: str | None = None,
    ):
        self.roles = roles
        self.permissions = permissions
        self.admin_role = admin_role or settings.auth.admin_role

    async def resolve_roles(self, user_id: UUID) -> frozenset[str]:
        """Role names of a user, as embedded in access tokens."""
        return frozenset(await self.roles.find_role_names_by_user_id(user_id))

    async def resolve_effective_permissions(self, user_id: UUID) -> EffectivePermissions:
        role_names = await self.resolve_roles(user_id)
        from_roles = await self.roles.find_permission_names_by_user_roles(user_id)
        direct = await self.permissions.find_names_granted_to_user(user_id)

        return EffectivePermissions(
            permissions=effective_grants(role_names, from_roles | direct, self.admin_role),
            roles=role_names,
        )

    async def has_permission(self, user_id: UUID, required: str) -> bool:
        effective = await self.resolve_effective_permissions(user_id)
        return satisfies(effective.permissions, required)

    async def has_any_permission(self, user_id: UUID, required: Iterable[str]) -> bool:
        effective = await self.resolve_effective_permissions(user_id)
        return satisfies_any(effective.permissions, required)

    async def has_all_permissions(self, user_id: UUID, required: Iterable[str]) -> bool:
        effective = await self.resolve_effective_permissions(user_id)
        return satisfies_all(effective.permissions, required)
