"""
Role and permission repositories.

Assignments (user-role, role-permission, user-permission) are plain rows
written with explicit statements; no ORM relationships are loaded, which
keeps every read an explicit await in async sessions.
"""

from uuid import UUID

from sqlalchemy import delete, func, insert, select

from authcore.models.rbac import (
    Permission,
    Role,
    UserPermission,
    UserRole,
    role_permissions,
)
from authcore.utils.pagination import OffsetPage

from .base import BaseRepository, storage_errors


class SQLRoleRepository(BaseRepository[Role]):
    """Roles, their permissions and their assignment to users."""

    model = Role

    async def find_by_id(self, role_id: UUID) -> Role | None:
        return await self.get_by_id(role_id)

    async def find_by_name(self, name: str) -> Role | None:
        return await self.get_one(name=name)

    @storage_errors
    async def list_all(self) -> list[Role]:
        result = await self.db.execute(self._base_query().order_by(Role.name))
        return list(result.scalars().all())

    @storage_errors
    async def delete(self, role_id: UUID) -> bool:
        """Delete a role with its associations (explicit, SQLite ignores FK cascades)."""
        await self.db.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))
        await self.db.execute(delete(UserRole).where(UserRole.role_id == role_id))
        result = await self.db.execute(delete(Role).where(Role.id == role_id))
        return result.rowcount > 0

    @storage_errors
    async def find_permissions_by_role_id(self, role_id: UUID) -> list[Permission]:
        stmt = (
            select(Permission)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .where(role_permissions.c.role_id == role_id)
            .order_by(Permission.name)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @storage_errors
    async def find_role_names_by_user_id(self, user_id: UUID) -> set[str]:
        stmt = (
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    @storage_errors
    async def find_permission_names_by_user_roles(self, user_id: UUID) -> set[str]:
        stmt = (
            select(Permission.name)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .join(UserRole, UserRole.role_id == role_permissions.c.role_id)
            .where(UserRole.user_id == user_id)
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    @storage_errors
    async def has_role(self, user_id: UUID, role_id: UUID) -> bool:
        stmt = (
            select(func.count())
            .select_from(UserRole)
            .where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        )
        return (await self.db.scalar(stmt) or 0) > 0

    @storage_errors
    async def assign_to_user(
        self,
        user_id: UUID,
        role_id: UUID,
        assigned_by: UUID | None = None,
    ) -> None:
        self.db.add(UserRole(user_id=user_id, role_id=role_id, assigned_by=assigned_by))
        await self.db.flush()

    @storage_errors
    async def remove_from_user(self, user_id: UUID, role_id: UUID) -> bool:
        result = await self.db.execute(
            delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        )
        return result.rowcount > 0

    @storage_errors
    async def has_permission(self, role_id: UUID, permission_id: UUID) -> bool:
        stmt = (
            select(func.count())
            .select_from(role_permissions)
            .where(
                role_permissions.c.role_id == role_id,
                role_permissions.c.permission_id == permission_id,
            )
        )
        return (await self.db.scalar(stmt) or 0) > 0

    @storage_errors
    async def add_permission(self, role_id: UUID, permission_id: UUID) -> None:
        await self.db.execute(
            insert(role_permissions).values(role_id=role_id, permission_id=permission_id)
        )

    @storage_errors
    async def remove_permission(self, role_id: UUID, permission_id: UUID) -> bool:
        result = await self.db.execute(
            delete(role_permissions).where(
                role_permissions.c.role_id == role_id,
                role_permissions.c.permission_id == permission_id,
            )
        )
        return result.rowcount > 0


class SQLPermissionRepository(BaseRepository[Permission]):
    """Permissions and direct grants to users."""

    model = Permission

    async def find_by_id(self, permission_id: UUID) -> Permission | None:
        return await self.get_by_id(permission_id)

    async def find_by_name(self, name: str) -> Permission | None:
        return await self.get_one(name=name)

    @storage_errors
    async def find_all_paginated(
        self,
        page: int = 1,
        per_page: int = 20,
        resource: str | None = None,
    ) -> OffsetPage[Permission]:
        stmt = self._base_query()
        if resource:
            stmt = stmt.where(Permission.resource == resource)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = await self.db.scalar(count_stmt) or 0

        stmt = stmt.order_by(Permission.name).offset((page - 1) * per_page).limit(per_page)
        result = await self.db.execute(stmt)

        return OffsetPage.create(
            items=list(result.scalars().all()),
            total=total,
            page=page,
            per_page=per_page,
        )

    @storage_errors
    async def find_names_granted_to_user(self, user_id: UUID) -> set[str]:
        stmt = (
            select(Permission.name)
            .join(UserPermission, UserPermission.permission_id == Permission.id)
            .where(UserPermission.user_id == user_id)
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    @storage_errors
    async def is_granted_to_user(self, user_id: UUID, permission_id: UUID) -> bool:
        stmt = (
            select(func.count())
            .select_from(UserPermission)
            .where(
                UserPermission.user_id == user_id,
                UserPermission.permission_id == permission_id,
            )
        )
        return (await self.db.scalar(stmt) or 0) > 0

    @storage_errors
    async def grant_to_user(
        self,
        user_id: UUID,
        permission_id: UUID,
        assigned_by: UUID | None = None,
    ) -> None:
        self.db.add(
            UserPermission(user_id=user_id, permission_id=permission_id, assigned_by=assigned_by)
        )
        await self.db.flush()

    @storage_errors
    async def revoke_from_user(self, user_id: UUID, permission_id: UUID) -> bool:
        result = await self.db.execute(
            delete(UserPermission).where(
                UserPermission.user_id == user_id,
                UserPermission.permission_id == permission_id,
            )
        )
        return result.rowcount > 0
