"""
Role and permission administration.

Every mutation names the acting user; the actor must hold the matching
``roles:*`` / ``permissions:*`` grant (or the admin role) at the time of
the call, resolved from storage rather than from a token.

Usage:
    service = RbacAdminService(db)
    role = await service.create_role(admin_id, "editor", permissions=["posts:create"])
    await service.assign_role(admin_id, user_id, role.value.id)
"""

from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.auth.permissions import is_valid_role_name, parse_permission
from authcore.core.auth.rbac import RbacResolver
from authcore.core.errors import (
    ErrorCode,
    ErrorKind,
    Result,
    UniqueViolation,
    service_operation,
)
from authcore.core.hooks.manager import HookManager, hooks as default_hooks
from authcore.core.interfaces.repositories import (
    PermissionRepository,
    RoleRepository,
    UserRepository,
)
from authcore.models.rbac import Permission, Role
from authcore.repositories.rbac import SQLPermissionRepository, SQLRoleRepository
from authcore.repositories.user import SQLUserRepository
from authcore.schemas.rbac import EffectivePermissionsResponse, PermissionSummary, RoleSummary
from authcore.utils.pagination import OffsetPage

from .validation import parse_uuid

logger = structlog.get_logger()


class RbacAdminService:
    """Manage roles, permissions and their assignments."""

    def __init__(
        self,
        db: AsyncSession | None,
        *,
        users: UserRepository | None = None,
        roles: RoleRepository | None = None,
        permissions: PermissionRepository | None = None,
        hooks: HookManager | None = None,
        admin_role: str | None = None,
    ):
        self.db = db
        self.users = users or SQLUserRepository(db)
        self.roles = roles or SQLRoleRepository(db)
        self.permissions = permissions or SQLPermissionRepository(db)
        self.resolver = RbacResolver(self.roles, self.permissions, admin_role)
        self.hooks = hooks or default_hooks

    async def _require(self, actor_id: UUID | str, required: str) -> Result[UUID]:
        actor = parse_uuid(actor_id)
        if actor is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_USER_ID)
        if not await self.resolver.has_permission(actor, required):
            logger.info("rbac_admin_denied", actor_id=str(actor), required=required)
            return Result.fail(ErrorKind.FORBIDDEN, ErrorCode.INSUFFICIENT_PERMISSIONS, required)
        return Result.success(actor)

    async def _summary(self, role: Role) -> RoleSummary:
        permissions = await self.roles.find_permissions_by_role_id(role.id)
        return RoleSummary(
            id=role.id,
            name=role.name,
            description=role.description,
            is_system=role.is_system,
            permissions=[p.name for p in permissions],
        )

    async def _role(self, role_id: UUID | str) -> Result[Role]:
        rid = parse_uuid(role_id)
        role = await self.roles.find_by_id(rid) if rid else None
        if role is None:
            return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.ROLE_NOT_FOUND)
        return Result.success(role)

    async def _permission(self, name: str) -> Result[Permission]:
        parsed = parse_permission(name)
        if parsed is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_PERMISSION_NAME, name)
        permission = await self.permissions.find_by_name(parsed.name)
        if permission is None:
            return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.PERMISSION_NOT_FOUND, parsed.name)
        return Result.success(permission)

    async def _existing_user(self, user_id: UUID | str) -> Result[UUID]:
        uid = parse_uuid(user_id)
        if uid is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_USER_ID)
        if await self.users.find_by_id(uid) is None:
            return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.USER_NOT_FOUND)
        return Result.success(uid)

    # ============================================================
    # ROLE MANAGEMENT
    # ============================================================

    @service_operation("rbac.create_role")
    async def create_role(
        self,
        actor_id: UUID | str,
        name: str,
        description: str | None = None,
        permissions: list[str] | None = None,
    ) -> Result[RoleSummary]:
        """
        Create a role, optionally with existing permissions attached.

        Unknown permission names fail the whole operation.
        """
        allowed = await self._require(actor_id, "roles:create")
        if not allowed.ok:
            return Result.from_error(allowed.error)

        name = (name or "").strip().lower()
        if not is_valid_role_name(name):
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_ROLE_NAME, name)
        if await self.roles.find_by_name(name) is not None:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.ROLE_ALREADY_EXISTS, name)

        attached = []
        for permission_name in permissions or []:
            found = await self._permission(permission_name)
            if not found.ok:
                return Result.from_error(found.error)
            attached.append(found.value)

        role = Role(name=name, description=description, is_system=False)
        try:
            await self.roles.add(role)
        except UniqueViolation:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.ROLE_ALREADY_EXISTS, name)

        for permission in {p.id: p for p in attached}.values():
            await self.roles.add_permission(role.id, permission.id)

        logger.info("role_created", role=name, actor_id=str(allowed.value))
        return Result.success(await self._summary(role))

    @service_operation("rbac.update_role")
    async def update_role(
        self,
        actor_id: UUID | str,
        role_id: UUID | str,
        name: str | None = None,
        description: str | None = None,
    ) -> Result[RoleSummary]:
        """Rename or re-describe a role. System roles keep their name."""
        allowed = await self._require(actor_id, "roles:update")
        if not allowed.ok:
            return Result.from_error(allowed.error)

        found = await self._role(role_id)
        if not found.ok:
            return Result.from_error(found.error)
        role = found.value

        if name is not None:
            name = name.strip().lower()
            if name != role.name:
                if role.is_system:
                    return Result.fail(ErrorKind.FORBIDDEN, ErrorCode.SYSTEM_ROLE, role.name)
                if not is_valid_role_name(name):
                    return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_ROLE_NAME, name)
                if await self.roles.find_by_name(name) is not None:
                    return Result.fail(ErrorKind.CONFLICT, ErrorCode.ROLE_ALREADY_EXISTS, name)
                role.name = name

        if description is not None:
            role.description = description.strip() or None

        try:
            await self.roles.save(role)
        except UniqueViolation:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.ROLE_ALREADY_EXISTS, name)

        return Result.success(await self._summary(role))

    @service_operation("rbac.delete_role")
    async def delete_role(self, actor_id: UUID | str, role_id: UUID | str) -> Result[None]:
        """Delete a role together with its permission and user assignments."""
        allowed = await self._require(actor_id, "roles:delete")
        if not allowed.ok:
            return Result.from_error(allowed.error)

        found = await self._role(role_id)
        if not found.ok:
            return Result.from_error(found.error)
        role = found.value
        if role.is_system:
            return Result.fail(ErrorKind.FORBIDDEN, ErrorCode.SYSTEM_ROLE, role.name)

        name = role.name
        await self.roles.delete(role.id)

        logger.info("role_deleted", role=name, actor_id=str(allowed.value))
        return Result.success(None)

    @service_operation("rbac.list_roles")
    async def list_roles(self) -> Result[list[RoleSummary]]:
        roles = await self.roles.list_all()
        return Result.success([await self._summary(role) for role in roles])

    @service_operation("rbac.assign_role")
    async def assign_role(
        self,
        actor_id: UUID | str,
        user_id: UUID | str,
        role_id: UUID | str,
    ) -> Result[None]:
        allowed = await self._require(actor_id, "roles:assign")
        if not allowed.ok:
            return Result.from_error(allowed.error)

        target = await self._existing_user(user_id)
        if not target.ok:
            return Result.from_error(target.error)
        found = await self._role(role_id)
        if not found.ok:
            return Result.from_error(found.error)
        role = found.value

        if await self.roles.has_role(target.value, role.id):
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.ROLE_ALREADY_ASSIGNED, role.name)

        try:
            await self.roles.assign_to_user(target.value, role.id, assigned_by=allowed.value)
        except UniqueViolation:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.ROLE_ALREADY_ASSIGNED)

        await self.hooks.trigger(
            "rbac.role_assigned",
            user_id=target.value,
            role=role.name,
            by=allowed.value,
        )
        return Result.success(None)

    @service_operation("rbac.remove_role")
    async def remove_role(
        self,
        actor_id: UUID | str,
        user_id: UUID | str,
        role_id: UUID | str,
    ) -> Result[None]:
        """
        Remove a role from a user.

        Already issued access tokens keep the role until they expire.
        """
        allowed = await self._require(actor_id, "roles:assign")
        if not allowed.ok:
            return Result.from_error(allowed.error)

        target = await self._existing_user(user_id)
        if not target.ok:
            return Result.from_error(target.error)
        found = await self._role(role_id)
        if not found.ok:
            return Result.from_error(found.error)
        role = found.value

        if not await self.roles.remove_from_user(target.value, role.id):
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.ROLE_NOT_ASSIGNED, role.name)

        await self.hooks.trigger(
            "rbac.role_removed",
            user_id=target.value,
            role=role.name,
            by=allowed.value,
        )
        return Result.success(None)

    # ============================================================
    # PERMISSION MANAGEMENT
    # ============================================================

    @service_operation("rbac.create_permission")
    async def create_permission(
        self,
        actor_id: UUID | str,
        name: str,
        description: str | None = None,
    ) -> Result[PermissionSummary]:
        allowed = await self._require(actor_id, "permissions:create")
        if not allowed.ok:
            return Result.from_error(allowed.error)

        parsed = parse_permission(name)
        if parsed is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_PERMISSION_NAME, name)
        if await self.permissions.find_by_name(parsed.name) is not None:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.PERMISSION_ALREADY_EXISTS, parsed.name)

        permission = Permission(
            name=parsed.name,
            resource=parsed.resource,
            action=parsed.action,
            description=description,
        )
        try:
            await self.permissions.add(permission)
        except UniqueViolation:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.PERMISSION_ALREADY_EXISTS, parsed.name)

        logger.info("permission_created", permission=parsed.name, actor_id=str(allowed.value))
        return Result.success(PermissionSummary.model_validate(permission))

    @service_operation("rbac.list_permissions")
    async def list_permissions(
        self,
        page: int = 1,
        per_page: int = 20,
        resource: str | None = None,
    ) -> Result[OffsetPage[PermissionSummary]]:
        page = max(page, 1)
        per_page = min(max(per_page, 1), 100)
        found = await self.permissions.find_all_paginated(page, per_page, resource)
        return Result.success(found.map(PermissionSummary.model_validate))

    @service_operation("rbac.assign_permission_to_role")
    async def assign_permission_to_role(
        self,
        actor_id: UUID | str,
        role_id: UUID | str,
        permission_name: str,
    ) -> Result[RoleSummary]:
        allowed = await self._require(actor_id, "permissions:assign")
        if not allowed.ok:
            return Result.from_error(allowed.error)

        found = await self._role(role_id)
        if not found.ok:
            return Result.from_error(found.error)
        role = found.value
        permission = await self._permission(permission_name)
        if not permission.ok:
            return Result.from_error(permission.error)

        if await self.roles.has_permission(role.id, permission.value.id):
            return Result.fail(
                ErrorKind.CONFLICT,
                ErrorCode.PERMISSION_ALREADY_GRANTED,
                permission.value.name,
            )

        await self.roles.add_permission(role.id, permission.value.id)
        await self.hooks.trigger(
            "rbac.permission_granted",
            role=role.name,
            permission=permission.value.name,
            by=allowed.value,
        )
        return Result.success(await self._summary(role))

    @service_operation("rbac.remove_permission_from_role")
    async def remove_permission_from_role(
        self,
        actor_id: UUID | str,
        role_id: UUID | str,
        permission_name: str,
    ) -> Result[RoleSummary]:
        allowed = await self._require(actor_id, "permissions:assign")
        if not allowed.ok:
            return Result.from_error(allowed.error)

        found = await self._role(role_id)
        if not found.ok:
            return Result.from_error(found.error)
        role = found.value
        permission = await self._permission(permission_name)
        if not permission.ok:
            return Result.from_error(permission.error)

        if not await self.roles.remove_permission(role.id, permission.value.id):
            return Result.fail(
                ErrorKind.CONFLICT,
                ErrorCode.PERMISSION_NOT_GRANTED,
                permission.value.name,
            )

        await self.hooks.trigger(
            "rbac.permission_revoked",
            role=role.name,
            permission=permission.value.name,
            by=allowed.value,
        )
        return Result.success(await self._summary(role))

    @service_operation("rbac.assign_permission_to_user")
    async def assign_permission_to_user(
        self,
        actor_id: UUID | str,
        user_id: UUID | str,
        permission_name: str,
    ) -> Result[None]:
        allowed = await self._require(actor_id, "permissions:assign")
        if not allowed.ok:
            return Result.from_error(allowed.error)

        target = await self._existing_user(user_id)
        if not target.ok:
            return Result.from_error(target.error)
        permission = await self._permission(permission_name)
        if not permission.ok:
            return Result.from_error(permission.error)

        if await self.permissions.is_granted_to_user(target.value, permission.value.id):
            return Result.fail(
                ErrorKind.CONFLICT,
                ErrorCode.PERMISSION_ALREADY_GRANTED,
                permission.value.name,
            )

        name = permission.value.name
        try:
            await self.permissions.grant_to_user(
                target.value,
                permission.value.id,
                assigned_by=allowed.value,
            )
        except UniqueViolation:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.PERMISSION_ALREADY_GRANTED, name)

        await self.hooks.trigger(
            "rbac.permission_granted",
            user_id=target.value,
            permission=name,
            by=allowed.value,
        )
        return Result.success(None)

    @service_operation("rbac.remove_permission_from_user")
    async def remove_permission_from_user(
        self,
        actor_id: UUID | str,
        user_id: UUID | str,
        permission_name: str,
    ) -> Result[None]:
        allowed = await self._require(actor_id, "permissions:assign")
        if not allowed.ok:
            return Result.from_error(allowed.error)

        target = await self._existing_user(user_id)
        if not target.ok:
            return Result.from_error(target.error)
        permission = await self._permission(permission_name)
        if not permission.ok:
            return Result.from_error(permission.error)

        if not await self.permissions.revoke_from_user(target.value, permission.value.id):
            return Result.fail(
                ErrorKind.CONFLICT,
                ErrorCode.PERMISSION_NOT_GRANTED,
                permission.value.name,
            )

        await self.hooks.trigger(
            "rbac.permission_revoked",
            user_id=target.value,
            permission=permission.value.name,
            by=allowed.value,
        )
        return Result.success(None)

    @service_operation("rbac.get_user_permissions")
    async def get_user_permissions(self, user_id: UUID | str) -> Result[EffectivePermissionsResponse]:
        """Roles and effective grants of a user, sorted."""
        target = await self._existing_user(user_id)
        if not target.ok:
            return Result.from_error(target.error)

        effective = await self.resolver.resolve_effective_permissions(target.value)
        return Result.success(
            EffectivePermissionsResponse(
                roles=sorted(effective.roles),
                permissions=sorted(effective.permissions),
            )
        )
