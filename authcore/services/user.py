"""
Administrative user management.

Every operation that changes an account is checked against the acting
user's effective permissions (`users:create`, `users:update`); admins pass
through `admin:*`.
"""

from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.auth.passwords import BcryptPasswordHasher
from authcore.core.auth.rbac import RbacResolver
from authcore.core.auth.tokens import TokenService
from authcore.core.config import AuthSettings, settings
from authcore.core.errors import (
    ErrorCode,
    ErrorKind,
    Result,
    UniqueViolation,
    service_operation,
)
from authcore.core.hooks.manager import HookManager, hooks as default_hooks
from authcore.core.interfaces.repositories import (
    OAuthConnectionRepository,
    PermissionRepository,
    RoleRepository,
    UserRepository,
)
from authcore.core.interfaces.security import PasswordHasher
from authcore.models.rbac import Role
from authcore.models.user import User
from authcore.repositories.base import commit
from authcore.repositories.oauth import SQLOAuthConnectionRepository
from authcore.repositories.rbac import SQLPermissionRepository, SQLRoleRepository
from authcore.repositories.user import SQLUserRepository
from authcore.schemas.user import UserDetail, UserSummary

from .account import revoke_sessions
from .validation import (
    check_password,
    is_valid_phone,
    normalize_email,
    normalize_full_name,
    parse_uuid,
)

logger = structlog.get_logger()


class UserAdminService:
    """User lookup, creation, updates, password reset and (de)activation by an administrator."""

    def __init__(
        self,
        db: AsyncSession | None,
        tokens: TokenService,
        hasher: PasswordHasher | None = None,
        *,
        users: UserRepository | None = None,
        roles: RoleRepository | None = None,
        permissions: PermissionRepository | None = None,
        connections: OAuthConnectionRepository | None = None,
        hooks: HookManager | None = None,
        admin_role: str | None = None,
        auth_settings: AuthSettings | None = None,
    ):
        self.db = db
        self.tokens = tokens
        self.hasher = hasher or BcryptPasswordHasher()
        self.users = users or SQLUserRepository(db)
        self.roles = roles or SQLRoleRepository(db)
        self.connections = connections or SQLOAuthConnectionRepository(db)
        self.resolver = RbacResolver(self.roles, permissions or SQLPermissionRepository(db), admin_role)
        self.hooks = hooks or default_hooks
        self.settings = auth_settings or settings.auth

    async def _require(self, actor_id: UUID | str, required: str) -> Result[UUID]:
        actor = parse_uuid(actor_id)
        if actor is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_USER_ID)
        if not await self.resolver.has_permission(actor, required):
            return Result.fail(ErrorKind.FORBIDDEN, ErrorCode.INSUFFICIENT_PERMISSIONS, required)
        return Result.success(actor)

    async def _target(self, actor_id: UUID | str, user_id: UUID | str, required: str) -> Result[User]:
        uid = parse_uuid(user_id)
        if uid is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_USER_ID)
        allowed = await self._require(actor_id, required)
        if not allowed.ok:
            return Result.from_error(allowed.error)

        user = await self.users.find_by_id(uid)
        if user is None:
            return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.USER_NOT_FOUND)
        return Result.success(user)

    @service_operation("users.get")
    async def get_user(self, user_id: UUID | str) -> Result[UserDetail]:
        uid = parse_uuid(user_id)
        if uid is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_USER_ID)

        user = await self.users.find_by_id(uid)
        if user is None:
            return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.USER_NOT_FOUND)

        roles = await self.resolver.resolve_roles(uid)
        connections = await self.connections.find_by_user_id(uid)
        sessions = await self.tokens.count_active_sessions(uid)

        summary = UserSummary.model_validate(user)
        return Result.success(
            UserDetail(
                **summary.model_dump(),
                roles=sorted(roles),
                providers=[c.provider for c in connections],
                active_sessions=sessions,
            )
        )

    @service_operation("users.create")
    async def create_user(
        self,
        actor_id: UUID | str,
        email: str,
        password: str,
        full_name: str,
        phone: str | None = None,
        roles: list[str] | None = None,
        is_active: bool = True,
    ) -> Result[UserDetail]:
        """
        Create a password account with the given roles.

        Without ``roles`` the configured default role is assigned, as on
        self-registration. Every named role must exist.
        """
        allowed = await self._require(actor_id, "users:create")
        if not allowed.ok:
            return Result.from_error(allowed.error)
        actor = allowed.value

        normalized_email = normalize_email(email)
        if normalized_email is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_EMAIL)
        rejected = check_password(password, self.settings)
        if rejected is not None:
            return Result.fail(ErrorKind.VALIDATION, rejected)
        name = normalize_full_name(full_name)
        if name is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_FULL_NAME)
        phone = (phone or "").strip() or None
        if phone is not None and not is_valid_phone(phone):
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_PHONE)

        assigned: list[Role] = []
        for role_name in roles if roles is not None else [self.settings.default_role]:
            role = await self.roles.find_by_name(role_name.strip().lower())
            if role is None:
                if roles is None:
                    continue
                return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.ROLE_NOT_FOUND, role_name)
            assigned.append(role)

        if await self.users.find_by_email(normalized_email) is not None:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.EMAIL_ALREADY_REGISTERED)

        user = User(
            email=normalized_email,
            password_hash=self.hasher.hash(password),
            full_name=name,
            phone=phone,
            is_active=is_active,
        )
        try:
            await self.users.add(user)
        except UniqueViolation:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.EMAIL_ALREADY_REGISTERED)

        for role in assigned:
            await self.roles.assign_to_user(user.id, role.id, assigned_by=actor)

        logger.info("user_created", user_id=str(user.id), by=str(actor))
        await self.hooks.trigger("user.created", user_id=user.id, by=actor)

        summary = UserSummary.model_validate(user)
        return Result.success(
            UserDetail(**summary.model_dump(), roles=sorted(r.name for r in assigned))
        )

    @service_operation("users.update")
    async def update_user(
        self,
        actor_id: UUID | str,
        user_id: UUID | str,
        email: str | None = None,
        full_name: str | None = None,
    ) -> Result[UserSummary]:
        """Change the email or name of another account. ``None`` leaves a field unchanged."""
        found = await self._target(actor_id, user_id, "users:update")
        if not found.ok:
            return Result.from_error(found.error)
        user = found.value
        uid = user.id

        if email is not None:
            normalized_email = normalize_email(email)
            if normalized_email is None:
                return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_EMAIL)
            if normalized_email != user.email:
                if await self.users.find_by_email(normalized_email) is not None:
                    return Result.fail(ErrorKind.CONFLICT, ErrorCode.EMAIL_ALREADY_REGISTERED)
                user.email = normalized_email

        if full_name is not None:
            name = normalize_full_name(full_name)
            if name is None:
                return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_FULL_NAME)
            user.full_name = name

        try:
            await self.users.save(user)
        except UniqueViolation:
            return Result.fail(ErrorKind.CONFLICT, ErrorCode.EMAIL_ALREADY_REGISTERED)

        await self.hooks.trigger("user.profile_updated", user_id=uid, by=parse_uuid(actor_id))
        return Result.success(UserSummary.model_validate(user))

    @service_operation("users.reset_password")
    async def reset_password(
        self,
        actor_id: UUID | str,
        user_id: UUID | str,
        new_password: str,
    ) -> Result[None]:
        """
        Set a new password for another account and sign out its sessions.

        Works for OAuth-only accounts too, which then gain a password.
        Revocation is best-effort, as in a self-service password change.
        """
        found = await self._target(actor_id, user_id, "users:update")
        if not found.ok:
            return Result.from_error(found.error)
        user = found.value
        uid = user.id
        actor = parse_uuid(actor_id)

        rejected = check_password(new_password, self.settings)
        if rejected is not None:
            return Result.fail(ErrorKind.VALIDATION, rejected)

        user.password_hash = self.hasher.hash(new_password)
        await self.users.save(user)
        await commit(self.db)

        logger.info("password_reset", user_id=str(uid), by=str(actor))
        await revoke_sessions(self.db, self.tokens, uid, reason="password_reset")
        await self.hooks.trigger("user.password_reset", user_id=uid, by=actor)

        return Result.success(None)

    @service_operation("users.activate")
    async def activate_user(self, actor_id: UUID | str, user_id: UUID | str) -> Result[UserSummary]:
        """Reactivate an account. Activating an active account is a no-op."""
        found = await self._target(actor_id, user_id, "users:update")
        if not found.ok:
            return Result.from_error(found.error)
        user = found.value

        if not user.is_active:
            user.is_active = True
            await self.users.save(user)
            logger.info("account_activated", user_id=str(user.id), by=str(actor_id))
            await self.hooks.trigger("user.activated", user_id=user.id, by=parse_uuid(actor_id))

        return Result.success(UserSummary.model_validate(user))

    @service_operation("users.deactivate")
    async def deactivate_user(self, actor_id: UUID | str, user_id: UUID | str) -> Result[UserSummary]:
        """
        Deactivate another account and sign out its sessions.

        No password is involved, so this also covers OAuth-only accounts.
        Revocation is best-effort, as in self-service deactivation.
        """
        found = await self._target(actor_id, user_id, "users:update")
        if not found.ok:
            return Result.from_error(found.error)
        user = found.value
        uid = user.id
        actor = parse_uuid(actor_id)

        if uid == actor:
            return Result.fail(ErrorKind.FORBIDDEN, ErrorCode.CANNOT_DEACTIVATE_SELF)

        if not user.is_active:
            return Result.success(UserSummary.model_validate(user))

        user.is_active = False
        await self.users.save(user)
        summary = UserSummary.model_validate(user)
        await commit(self.db)

        logger.info("account_deactivated", user_id=str(uid), by=str(actor))
        await revoke_sessions(self.db, self.tokens, uid, reason="account_deactivated")
        await self.hooks.trigger("user.deactivated", user_id=uid, by=actor)

        return Result.success(summary)
