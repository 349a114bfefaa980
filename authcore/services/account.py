"""
Self-service account lifecycle.

Password change and deactivation pair a mandatory state change with a
best-effort revocation of every session. The state change is committed
first; a revocation failure afterwards is logged and never undoes it.
"""

from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.auth.passwords import BcryptPasswordHasher
from authcore.core.auth.tokens import TokenService
from authcore.core.config import AuthSettings, settings
from authcore.core.errors import ErrorCode, ErrorKind, RepositoryError, Result, service_operation
from authcore.core.hooks.manager import HookManager, hooks as default_hooks
from authcore.core.interfaces.repositories import UserRepository
from authcore.core.interfaces.security import PasswordHasher
from authcore.models.user import User
from authcore.repositories.base import commit
from authcore.repositories.user import SQLUserRepository
from authcore.schemas.user import UserSummary

from .validation import check_password, is_valid_phone, normalize_full_name, parse_uuid

logger = structlog.get_logger()


async def revoke_sessions(
    db: AsyncSession | None,
    tokens: TokenService,
    user_id: UUID,
    reason: str,
) -> bool:
    """
    Revoke and commit every refresh token of a user, best-effort.

    Called after the state change is committed. A failure in the revocation
    or in its commit is logged and rolled back, never raised.
    """
    revoked = await tokens.revoke_all_for_user(user_id)
    if revoked.ok:
        try:
            await commit(db)
            return True
        except RepositoryError as e:
            error = str(e)
    else:
        error = revoked.error.detail
        if db is not None:
            await db.rollback()

    logger.warning(
        "session_revocation_failed",
        user_id=str(user_id),
        reason=reason,
        error=error,
    )
    return False


class AccountLifecycleService:
    """Password change, profile update and deactivation of one's own account."""

    def __init__(
        self,
        db: AsyncSession | None,
        tokens: TokenService,
        hasher: PasswordHasher | None = None,
        *,
        users: UserRepository | None = None,
        hooks: HookManager | None = None,
        auth_settings: AuthSettings | None = None,
    ):
        self.db = db
        self.tokens = tokens
        self.hasher = hasher or BcryptPasswordHasher()
        self.users = users or SQLUserRepository(db)
        self.hooks = hooks or default_hooks
        self.settings = auth_settings or settings.auth

    async def _active_user(self, user_id: UUID | str) -> Result[User]:
        uid = parse_uuid(user_id)
        if uid is None:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_USER_ID)
        user = await self.users.find_by_id(uid)
        if user is None or not user.is_active:
            return Result.fail(ErrorKind.NOT_FOUND, ErrorCode.USER_NOT_FOUND)
        return Result.success(user)

    @service_operation("account.change_password")
    async def change_password(
        self,
        user_id: UUID | str,
        current_password: str,
        new_password: str,
    ) -> Result[None]:
        """
        Replace the password and sign out every session.

        Accounts without a password (OAuth-only) cannot use this path.
        """
        found = await self._active_user(user_id)
        if not found.ok:
            return Result.from_error(found.error)
        user = found.value
        uid = user.id

        if not user.has_password or not self.hasher.verify(current_password or "", user.password_hash):
            return Result.fail(ErrorKind.INVALID_CREDENTIALS, ErrorCode.INVALID_CREDENTIALS)

        rejected = check_password(new_password, self.settings)
        if rejected is not None:
            return Result.fail(ErrorKind.VALIDATION, rejected)
        if new_password == current_password:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.PASSWORD_UNCHANGED)

        user.password_hash = self.hasher.hash(new_password)
        await self.users.save(user)
        await commit(self.db)

        logger.info("password_changed", user_id=str(uid))
        await revoke_sessions(self.db, self.tokens, uid, reason="password_changed")
        await self.hooks.trigger("user.password_changed", user_id=uid)

        return Result.success(None)

    @service_operation("account.update_profile")
    async def update_profile(
        self,
        user_id: UUID | str,
        full_name: str | None = None,
        phone: str | None = None,
        photo_url: str | None = None,
    ) -> Result[UserSummary]:
        """Update profile fields. ``None`` leaves a field unchanged, ``""`` clears phone/photo."""
        found = await self._active_user(user_id)
        if not found.ok:
            return Result.from_error(found.error)
        user = found.value

        if full_name is not None:
            normalized = normalize_full_name(full_name)
            if normalized is None:
                return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_FULL_NAME)
            user.full_name = normalized

        if phone is not None:
            phone = phone.strip()
            if phone and not is_valid_phone(phone):
                return Result.fail(ErrorKind.VALIDATION, ErrorCode.INVALID_PHONE)
            user.phone = phone or None

        if photo_url is not None:
            user.photo_url = photo_url.strip() or None

        await self.users.save(user)
        summary = UserSummary.model_validate(user)

        await self.hooks.trigger("user.profile_updated", user_id=user.id)
        return Result.success(summary)

    @service_operation("account.deactivate")
    async def deactivate_account(self, user_id: UUID | str, password: str) -> Result[None]:
        """
        Deactivate one's own account after re-entering the password.

        ``Active -> Inactive`` is terminal here; only an administrator can
        reactivate. Accounts without a password can never pass the check,
        so OAuth-only accounts have no self-service deactivation.
        """
        if not password:
            return Result.fail(ErrorKind.VALIDATION, ErrorCode.PASSWORD_REQUIRED)

        found = await self._active_user(user_id)
        if not found.ok:
            return Result.from_error(found.error)
        user = found.value
        uid = user.id

        if not user.has_password or not self.hasher.verify(password, user.password_hash):
            return Result.fail(ErrorKind.INVALID_CREDENTIALS, ErrorCode.INVALID_CREDENTIALS)

        user.is_active = False
        await self.users.save(user)
        await commit(self.db)

        logger.info("account_deactivated", user_id=str(uid), by="self")
        await revoke_sessions(self.db, self.tokens, uid, reason="account_deactivated")
        await self.hooks.trigger("user.deactivated", user_id=uid, by=uid)

        return Result.success(None)
