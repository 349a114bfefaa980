"""
Refresh token repository.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update

from authcore.core.interfaces.repositories import NewRefreshToken
from authcore.models.token import RefreshToken
from authcore.utils.timezone import utc_now

from .base import BaseRepository, storage_errors


class SQLRefreshTokenRepository(BaseRepository[RefreshToken]):
    """
    Refresh tokens keyed by secret digest.

    Revocations are single UPDATE statements guarded by ``revoked = false``
    so concurrent writers cannot both succeed on the same row.
    """

    model = RefreshToken

    @storage_errors
    async def create(self, token: NewRefreshToken) -> RefreshToken:
        record = RefreshToken(
            user_id=token.user_id,
            token_hash=token.token_hash,
            expires_at=token.expires_at,
            user_agent=token.user_agent,
            ip_address=token.ip_address,
        )
        self.db.add(record)
        await self.db.flush()
        return record

    @storage_errors
    async def find_by_hash(self, token_hash: str) -> RefreshToken | None:
        stmt = self._base_query().where(RefreshToken.token_hash == token_hash)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @storage_errors
    async def revoke_if_active(self, token_id: UUID, now: datetime) -> bool:
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.id == token_id)
            .where(RefreshToken.revoked.is_(False))
            .where(RefreshToken.expires_at > now)
            .values(revoked=True, revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    @storage_errors
    async def set_replaced_by(self, token_id: UUID, successor_id: UUID) -> None:
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.id == token_id)
            .values(replaced_by_id=successor_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)

    @storage_errors
    async def revoke(self, token_id: UUID) -> bool:
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.id == token_id)
            .where(RefreshToken.revoked.is_(False))
            .values(revoked=True, revoked_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    @storage_errors
    async def revoke_all_for_user(self, user_id: UUID) -> int:
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .where(RefreshToken.revoked.is_(False))
            .values(revoked=True, revoked_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    @storage_errors
    async def count_active_for_user(self, user_id: UUID, now: datetime) -> int:
        """Active (unrevoked, unexpired) sessions of a user."""
        stmt = (
            select(func.count())
            .select_from(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .where(RefreshToken.revoked.is_(False))
            .where(RefreshToken.expires_at > now)
        )
        return await self.db.scalar(stmt) or 0
