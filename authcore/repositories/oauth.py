"""
OAuth connection repository.
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import aliased

from authcore.models.oauth import OAuthConnection
from authcore.models.user import User

from .base import BaseRepository, storage_errors


class SQLOAuthConnectionRepository(BaseRepository[OAuthConnection]):
    """External identities linked to users."""

    model = OAuthConnection

    @storage_errors
    async def find_by_user_id(self, user_id: UUID) -> Sequence[OAuthConnection]:
        stmt = (
            self._base_query()
            .where(OAuthConnection.user_id == user_id)
            .order_by(OAuthConnection.linked_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @storage_errors
    async def find_by_provider_identity(
        self,
        provider: str,
        provider_user_id: str,
    ) -> OAuthConnection | None:
        stmt = (
            self._base_query()
            .where(OAuthConnection.provider == provider)
            .where(OAuthConnection.provider_user_id == provider_user_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, connection: OAuthConnection) -> OAuthConnection:
        return await self.add(connection)

    async def delete(self, connection_id: UUID) -> bool:
        return await self.delete_by_id(connection_id)

    @storage_errors
    async def delete_unless_last_method(self, connection_id: UUID, user_id: UUID) -> bool:
        """
        Delete a connection only while its user keeps another sign-in method.

        The remaining-method check is part of the DELETE statement, so it is
        evaluated against the rows current when the delete runs.
        """
        others = aliased(OAuthConnection)
        other_connections = (
            select(func.count())
            .select_from(others)
            .where(others.user_id == user_id)
            .where(others.id != connection_id)
            .scalar_subquery()
        )
        has_password = (
            select(User.id)
            .where(User.id == user_id)
            .where(User.password_hash.is_not(None))
            .exists()
        )
        stmt = (
            delete(OAuthConnection)
            .where(OAuthConnection.id == connection_id)
            .where(OAuthConnection.user_id == user_id)
            .where(or_(has_password, other_connections > 0))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1
