"""
User repository.
"""

from uuid import UUID

from authcore.models.user import User

from .base import BaseRepository, storage_errors


class SQLUserRepository(BaseRepository[User]):
    """Users, looked up by id or normalised email."""

    model = User

    async def find_by_id(self, user_id: UUID) -> User | None:
        return await self.get_by_id(user_id)

    @storage_errors
    async def find_by_email(self, email: str) -> User | None:
        stmt = self._base_query().where(User.email == email.strip().lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @storage_errors
    async def find_by_id_for_update(self, user_id: UUID) -> User | None:
        """Load a user and lock its row until the transaction ends."""
        stmt = self._base_query().where(User.id == user_id).with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
