"""
Base repository with common CRUD operations.
"""

from functools import wraps
from typing import Any, Awaitable, Callable, Generic, Type, TypeVar
from uuid import UUID

from sqlalchemy import Select, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.errors import RepositoryError, UniqueViolation
from authcore.models.base import Base

ModelT = TypeVar("ModelT", bound=Base)
F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def storage_errors(func: F) -> F:
    """
    Translate SQLAlchemy failures into repository errors.

    An integrity failure leaves the session unusable, so it is rolled back
    before ``UniqueViolation`` is raised.
    """
    @wraps(func)
    async def wrapper(self: "BaseRepository", *args: Any, **kwargs: Any) -> Any:
        try:
            return await func(self, *args, **kwargs)
        except IntegrityError as e:
            await self.db.rollback()
            raise UniqueViolation(str(e.orig or e)) from e
        except SQLAlchemyError as e:
            raise RepositoryError(str(e)) from e
    return wrapper  # type: ignore[return-value]


class BaseRepository(Generic[ModelT]):
    """
    Base repository providing common operations.

    Writes flush but never commit: the session owner (request dependency,
    or a service at an explicit durability point) commits.

    Usage:
        class SQLUserRepository(BaseRepository[User]):
            model = User

        repo = SQLUserRepository(db)
        user = await repo.get_by_id(user_id)
    """

    model: Type[ModelT]

    def __init__(self, db: AsyncSession):
        self.db = db

    def _base_query(self) -> Select:
        """Base query. Always reloads rows so bulk updates are visible."""
        return select(self.model).execution_options(populate_existing=True)

    @storage_errors
    async def get_by_id(self, id: UUID | str) -> ModelT | None:
        """Get entity by ID."""
        if isinstance(id, str):
            id = UUID(id)
        stmt = self._base_query().where(self.model.id == id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @storage_errors
    async def get_one(self, **filters) -> ModelT | None:
        """Get single entity by filters."""
        stmt = self._base_query()
        for field, value in filters.items():
            stmt = stmt.where(getattr(self.model, field) == value)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @storage_errors
    async def count(self, **filters) -> int:
        """Count entities matching filters."""
        stmt = select(func.count()).select_from(self.model)
        for field, value in filters.items():
            stmt = stmt.where(getattr(self.model, field) == value)
        return await self.db.scalar(stmt) or 0

    @storage_errors
    async def add(self, entity: ModelT) -> ModelT:
        """Insert a new entity."""
        self.db.add(entity)
        await self.db.flush()
        return entity

    @storage_errors
    async def save(self, entity: ModelT) -> ModelT:
        """Flush pending changes of an entity."""
        self.db.add(entity)
        await self.db.flush()
        return entity

    @storage_errors
    async def delete_by_id(self, id: UUID) -> bool:
        """Delete entity by ID (hard delete)."""
        stmt = delete(self.model).where(self.model.id == id)
        result = await self.db.execute(stmt)
        return result.rowcount > 0


async def commit(db: AsyncSession | None) -> None:
    """
    Commit at a service durability point.

    Failures are rolled back and raised as ``RepositoryError``, the same
    as failures inside a repository call.
    """
    if db is None:
        return
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise RepositoryError(str(e)) from e
