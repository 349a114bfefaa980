"""
Base model classes and mixins.

- TimestampMixin: created_at, updated_at (always use)
- UUIDMixin: UUID primary key
"""

from datetime import datetime
from uuid import UUID as PyUUID, uuid4
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from authcore.utils.timezone import utc_now


class Base(DeclarativeBase):
    """Base class for all models."""

    # All datetimes are timezone-aware
    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class TimestampMixin:
    """
    Mixin for created_at and updated_at timestamps.

    Values are set client-side so they are available right after a flush
    without a refresh round-trip (async sessions cannot lazy load).

    Usage:
        class MyModel(Base, TimestampMixin):
            __tablename__ = "my_table"
            ...
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )


class UUIDMixin:
    """
    Mixin for UUID primary key.

    Usage:
        class MyModel(Base, UUIDMixin):
            __tablename__ = "my_table"
            # No need to define id column
    """

    id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )


class StandardMixin(UUIDMixin, TimestampMixin):
    """
    Standard mixin combining UUID + timestamps.

    Provides:
        - id: UUID primary key
        - created_at: When created (UTC)
        - updated_at: When last modified (UTC)
    """
    pass
