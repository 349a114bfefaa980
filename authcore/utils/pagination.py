"""
Offset pagination.

Usage:
    page = await permissions.find_all_paginated(page=2, per_page=50)
    page.items, page.total, page.has_next
"""

from typing import TypeVar, Generic, Sequence

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class OffsetPage(BaseModel, Generic[T]):
    """Offset pagination response."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: list[T]
    total: int
    page: int
    per_page: int
    pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def create(
        cls,
        items: Sequence[T],
        total: int,
        page: int,
        per_page: int,
    ) -> "OffsetPage[T]":
        pages = (total + per_page - 1) // per_page if per_page > 0 else 0
        return cls(
            items=list(items),
            total=total,
            page=page,
            per_page=per_page,
            pages=pages,
            has_next=page < pages,
            has_prev=page > 1,
        )

    def map(self, func) -> "OffsetPage":
        """Return a page with the same metadata and transformed items."""
        return OffsetPage(
            items=[func(item) for item in self.items],
            total=self.total,
            page=self.page,
            per_page=self.per_page,
            pages=self.pages,
            has_next=self.has_next,
            has_prev=self.has_prev,
        )
