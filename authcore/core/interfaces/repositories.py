"""
Repository protocols.

Services depend on these protocols only. The SQLAlchemy implementations
live in ``authcore.repositories``; tests may substitute in-memory or
failing doubles.

Every method may raise ``RepositoryError`` when the store fails, and
``UniqueViolation`` when a write breaks a uniqueness constraint.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Sequence
from uuid import UUID

from authcore.models import (
    OAuthConnection,
    Permission,
    RefreshToken,
    Role,
    User,
)
from authcore.utils.pagination import OffsetPage


@dataclass(frozen=True)
class NewRefreshToken:
    """Data needed to persist a refresh token."""
    user_id: UUID
    token_hash: str
    expires_at: datetime
    user_agent: str | None = None
    ip_address: str | None = None


class UserRepository(Protocol):
    """User persistence."""

    async def find_by_id(self, user_id: UUID) -> User | None:
        ...

    async def find_by_email(self, email: str) -> User | None:
        """Lookup by normalised (lower-cased) email."""
        ...

    async def find_by_id_for_update(self, user_id: UUID) -> User | None:
        """Lookup that serialises concurrent writers of the same user."""
        ...

    async def add(self, user: User) -> User:
        """Insert a new user. Raises UniqueViolation on duplicate email."""
        ...

    async def save(self, user: User) -> User:
        """Persist changes to an existing user."""
        ...


class RoleRepository(Protocol):
    """Role persistence and role assignments."""

    async def find_by_id(self, role_id: UUID) -> Role | None:
        ...

    async def find_by_name(self, name: str) -> Role | None:
        ...

    async def list_all(self) -> list[Role]:
        ...

    async def add(self, role: Role) -> Role:
        ...

    async def save(self, role: Role) -> Role:
        ...

    async def delete(self, role_id: UUID) -> bool:
        """Delete a role and its role-permission and user-role rows."""
        ...

    async def find_permissions_by_role_id(self, role_id: UUID) -> list[Permission]:
        ...

    async def find_role_names_by_user_id(self, user_id: UUID) -> set[str]:
        ...

    async def find_permission_names_by_user_roles(self, user_id: UUID) -> set[str]:
        """Names of every permission granted through the user's roles."""
        ...

    async def has_role(self, user_id: UUID, role_id: UUID) -> bool:
        ...

    async def assign_to_user(
        self,
        user_id: UUID,
        role_id: UUID,
        assigned_by: UUID | None = None,
    ) -> None:
        ...

    async def remove_from_user(self, user_id: UUID, role_id: UUID) -> bool:
        ...

    async def has_permission(self, role_id: UUID, permission_id: UUID) -> bool:
        ...

    async def add_permission(self, role_id: UUID, permission_id: UUID) -> None:
        ...

    async def remove_permission(self, role_id: UUID, permission_id: UUID) -> bool:
        ...


class PermissionRepository(Protocol):
    """Permission persistence and direct user grants."""

    async def find_by_id(self, permission_id: UUID) -> Permission | None:
        ...

    async def find_by_name(self, name: str) -> Permission | None:
        ...

    async def find_all_paginated(
        self,
        page: int = 1,
        per_page: int = 20,
        resource: str | None = None,
    ) -> OffsetPage[Permission]:
        ...

    async def add(self, permission: Permission) -> Permission:
        ...

    async def find_names_granted_to_user(self, user_id: UUID) -> set[str]:
        ...

    async def is_granted_to_user(self, user_id: UUID, permission_id: UUID) -> bool:
        ...

    async def grant_to_user(
        self,
        user_id: UUID,
        permission_id: UUID,
        assigned_by: UUID | None = None,
    ) -> None:
        ...

    async def revoke_from_user(self, user_id: UUID, permission_id: UUID) -> bool:
        ...


class RefreshTokenRepository(Protocol):
    """Refresh token persistence."""

    async def create(self, token: NewRefreshToken) -> RefreshToken:
        ...

    async def find_by_hash(self, token_hash: str) -> RefreshToken | None:
        ...

    async def revoke_if_active(
        self,
        token_id: UUID,
        now: datetime,
    ) -> bool:
        """
        Atomically revoke a token that is neither revoked nor expired.

        Returns False when another writer got there first (or the token
        expired), in which case nothing changed.
        """
        ...

    async def set_replaced_by(self, token_id: UUID, successor_id: UUID) -> None:
        ...

    async def revoke(self, token_id: UUID) -> bool:
        """Revoke one token. Returns False if it was already revoked."""
        ...

    async def revoke_all_for_user(self, user_id: UUID) -> int:
        """Revoke every active token of a user, returning how many changed."""
        ...

    async def count_active_for_user(self, user_id: UUID, now: datetime) -> int:
        ...


class OAuthConnectionRepository(Protocol):
    """OAuth connection persistence."""

    async def find_by_user_id(self, user_id: UUID) -> Sequence[OAuthConnection]:
        """Connections of a user, most recently linked first."""
        ...

    async def find_by_provider_identity(
        self,
        provider: str,
        provider_user_id: str,
    ) -> OAuthConnection | None:
        ...

    async def create(self, connection: OAuthConnection) -> OAuthConnection:
        """Insert a connection. Raises UniqueViolation on either unique rule."""
        ...

    async def delete(self, connection_id: UUID) -> bool:
        ...

    async def delete_unless_last_method(self, connection_id: UUID, user_id: UUID) -> bool:
        """Delete only if the user keeps a password or another connection."""
        ...
