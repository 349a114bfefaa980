"""
Pytest fixtures for testing.

Provides:
- Async database session on in-memory SQLite
- Token service and hook manager wired for tests
- Factory fixtures for creating test data
- Mock implementations for interfaces
"""

from datetime import datetime
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from authcore.core.auth.passwords import BcryptPasswordHasher
from authcore.core.auth.tokens import TokenService
from authcore.core.config import AuthSettings
from authcore.core.errors import RepositoryError
from authcore.core.hooks.manager import HookManager
from authcore.core.interfaces.repositories import NewRefreshToken
from authcore.core.interfaces.security import ExternalIdentity, ProviderExchangeError
from authcore.models.base import Base
from authcore.models.oauth import OAuthConnection
from authcore.models.rbac import Permission, Role, UserPermission, UserRole, role_permissions
from authcore.models.user import User
from authcore.providers.registry import ProviderRegistry
from authcore.repositories.token import SQLRefreshTokenRepository
from authcore.utils.timezone import utc_now


# Test database URL (SQLite in-memory for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_PASSWORD = "testpassword123"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Database session; anything left uncommitted is rolled back."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


# ============ Core Services ============


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings(
        secret_key="test-secret-key",
        access_token_expire_minutes=15,
        refresh_token_expire_days=7,
        bcrypt_rounds=4,
    )


@pytest.fixture
def hasher() -> BcryptPasswordHasher:
    """Low-cost bcrypt so tests stay fast."""
    return BcryptPasswordHasher(rounds=4)


class RecordingHooks(HookManager):
    """Hook manager that remembers every triggered event."""

    def __init__(self):
        super().__init__()
        self.events: list[tuple[str, dict]] = []

    async def trigger(self, name: str, *args, **kwargs):
        self.events.append((name, kwargs))
        return await super().trigger(name, *args, **kwargs)

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def hook_manager() -> RecordingHooks:
    return RecordingHooks()


@pytest.fixture
def token_service(db: AsyncSession, auth_settings: AuthSettings, hook_manager: RecordingHooks) -> TokenService:
    return TokenService(SQLRefreshTokenRepository(db), auth_settings, hooks=hook_manager)


# ============ Factory Fixtures ============


class UserFactory:
    """Factory for creating test users."""

    def __init__(self, db: AsyncSession, hasher: BcryptPasswordHasher):
        self.db = db
        self.hasher = hasher

    async def create(
        self,
        email: str | None = None,
        password: str | None = TEST_PASSWORD,
        full_name: str = "Test User",
        is_active: bool = True,
        roles: list[str] | None = None,
    ) -> User:
        """Create a user in the database. ``password=None`` makes an OAuth-only account."""
        email = email or f"test-{uuid4().hex[:8]}@example.com"

        user = User(
            email=email,
            password_hash=self.hasher.hash(password) if password else None,
            full_name=full_name,
            is_active=is_active,
        )
        self.db.add(user)
        await self.db.flush()

        for role_name in roles or []:
            role = await self.role(role_name)
            self.db.add(UserRole(user_id=user.id, role_id=role.id))

        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def role(self, name: str, permissions: list[str] | None = None, is_system: bool = False) -> Role:
        """Get or create a role, attaching ``permissions`` (created as needed)."""
        role = (await self.db.execute(select(Role).where(Role.name == name))).scalar_one_or_none()
        if role is None:
            role = Role(name=name, is_system=is_system or name == "admin")
            self.db.add(role)
            await self.db.flush()

        for permission_name in permissions or []:
            permission = await self.permission(permission_name)
            await self.db.execute(
                role_permissions.insert().values(role_id=role.id, permission_id=permission.id)
            )

        await self.db.commit()
        return role

    async def permission(self, name: str) -> Permission:
        permission = (
            await self.db.execute(select(Permission).where(Permission.name == name))
        ).scalar_one_or_none()
        if permission is None:
            resource, action = name.split(":")
            permission = Permission(name=name, resource=resource, action=action)
            self.db.add(permission)
            await self.db.flush()
        return permission

    async def grant(self, user: User, permission_name: str) -> None:
        permission = await self.permission(permission_name)
        self.db.add(UserPermission(user_id=user.id, permission_id=permission.id))
        await self.db.commit()

    async def link(
        self,
        user: User,
        provider: str,
        provider_user_id: str | None = None,
        email: str | None = None,
    ) -> OAuthConnection:
        connection = OAuthConnection(
            user_id=user.id,
            provider=provider,
            provider_user_id=provider_user_id or uuid4().hex,
            email=email or user.email,
            linked_at=utc_now(),
        )
        self.db.add(connection)
        await self.db.commit()
        return connection


@pytest_asyncio.fixture
async def user_factory(db: AsyncSession, hasher: BcryptPasswordHasher) -> UserFactory:
    """Fixture that provides UserFactory."""
    return UserFactory(db, hasher)


@pytest_asyncio.fixture
async def test_user(user_factory: UserFactory) -> User:
    """Create a standard test user."""
    return await user_factory.create(email="user@example.com")


@pytest_asyncio.fixture
async def admin_user(user_factory: UserFactory) -> User:
    """Create an admin test user."""
    return await user_factory.create(email="admin@example.com", roles=["admin"])


# ============ Auth Helpers ============


def auth_header(tokens: TokenService, user: User, roles: list[str] | None = None) -> str:
    """Authorization header value for ``user``."""
    access = tokens.issue_access_token(user.id, user.email, roles or [])
    return f"Bearer {access.token}"


# ============ Mock Implementations ============


class MockProviderExchange:
    """Mock OAuth provider: authorization codes map to identities."""

    def __init__(self, provider: str = "google"):
        self.provider = provider
        self.identities: dict[str, ExternalIdentity] = {}
        self.calls: list[tuple[str, str | None]] = []
        self.fail_with: str | None = None

    def add_identity(
        self,
        code: str,
        provider_user_id: str,
        email: str | None = None,
        name: str | None = None,
        avatar_url: str | None = None,
    ) -> ExternalIdentity:
        identity = ExternalIdentity(
            provider=self.provider,
            provider_user_id=provider_user_id,
            email=email,
            name=name,
            avatar_url=avatar_url,
        )
        self.identities[code] = identity
        return identity

    async def exchange(self, authorization_code: str, code_verifier: str | None = None) -> ExternalIdentity:
        self.calls.append((authorization_code, code_verifier))
        if self.fail_with:
            raise ProviderExchangeError(self.fail_with)
        identity = self.identities.get(authorization_code)
        if identity is None:
            raise ProviderExchangeError(f"{self.provider}: invalid_grant")
        return identity


@pytest.fixture
def google() -> MockProviderExchange:
    return MockProviderExchange("google")


@pytest.fixture
def facebook() -> MockProviderExchange:
    return MockProviderExchange("facebook")


@pytest.fixture
def registry(google: MockProviderExchange, facebook: MockProviderExchange) -> ProviderRegistry:
    """Google and Facebook enabled; Apple supported but not configured."""
    registry = ProviderRegistry()
    registry.register(google)
    registry.register(facebook)
    return registry


class FailingRefreshTokenRepository:
    """Refresh token store whose bulk revocation always fails."""

    def __init__(self, inner: SQLRefreshTokenRepository):
        self.inner = inner
        self.revoke_all_calls = 0

    async def create(self, token: NewRefreshToken):
        return await self.inner.create(token)

    async def find_by_hash(self, token_hash: str):
        return await self.inner.find_by_hash(token_hash)

    async def revoke_if_active(self, token_id: UUID, now: datetime) -> bool:
        return await self.inner.revoke_if_active(token_id, now)

    async def set_replaced_by(self, token_id: UUID, successor_id: UUID) -> None:
        await self.inner.set_replaced_by(token_id, successor_id)

    async def revoke(self, token_id: UUID) -> bool:
        return await self.inner.revoke(token_id)

    async def revoke_all_for_user(self, user_id: UUID) -> int:
        self.revoke_all_calls += 1
        raise RepositoryError("token store unavailable")

    async def count_active_for_user(self, user_id: UUID, now: datetime) -> int:
        return await self.inner.count_active_for_user(user_id, now)


def fail_commit(monkeypatch, session: AsyncSession, on_call: int) -> dict:
    """Make the ``on_call``-th commit of ``session`` fail as a lost connection would."""
    calls = {"count": 0}
    real_commit = session.commit

    async def commit():
        calls["count"] += 1
        if calls["count"] == on_call:
            raise OperationalError("COMMIT", {}, Exception("connection lost"))
        await real_commit()

    monkeypatch.setattr(session, "commit", commit)
    return calls
