"""
Tests for administrative user management.
"""

import pytest

from authcore.core.errors import ErrorCode, ErrorKind
from authcore.repositories.user import SQLUserRepository
from authcore.services.user import UserAdminService

from conftest import TEST_PASSWORD, fail_commit


@pytest.fixture
def admin_service(db, token_service, hasher, hook_manager, auth_settings) -> UserAdminService:
    return UserAdminService(
        db,
        token_service,
        hasher,
        hooks=hook_manager,
        admin_role="admin",
        auth_settings=auth_settings,
    )


@pytest.mark.asyncio
async def test_get_user_detail(admin_service, token_service, user_factory):
    user = await user_factory.create(roles=["user", "editor"])
    await user_factory.link(user, "google")
    await token_service.issue_refresh_token(user.id)
    await token_service.issue_refresh_token(user.id)

    detail = (await admin_service.get_user(user.id)).unwrap()

    assert detail.email == user.email
    assert detail.roles == ["editor", "user"]
    assert detail.providers == ["google"]
    assert detail.active_sessions == 2
    assert detail.has_password


@pytest.mark.asyncio
async def test_get_unknown_user(admin_service):
    from uuid import uuid4

    result = await admin_service.get_user(uuid4())

    assert result.error.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_admin_deactivates_oauth_only_account(admin_service, token_service, hook_manager, admin_user, user_factory):
    """Accounts without a password can still be deactivated by an administrator."""
    user = await user_factory.create(password=None)
    await user_factory.link(user, "google")
    session = await token_service.issue_refresh_token(user.id)

    result = await admin_service.deactivate_user(admin_user.id, user.id)

    assert result.ok
    assert not result.value.is_active
    assert not (await token_service.verify_and_consume_refresh_token(session.secret)).ok
    assert ("user.deactivated", {"user_id": user.id, "by": admin_user.id}) in hook_manager.events


@pytest.mark.asyncio
async def test_admin_cannot_deactivate_self(admin_service, admin_user):
    result = await admin_service.deactivate_user(admin_user.id, admin_user.id)

    assert result.error.kind == ErrorKind.FORBIDDEN
    assert result.error.code == ErrorCode.CANNOT_DEACTIVATE_SELF


@pytest.mark.asyncio
async def test_non_admin_cannot_deactivate(admin_service, test_user, user_factory):
    other = await user_factory.create()

    result = await admin_service.deactivate_user(test_user.id, other.id)

    assert result.error.kind == ErrorKind.FORBIDDEN
    assert result.error.code == ErrorCode.INSUFFICIENT_PERMISSIONS


@pytest.mark.asyncio
async def test_activate_user(admin_service, hook_manager, admin_user, user_factory):
    user = await user_factory.create(is_active=False)

    result = await admin_service.activate_user(admin_user.id, user.id)

    assert result.ok
    assert result.value.is_active
    assert "user.activated" in hook_manager.names()


@pytest.mark.asyncio
async def test_activate_active_user_is_noop(admin_service, hook_manager, admin_user, test_user):
    result = await admin_service.activate_user(admin_user.id, test_user.id)

    assert result.ok
    assert "user.activated" not in hook_manager.names()


@pytest.mark.asyncio
async def test_users_permission_is_enough(admin_service, user_factory):
    await user_factory.role("support", permissions=["users:*"])
    support = await user_factory.create(roles=["support"])
    user = await user_factory.create(is_active=False)

    assert (await admin_service.activate_user(support.id, user.id)).ok


@pytest.mark.asyncio
async def test_deactivate_survives_failed_revocation_commit(db, admin_service, monkeypatch, admin_user, user_factory):
    admin_id = admin_user.id
    user = await user_factory.create()
    user_id = user.id
    fail_commit(monkeypatch, db, on_call=2)

    result = await admin_service.deactivate_user(admin_id, user_id)

    assert result.ok
    assert not (await SQLUserRepository(db).find_by_id(user_id)).is_active


# ============ Create / update ============


@pytest.mark.asyncio
async def test_create_user_with_roles(admin_service, hook_manager, admin_user, user_factory):
    await user_factory.role("editor")

    result = await admin_service.create_user(
        admin_user.id,
        " New.User@Example.com ",
        "a-good-password",
        "  New   User ",
        roles=["editor"],
    )

    assert result.ok
    created = result.value
    assert created.email == "new.user@example.com"
    assert created.full_name == "New User"
    assert created.has_password
    assert created.roles == ["editor"]
    assert (await admin_service.get_user(created.id)).unwrap().roles == ["editor"]
    assert ("user.created", {"user_id": created.id, "by": admin_user.id}) in hook_manager.events


@pytest.mark.asyncio
async def test_create_user_gets_default_role(admin_service, admin_user, user_factory):
    await user_factory.role("user")

    created = (await admin_service.create_user(admin_user.id, "new@example.com", "a-good-password", "New")).unwrap()

    assert created.roles == ["user"]


@pytest.mark.asyncio
async def test_create_user_unknown_role(admin_service, admin_user):
    result = await admin_service.create_user(
        admin_user.id, "new@example.com", "a-good-password", "New", roles=["wizard"]
    )

    assert result.error.kind == ErrorKind.NOT_FOUND
    assert result.error.code == ErrorCode.ROLE_NOT_FOUND


@pytest.mark.asyncio
async def test_create_user_duplicate_email(admin_service, admin_user, test_user):
    result = await admin_service.create_user(admin_user.id, "USER@example.com", "a-good-password", "Copy")

    assert result.error.kind == ErrorKind.CONFLICT
    assert result.error.code == ErrorCode.EMAIL_ALREADY_REGISTERED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "email,password,full_name,expected",
    [
        ("not-an-email", "a-good-password", "New", ErrorCode.INVALID_EMAIL),
        ("new@example.com", "short", "New", ErrorCode.PASSWORD_TOO_SHORT),
        ("new@example.com", "a-good-password", "   ", ErrorCode.INVALID_FULL_NAME),
    ],
)
async def test_create_user_validation(admin_service, admin_user, email, password, full_name, expected):
    result = await admin_service.create_user(admin_user.id, email, password, full_name)

    assert result.error.kind == ErrorKind.VALIDATION
    assert result.error.code == expected


@pytest.mark.asyncio
async def test_create_user_requires_permission(admin_service, test_user):
    result = await admin_service.create_user(test_user.id, "new@example.com", "a-good-password", "New")

    assert result.error.kind == ErrorKind.FORBIDDEN
    assert result.error.code == ErrorCode.INSUFFICIENT_PERMISSIONS


@pytest.mark.asyncio
async def test_update_user(admin_service, hook_manager, admin_user, test_user):
    result = await admin_service.update_user(admin_user.id, test_user.id, email="Renamed@Example.com")

    assert result.ok
    assert result.value.email == "renamed@example.com"
    assert result.value.full_name == "Test User"
    assert ("user.profile_updated", {"user_id": test_user.id, "by": admin_user.id}) in hook_manager.events


@pytest.mark.asyncio
async def test_update_user_email_taken(admin_service, admin_user, test_user):
    result = await admin_service.update_user(admin_user.id, test_user.id, email="admin@example.com")

    assert result.error.kind == ErrorKind.CONFLICT
    assert result.error.code == ErrorCode.EMAIL_ALREADY_REGISTERED


# ============ Password reset ============


@pytest.mark.asyncio
async def test_reset_password(db, admin_service, token_service, hasher, hook_manager, admin_user, test_user):
    """The new password works at once and every existing session is signed out."""
    admin_id, user_id = admin_user.id, test_user.id
    session = await token_service.issue_refresh_token(user_id)

    result = await admin_service.reset_password(admin_id, user_id, "reset-by-admin")

    assert result.ok
    user = await SQLUserRepository(db).find_by_id(user_id)
    assert hasher.verify("reset-by-admin", user.password_hash)
    assert not hasher.verify(TEST_PASSWORD, user.password_hash)
    assert not (await token_service.verify_and_consume_refresh_token(session.secret)).ok
    assert ("user.password_reset", {"user_id": user_id, "by": admin_id}) in hook_manager.events


@pytest.mark.asyncio
async def test_reset_password_of_oauth_only_account(db, admin_service, hasher, admin_user, user_factory):
    user = await user_factory.create(password=None)
    user_id = user.id

    assert (await admin_service.reset_password(admin_user.id, user_id, "reset-by-admin")).ok

    user = await SQLUserRepository(db).find_by_id(user_id)
    assert user.has_password
    assert hasher.verify("reset-by-admin", user.password_hash)


@pytest.mark.asyncio
async def test_reset_password_requires_permission(admin_service, test_user, user_factory):
    other = await user_factory.create()

    result = await admin_service.reset_password(test_user.id, other.id, "reset-by-admin")

    assert result.error.kind == ErrorKind.FORBIDDEN
    assert result.error.code == ErrorCode.INSUFFICIENT_PERMISSIONS


@pytest.mark.asyncio
async def test_reset_password_too_short(admin_service, admin_user, test_user):
    result = await admin_service.reset_password(admin_user.id, test_user.id, "short")

    assert result.error.kind == ErrorKind.VALIDATION
    assert result.error.code == ErrorCode.PASSWORD_TOO_SHORT
