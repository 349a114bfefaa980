"""
Tests for self-service account lifecycle.
"""

import pytest

from authcore.core.auth.tokens import TokenService
from authcore.core.errors import ErrorCode, ErrorKind
from authcore.repositories.token import SQLRefreshTokenRepository
from authcore.repositories.user import SQLUserRepository
from authcore.services.account import AccountLifecycleService

from conftest import TEST_PASSWORD, FailingRefreshTokenRepository, fail_commit


@pytest.fixture
def accounts(db, token_service, hasher, hook_manager, auth_settings) -> AccountLifecycleService:
    return AccountLifecycleService(
        db,
        token_service,
        hasher,
        hooks=hook_manager,
        auth_settings=auth_settings,
    )


# ============ Deactivation ============


@pytest.mark.asyncio
async def test_deactivate_revokes_sessions(db, accounts, token_service, hook_manager, test_user):
    session = await token_service.issue_refresh_token(test_user.id)

    result = await accounts.deactivate_account(test_user.id, TEST_PASSWORD)

    assert result.ok
    user = await SQLUserRepository(db).find_by_id(test_user.id)
    assert not user.is_active
    assert not (await token_service.verify_and_consume_refresh_token(session.secret)).ok
    assert "user.deactivated" in hook_manager.names()


@pytest.mark.asyncio
async def test_deactivate_oauth_only_account_is_refused(accounts, user_factory):
    """Without a stored password the check can never pass."""
    user = await user_factory.create(password=None)
    await user_factory.link(user, "google")

    result = await accounts.deactivate_account(user.id, "any-password")

    assert not result.ok
    assert result.error.kind == ErrorKind.INVALID_CREDENTIALS
    assert result.error.code == ErrorCode.INVALID_CREDENTIALS


@pytest.mark.asyncio
async def test_deactivate_wrong_password(accounts, test_user):
    result = await accounts.deactivate_account(test_user.id, "wrong-password")

    assert result.error.kind == ErrorKind.INVALID_CREDENTIALS


@pytest.mark.asyncio
async def test_deactivate_requires_password(accounts, test_user):
    result = await accounts.deactivate_account(test_user.id, "")

    assert result.error.kind == ErrorKind.VALIDATION
    assert result.error.code == ErrorCode.PASSWORD_REQUIRED


@pytest.mark.asyncio
async def test_deactivate_twice(accounts, test_user):
    """Inactive is terminal for self-service: a second call finds no active user."""
    assert (await accounts.deactivate_account(test_user.id, TEST_PASSWORD)).ok

    second = await accounts.deactivate_account(test_user.id, TEST_PASSWORD)

    assert second.error.kind == ErrorKind.NOT_FOUND
    assert second.error.code == ErrorCode.USER_NOT_FOUND


@pytest.mark.asyncio
async def test_deactivate_succeeds_when_revocation_fails(db, hasher, auth_settings, hook_manager, test_user):
    """Session revocation is best-effort; the state change is not."""
    failing = FailingRefreshTokenRepository(SQLRefreshTokenRepository(db))
    tokens = TokenService(failing, auth_settings, hooks=hook_manager)
    accounts = AccountLifecycleService(db, tokens, hasher, hooks=hook_manager, auth_settings=auth_settings)
    user_id = test_user.id

    result = await accounts.deactivate_account(user_id, TEST_PASSWORD)

    assert result.ok
    assert failing.revoke_all_calls == 1
    user = await SQLUserRepository(db).find_by_id(user_id)
    assert not user.is_active


@pytest.mark.asyncio
async def test_deactivate_survives_failed_revocation_commit(db, accounts, token_service, monkeypatch, test_user):
    """The deactivation is committed first; losing the revocation commit does not undo it."""
    user_id = test_user.id
    await token_service.issue_refresh_token(user_id)
    await db.commit()
    commits = fail_commit(monkeypatch, db, on_call=2)

    result = await accounts.deactivate_account(user_id, TEST_PASSWORD)

    assert result.ok
    assert commits["count"] == 2
    user = await SQLUserRepository(db).find_by_id(user_id)
    assert not user.is_active


@pytest.mark.asyncio
async def test_deactivate_commit_failure_is_a_result(db, accounts, monkeypatch, test_user):
    user_id = test_user.id
    fail_commit(monkeypatch, db, on_call=1)

    result = await accounts.deactivate_account(user_id, TEST_PASSWORD)

    assert result.error.kind == ErrorKind.INTERNAL
    assert result.error.code == ErrorCode.STORAGE_FAILURE
    assert result.error.retryable
    user = await SQLUserRepository(db).find_by_id(user_id)
    assert user.is_active


# ============ Password change ============


@pytest.mark.asyncio
async def test_change_password(db, accounts, token_service, hasher, hook_manager, test_user):
    session = await token_service.issue_refresh_token(test_user.id)

    result = await accounts.change_password(test_user.id, TEST_PASSWORD, "brand-new-password")

    assert result.ok
    user = await SQLUserRepository(db).find_by_id(test_user.id)
    assert hasher.verify("brand-new-password", user.password_hash)
    assert not hasher.verify(TEST_PASSWORD, user.password_hash)
    assert not (await token_service.verify_and_consume_refresh_token(session.secret)).ok
    assert "user.password_changed" in hook_manager.names()


@pytest.mark.asyncio
async def test_change_password_wrong_current(accounts, test_user):
    result = await accounts.change_password(test_user.id, "not-my-password", "brand-new-password")

    assert result.error.kind == ErrorKind.INVALID_CREDENTIALS


@pytest.mark.asyncio
async def test_change_password_oauth_only(accounts, user_factory):
    user = await user_factory.create(password=None)

    result = await accounts.change_password(user.id, "", "brand-new-password")

    assert result.error.kind == ErrorKind.INVALID_CREDENTIALS


@pytest.mark.asyncio
async def test_change_password_unchanged(accounts, test_user):
    result = await accounts.change_password(test_user.id, TEST_PASSWORD, TEST_PASSWORD)

    assert result.error.kind == ErrorKind.VALIDATION
    assert result.error.code == ErrorCode.PASSWORD_UNCHANGED


@pytest.mark.asyncio
async def test_change_password_too_short(accounts, test_user):
    result = await accounts.change_password(test_user.id, TEST_PASSWORD, "short")

    assert result.error.code == ErrorCode.PASSWORD_TOO_SHORT


@pytest.mark.asyncio
async def test_change_password_succeeds_when_revocation_fails(db, hasher, auth_settings, test_user):
    tokens = TokenService(FailingRefreshTokenRepository(SQLRefreshTokenRepository(db)), auth_settings)
    accounts = AccountLifecycleService(db, tokens, hasher, auth_settings=auth_settings)
    user_id = test_user.id

    result = await accounts.change_password(user_id, TEST_PASSWORD, "brand-new-password")

    assert result.ok
    user = await SQLUserRepository(db).find_by_id(user_id)
    assert hasher.verify("brand-new-password", user.password_hash)


@pytest.mark.asyncio
async def test_change_password_survives_failed_revocation_commit(db, accounts, hasher, monkeypatch, test_user):
    user_id = test_user.id
    fail_commit(monkeypatch, db, on_call=2)

    result = await accounts.change_password(user_id, TEST_PASSWORD, "brand-new-password")

    assert result.ok
    user = await SQLUserRepository(db).find_by_id(user_id)
    assert hasher.verify("brand-new-password", user.password_hash)


@pytest.mark.asyncio
async def test_change_password_commit_failure_is_a_result(db, accounts, hasher, monkeypatch, test_user):
    user_id = test_user.id
    fail_commit(monkeypatch, db, on_call=1)

    result = await accounts.change_password(user_id, TEST_PASSWORD, "brand-new-password")

    assert result.error.kind == ErrorKind.INTERNAL
    assert result.error.retryable
    user = await SQLUserRepository(db).find_by_id(user_id)
    assert hasher.verify(TEST_PASSWORD, user.password_hash)


# ============ Profile ============


@pytest.mark.asyncio
async def test_update_profile(accounts, hook_manager, test_user):
    result = await accounts.update_profile(
        test_user.id,
        full_name="  Ada   Lovelace ",
        phone="+44 20 7946 0958",
        photo_url="https://example.com/ada.png",
    )

    assert result.ok
    assert result.value.full_name == "Ada Lovelace"
    assert result.value.phone == "+44 20 7946 0958"
    assert result.value.photo_url == "https://example.com/ada.png"
    assert "user.profile_updated" in hook_manager.names()


@pytest.mark.asyncio
async def test_update_profile_clears_optional_fields(accounts, test_user):
    await accounts.update_profile(test_user.id, phone="+1 555 0100")

    result = await accounts.update_profile(test_user.id, phone="", photo_url="")

    assert result.value.phone is None
    assert result.value.photo_url is None
    assert result.value.full_name == "Test User"


@pytest.mark.asyncio
@pytest.mark.parametrize("full_name", ["A", "   ", "x" * 101])
async def test_update_profile_rejects_bad_name(accounts, test_user, full_name):
    result = await accounts.update_profile(test_user.id, full_name=full_name)

    assert result.error.code == ErrorCode.INVALID_FULL_NAME


@pytest.mark.asyncio
async def test_update_profile_rejects_bad_phone(accounts, test_user):
    result = await accounts.update_profile(test_user.id, phone="call me maybe")

    assert result.error.code == ErrorCode.INVALID_PHONE


@pytest.mark.asyncio
async def test_update_profile_inactive_user(accounts, user_factory):
    user = await user_factory.create(is_active=False)

    result = await accounts.update_profile(user.id, full_name="New Name")

    assert result.error.kind == ErrorKind.NOT_FOUND
