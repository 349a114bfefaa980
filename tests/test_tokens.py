"""
Tests for access and refresh tokens.
"""

from datetime import timedelta

import pytest
from jose import jwt

from authcore.core.auth.tokens import TokenService, hash_refresh_secret
from authcore.core.config import AuthSettings
from authcore.core.errors import ErrorCode, ErrorKind
from authcore.repositories.token import SQLRefreshTokenRepository
from authcore.utils.timezone import utc_now

from conftest import FailingRefreshTokenRepository


# ============ Access tokens ============


@pytest.mark.asyncio
async def test_access_token_roundtrip(token_service: TokenService, test_user):
    """Claims of a fresh token are returned by verification."""
    access = token_service.issue_access_token(test_user.id, test_user.email, ["user", "editor"])
    payload = token_service.verify_access_token(access.token)

    assert payload is not None
    assert payload.user_id == test_user.id
    assert payload.email == test_user.email
    assert payload.roles == ("user", "editor")
    assert payload.expires_at > payload.issued_at


def test_access_token_wire_shape(token_service: TokenService, auth_settings: AuthSettings):
    from uuid import uuid4

    user_id = uuid4()
    access = token_service.issue_access_token(user_id, "a@example.com", ["user"])
    claims = jwt.get_unverified_claims(access.token)

    assert set(claims) == {"sub", "email", "roles", "iat", "exp", "type"}
    assert claims["sub"] == str(user_id)
    assert claims["type"] == "access"
    assert claims["exp"] - claims["iat"] == auth_settings.access_token_expire_minutes * 60


def test_verify_rejects_garbage(token_service: TokenService):
    assert token_service.verify_access_token(None) is None
    assert token_service.verify_access_token("") is None
    assert token_service.verify_access_token("not-a-jwt") is None


def test_verify_rejects_wrong_signature(token_service: TokenService, auth_settings: AuthSettings):
    from uuid import uuid4

    other = TokenService(None, auth_settings.model_copy(update={"secret_key": "other-secret"}))
    access = other.issue_access_token(uuid4(), "a@example.com", [])
    assert token_service.verify_access_token(access.token) is None


def test_verify_rejects_expired(auth_settings: AuthSettings):
    from uuid import uuid4

    past = utc_now() - timedelta(hours=1)
    issuer = TokenService(None, auth_settings, clock=lambda: past)
    access = issuer.issue_access_token(uuid4(), "a@example.com", [])

    assert TokenService(None, auth_settings).verify_access_token(access.token) is None


def test_verify_rejects_wrong_type(token_service: TokenService, auth_settings: AuthSettings):
    from uuid import uuid4

    now = int(utc_now().timestamp())
    token = jwt.encode(
        {"sub": str(uuid4()), "email": "a@example.com", "roles": [], "iat": now, "exp": now + 60, "type": "refresh"},
        auth_settings.secret_key,
        algorithm="HS256",
    )
    assert token_service.verify_access_token(token) is None


def test_verify_rejects_bad_subject(token_service: TokenService, auth_settings: AuthSettings):
    now = int(utc_now().timestamp())
    token = jwt.encode(
        {"sub": "not-a-uuid", "email": "a@example.com", "roles": [], "iat": now, "exp": now + 60, "type": "access"},
        auth_settings.secret_key,
        algorithm="HS256",
    )
    assert token_service.verify_access_token(token) is None


# ============ Refresh tokens ============


@pytest.mark.asyncio
async def test_refresh_token_stored_as_digest(db, token_service: TokenService, test_user):
    """Only the SHA-256 of the secret is persisted."""
    issued = await token_service.issue_refresh_token(test_user.id)

    assert len(issued.secret) == 64
    record = await SQLRefreshTokenRepository(db).find_by_hash(hash_refresh_secret(issued.secret))
    assert record is not None
    assert record.token_hash != issued.secret
    assert record.user_id == test_user.id
    assert not record.revoked


@pytest.mark.asyncio
async def test_consume_rotates(db, token_service: TokenService, test_user):
    """Consuming revokes the original and links it to a new token."""
    issued = await token_service.issue_refresh_token(test_user.id)
    result = await token_service.verify_and_consume_refresh_token(issued.secret)

    assert result.ok
    rotated = result.value
    assert rotated.user_id == test_user.id
    assert rotated.refresh_token.secret != issued.secret

    repo = SQLRefreshTokenRepository(db)
    original = await repo.find_by_hash(hash_refresh_secret(issued.secret))
    assert original.revoked
    assert original.replaced_by_id == rotated.refresh_token.token_id


@pytest.mark.asyncio
async def test_consume_unknown_token(token_service: TokenService):
    result = await token_service.verify_and_consume_refresh_token("f" * 64)

    assert not result.ok
    assert result.error.kind == ErrorKind.UNAUTHORIZED
    assert result.error.code == ErrorCode.INVALID_TOKEN


@pytest.mark.asyncio
async def test_consume_expired_token(db, auth_settings, hook_manager, test_user):
    """A token past its expiry is rejected and stays unrevoked."""
    now = utc_now()
    clock = {"now": now}
    tokens = TokenService(
        SQLRefreshTokenRepository(db),
        auth_settings,
        hooks=hook_manager,
        clock=lambda: clock["now"],
    )
    issued = await tokens.issue_refresh_token(test_user.id)

    clock["now"] = now + timedelta(days=auth_settings.refresh_token_expire_days, seconds=1)
    result = await tokens.verify_and_consume_refresh_token(issued.secret)

    assert not result.ok
    assert result.error.code == ErrorCode.INVALID_TOKEN
    record = await SQLRefreshTokenRepository(db).find_by_hash(hash_refresh_secret(issued.secret))
    assert not record.revoked


@pytest.mark.asyncio
async def test_reuse_revokes_every_session(db, token_service: TokenService, hook_manager, test_user):
    """Presenting a rotated token again revokes the whole family."""
    first = await token_service.issue_refresh_token(test_user.id)
    other_device = await token_service.issue_refresh_token(test_user.id)
    rotated = (await token_service.verify_and_consume_refresh_token(first.secret)).unwrap()

    reused = await token_service.verify_and_consume_refresh_token(first.secret)

    assert not reused.ok
    assert reused.error.code == ErrorCode.INVALID_TOKEN
    assert "auth.refresh_reuse" in hook_manager.names()

    for secret in (other_device.secret, rotated.refresh_token.secret):
        result = await token_service.verify_and_consume_refresh_token(secret)
        assert not result.ok


@pytest.mark.asyncio
async def test_reuse_revocation_can_be_disabled(db, auth_settings, hook_manager, test_user):
    settings = auth_settings.model_copy(update={"refresh_reuse_revokes_all": False})
    tokens = TokenService(SQLRefreshTokenRepository(db), settings, hooks=hook_manager)

    first = await tokens.issue_refresh_token(test_user.id)
    rotated = (await tokens.verify_and_consume_refresh_token(first.secret)).unwrap()

    assert not (await tokens.verify_and_consume_refresh_token(first.secret)).ok
    assert (await tokens.verify_and_consume_refresh_token(rotated.refresh_token.secret)).ok


@pytest.mark.asyncio
async def test_consume_after_revoke_all_fails(db, token_service: TokenService, test_user):
    """Tokens issued before a revoke-all can never be consumed."""
    issued = [await token_service.issue_refresh_token(test_user.id) for _ in range(3)]

    revoked = await token_service.revoke_all_for_user(test_user.id)
    assert revoked.ok
    assert revoked.value == 3

    for token in issued:
        result = await token_service.verify_and_consume_refresh_token(token.secret)
        assert not result.ok
        assert result.error.kind == ErrorKind.UNAUTHORIZED


@pytest.mark.asyncio
async def test_revoke_all_is_idempotent(token_service: TokenService, test_user):
    await token_service.issue_refresh_token(test_user.id)

    assert (await token_service.revoke_all_for_user(test_user.id)).value == 1
    assert (await token_service.revoke_all_for_user(test_user.id)).value == 0


@pytest.mark.asyncio
async def test_revoke_single_token(token_service: TokenService, test_user):
    keep = await token_service.issue_refresh_token(test_user.id)
    drop = await token_service.issue_refresh_token(test_user.id)

    assert (await token_service.revoke_refresh_token(drop.secret)).value is True
    assert (await token_service.revoke_refresh_token(drop.secret)).value is False
    assert (await token_service.revoke_refresh_token("unknown")).value is False

    assert not (await token_service.verify_and_consume_refresh_token(drop.secret)).ok
    assert (await token_service.verify_and_consume_refresh_token(keep.secret)).ok


@pytest.mark.asyncio
async def test_logged_out_token_is_not_treated_as_reuse(token_service: TokenService, hook_manager, test_user):
    """Only a rotated token triggers reuse revocation; a logged-out one is just rejected."""
    logged_out = await token_service.issue_refresh_token(test_user.id)
    other_device = await token_service.issue_refresh_token(test_user.id)
    await token_service.revoke_refresh_token(logged_out.secret)

    replayed = await token_service.verify_and_consume_refresh_token(logged_out.secret)

    assert replayed.error.code == ErrorCode.INVALID_TOKEN
    assert "auth.refresh_reuse" not in hook_manager.names()
    assert (await token_service.verify_and_consume_refresh_token(other_device.secret)).ok


@pytest.mark.asyncio
async def test_revoke_all_failure_is_a_result(db, auth_settings, test_user):
    """A store failure comes back as a retryable internal error, not an exception."""
    tokens = TokenService(FailingRefreshTokenRepository(SQLRefreshTokenRepository(db)), auth_settings)

    result = await tokens.revoke_all_for_user(test_user.id)

    assert not result.ok
    assert result.error.kind == ErrorKind.INTERNAL
    assert result.error.code == ErrorCode.STORAGE_FAILURE
    assert result.error.retryable


@pytest.mark.asyncio
async def test_count_active_sessions(db, auth_settings, hook_manager, test_user):
    """Revoked tokens and tokens expired by the service clock are not counted."""
    now = utc_now()
    clock = {"now": now}
    tokens = TokenService(
        SQLRefreshTokenRepository(db),
        auth_settings,
        hooks=hook_manager,
        clock=lambda: clock["now"],
    )
    first = await tokens.issue_refresh_token(test_user.id)
    await tokens.issue_refresh_token(test_user.id)
    await tokens.revoke_refresh_token(first.secret)

    assert await tokens.count_active_sessions(test_user.id) == 1

    clock["now"] = now + timedelta(days=auth_settings.refresh_token_expire_days, seconds=1)
    assert await tokens.count_active_sessions(test_user.id) == 0
