"""
Tests for the request authentication guard.
"""

import pytest

from authcore.core.auth.guard import AuthenticationGuard, extract_bearer_token
from authcore.core.auth.rbac import RbacResolver
from authcore.core.errors import ErrorCode, ErrorKind
from authcore.repositories.rbac import SQLPermissionRepository, SQLRoleRepository

from conftest import auth_header


@pytest.fixture
def guard(token_service) -> AuthenticationGuard:
    return AuthenticationGuard(token_service, admin_role="admin")


@pytest.mark.parametrize(
    "header,expected",
    [
        ("Bearer abc", "abc"),
        ("bearer abc", "abc"),
        ("BEARER abc", "abc"),
        ("  Bearer   abc  ", "abc"),
        ("Basic abc", None),
        ("Bearer", None),
        ("Bearer a b", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header, expected):
    assert extract_bearer_token(header) == expected


@pytest.mark.asyncio
async def test_authenticate_valid_token(guard, token_service, test_user):
    result = guard.authenticate(auth_header(token_service, test_user, ["user"]))

    assert result.ok
    assert result.value.user_id == test_user.id
    assert result.value.email == test_user.email
    assert result.value.roles == frozenset({"user"})


@pytest.mark.parametrize("header", [None, "", "Basic dXNlcjpwYXNz", "Bearer not-a-token"])
def test_authenticate_failures_are_indistinguishable(guard, header):
    result = guard.authenticate(header)

    assert not result.ok
    assert result.error.kind == ErrorKind.UNAUTHORIZED
    assert result.error.code == ErrorCode.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_admin_token_passes_any_permission(guard, token_service, admin_user):
    """An admin role in the token satisfies every permission without rows."""
    result = guard.authorize(auth_header(token_service, admin_user, ["admin"]), "reports:export")

    assert result.ok
    assert result.value.is_admin


@pytest.mark.asyncio
async def test_non_admin_token_is_forbidden(guard, token_service, test_user):
    """Token roles carry no permission names, so non-admins need the resolver."""
    result = guard.authorize(auth_header(token_service, test_user, ["user"]), "reports:export")

    assert not result.ok
    assert result.error.kind == ErrorKind.FORBIDDEN
    assert result.error.code == ErrorCode.INSUFFICIENT_PERMISSIONS


def test_authorize_without_token_is_unauthorized(guard):
    result = guard.authorize(None, "reports:export")

    assert not result.ok
    assert result.error.kind == ErrorKind.UNAUTHORIZED


@pytest.mark.asyncio
async def test_authorize_with_resolver(db, guard, token_service, user_factory):
    """Fine-grained checks use current assignments, not token roles."""
    await user_factory.role("analyst", permissions=["reports:*"])
    analyst = await user_factory.create(roles=["analyst"])
    other = await user_factory.create()
    resolver = RbacResolver(SQLRoleRepository(db), SQLPermissionRepository(db))

    allowed = await guard.authorize_with_resolver(
        auth_header(token_service, analyst, ["analyst"]),
        "reports:export",
        resolver,
    )
    denied = await guard.authorize_with_resolver(
        auth_header(token_service, other),
        "reports:export",
        resolver,
    )

    assert allowed.ok
    assert not denied.ok
    assert denied.error.kind == ErrorKind.FORBIDDEN
