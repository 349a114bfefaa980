"""
Permission matching.

Permissions are ``resource:action`` strings. Two action forms are special:

- ``{resource}:*`` grants every action on that resource
- ``admin:*`` grants everything

Matching is pure and total: the resolver (query path) and the guard
(enforcement path) both call ``satisfies`` so they always agree.

Usage:
    satisfies({"reports:*"}, "reports:export")          # True
    satisfies(effective_grants({"admin"}, set()), "x:y")  # True
"""

import re
from dataclasses import dataclass
from typing import AbstractSet, Iterable

ADMIN_ROLE = "admin"
GLOBAL_WILDCARD = "admin:*"
WILDCARD_ACTION = "*"

_SEGMENT = re.compile(r"^[a-z][a-z0-9_]*$")
_ROLE_NAME = re.compile(r"^[a-z][a-z0-9_]{1,49}$")


@dataclass(frozen=True)
class PermissionName:
    """A validated ``resource:action`` pair."""
    resource: str
    action: str

    @property
    def name(self) -> str:
        return f"{self.resource}:{self.action}"

    @property
    def is_wildcard(self) -> bool:
        return self.action == WILDCARD_ACTION

    def __str__(self) -> str:
        return self.name


def parse_permission(value: str) -> PermissionName | None:
    """
    Validate and normalise a permission string.

    Surrounding whitespace is stripped and the value lower-cased. Returns
    None when it is not exactly ``resource:action`` with valid segments.
    """
    if not value:
        return None
    parts = value.strip().lower().split(":")
    if len(parts) != 2:
        return None
    resource, action = parts
    if not _SEGMENT.match(resource):
        return None
    if action != WILDCARD_ACTION and not _SEGMENT.match(action):
        return None
    return PermissionName(resource=resource, action=action)


def is_valid_role_name(name: str) -> bool:
    """2-50 chars, lowercase letter first, then lowercase letters, digits, underscores."""
    return bool(name) and bool(_ROLE_NAME.match(name))


def satisfies(held: AbstractSet[str], required: str) -> bool:
    """
    Check whether a set of held permissions satisfies ``required``.

    1. exact match
    2. ``{resource}:*`` held
    3. ``admin:*`` held
    """
    if required in held:
        return True
    if ":" in required:
        resource = required.split(":", 1)[0]
        if f"{resource}:{WILDCARD_ACTION}" in held:
            return True
    return GLOBAL_WILDCARD in held


def satisfies_any(held: AbstractSet[str], required: Iterable[str]) -> bool:
    return any(satisfies(held, r) for r in required)


def satisfies_all(held: AbstractSet[str], required: Iterable[str]) -> bool:
    return all(satisfies(held, r) for r in required)


def effective_grants(
    roles: Iterable[str],
    permissions: Iterable[str] = (),
    admin_role: str = ADMIN_ROLE,
) -> frozenset[str]:
    """
    Grants used for every permission decision.

    Holding the admin role adds a synthesized ``admin:*`` grant, so the
    admin role is all-powerful without an ``admin:*`` permission row. This
    is the only place the admin rule is applied.
    """
    grants = set(permissions)
    if admin_role in set(roles):
        grants.add(GLOBAL_WILDCARD)
    return frozenset(grants)
