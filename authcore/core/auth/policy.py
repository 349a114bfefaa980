"""
Sign-in method policy.

An active account must always keep at least one way to sign in: a password
or a linked external identity. Services evaluate this policy over data they
have already fetched, before persisting any removal.
"""

from dataclasses import dataclass
from typing import Sequence

from authcore.models import OAuthConnection, User


@dataclass(frozen=True)
class AuthMethods:
    """Sign-in methods available to an account."""
    has_password: bool
    providers: tuple[str, ...]

    @property
    def count(self) -> int:
        return int(self.has_password) + len(self.providers)


class AccountAuthMethodsPolicy:
    """Pure checks over a user and its connections."""

    @staticmethod
    def count_auth_methods(user: User, connections: Sequence[OAuthConnection]) -> int:
        return (1 if user.has_password else 0) + len(connections)

    @classmethod
    def can_remove_method(cls, user: User, connections: Sequence[OAuthConnection]) -> bool:
        """True when removing one method still leaves another."""
        return cls.count_auth_methods(user, connections) > 1

    @staticmethod
    def available_methods(user: User, connections: Sequence[OAuthConnection]) -> AuthMethods:
        return AuthMethods(
            has_password=user.has_password,
            providers=tuple(c.provider for c in connections),
        )
