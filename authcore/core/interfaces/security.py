"""
Security collaborator protocols.
Implementations: BcryptPasswordHasher, GoogleProviderExchange,
FacebookProviderExchange, AppleProviderExchange
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class PasswordHasher(Protocol):
    """
    Protocol for password hashing.

    Must be slow, salted and one-way. ``verify`` returns False (never
    raises) for a malformed or unknown hash.
    """

    def hash(self, password: str) -> str:
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        ...


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity verified by an OAuth provider."""
    provider: str
    provider_user_id: str
    email: str | None = None
    name: str | None = None
    avatar_url: str | None = None


class ProviderExchangeError(Exception):
    """
    Raised when trading an authorization code for an identity fails.

    Covers provider errors, timeouts and unusable responses alike; callers
    treat it as a retryable upstream failure.
    """
    pass


class ProviderExchange(Protocol):
    """
    Protocol for one OAuth provider.

    Example implementations:
    - GoogleProviderExchange: OpenID Connect userinfo
    - FacebookProviderExchange: Graph API /me
    - AppleProviderExchange: claims of the returned ID token
    """

    provider: str

    async def exchange(
        self,
        authorization_code: str,
        code_verifier: str | None = None,
    ) -> ExternalIdentity:
        """Trade an authorization code for a verified identity."""
        ...
