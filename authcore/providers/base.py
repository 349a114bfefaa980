"""
Shared plumbing for OAuth provider exchanges.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
import structlog

from authcore.core.interfaces.security import ExternalIdentity, ProviderExchangeError

logger = structlog.get_logger()


class HttpProviderExchange:
    """
    Base class for providers reached over HTTPS.

    Every request is bounded by ``timeout``. Transport errors, timeouts,
    non-2xx answers and undecodable bodies all surface as
    ``ProviderExchangeError``.

    Pass ``client`` to reuse a connection pool (or a mock transport in
    tests); otherwise a short-lived client is opened per exchange.
    """

    provider: str = ""

    def __init__(self, *, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        self.timeout = timeout
        self._client = client

    async def exchange(
        self,
        authorization_code: str,
        code_verifier: str | None = None,
    ) -> ExternalIdentity:
        if not authorization_code:
            raise ProviderExchangeError(f"{self.provider}: empty authorization code")
        try:
            async with self._session() as client:
                return await self._exchange(client, authorization_code, code_verifier)
        except httpx.TimeoutException as e:
            logger.warning("oauth_exchange_timeout", provider=self.provider)
            raise ProviderExchangeError(f"{self.provider}: timeout") from e
        except httpx.HTTPError as e:
            logger.warning("oauth_exchange_http_error", provider=self.provider, error=str(e))
            raise ProviderExchangeError(f"{self.provider}: {e}") from e

    async def _exchange(
        self,
        client: httpx.AsyncClient,
        authorization_code: str,
        code_verifier: str | None,
    ) -> ExternalIdentity:
        raise NotImplementedError

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    def _json(self, response: httpx.Response, step: str) -> dict[str, Any]:
        """Decode a JSON object body, rejecting error statuses."""
        if not response.is_success:
            logger.warning(
                "oauth_exchange_rejected",
                provider=self.provider,
                step=step,
                status_code=response.status_code,
            )
            raise ProviderExchangeError(f"{self.provider}: {step} returned {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderExchangeError(f"{self.provider}: {step} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise ProviderExchangeError(f"{self.provider}: {step} returned unexpected payload")
        return data

    def _identity(
        self,
        provider_user_id: Any,
        email: Any = None,
        name: Any = None,
        avatar_url: Any = None,
    ) -> ExternalIdentity:
        if not provider_user_id:
            raise ProviderExchangeError(f"{self.provider}: identity without subject")
        return ExternalIdentity(
            provider=self.provider,
            provider_user_id=str(provider_user_id),
            email=email.strip().lower() if isinstance(email, str) and email.strip() else None,
            name=name if isinstance(name, str) and name else None,
            avatar_url=avatar_url if isinstance(avatar_url, str) and avatar_url else None,
        )
