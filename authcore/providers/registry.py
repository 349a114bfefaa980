"""
Provider registry.

Maps provider names to exchanges. A provider can be *supported* (a name the
system knows) without being *enabled* (credentials configured).

Usage:
    registry = ProviderRegistry.from_settings()
    exchange = registry.get("google")
"""

from __future__ import annotations

import httpx

from authcore.core.config import OAuthSettings, settings
from authcore.core.interfaces.security import ProviderExchange

from .apple import AppleProviderExchange
from .facebook import FacebookProviderExchange
from .google import GoogleProviderExchange

PASSWORD_PROVIDER = "local"
OAUTH_PROVIDERS = ("google", "facebook", "apple")


class ProviderRegistry:
    """Enabled provider exchanges, by name."""

    def __init__(self, exchanges: dict[str, ProviderExchange] | None = None):
        self._exchanges: dict[str, ProviderExchange] = dict(exchanges or {})

    def register(self, exchange: ProviderExchange) -> None:
        self._exchanges[exchange.provider] = exchange

    @staticmethod
    def normalize(provider: str | None) -> str:
        return (provider or "").strip().lower()

    def is_supported(self, provider: str) -> bool:
        return self.normalize(provider) in OAUTH_PROVIDERS

    def is_enabled(self, provider: str) -> bool:
        return self.normalize(provider) in self._exchanges

    def get(self, provider: str) -> ProviderExchange | None:
        return self._exchanges.get(self.normalize(provider))

    def enabled_providers(self) -> list[str]:
        return [name for name in OAUTH_PROVIDERS if name in self._exchanges]

    @classmethod
    def from_settings(
        cls,
        oauth: OAuthSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> "ProviderRegistry":
        """Build exchanges for every provider with complete credentials."""
        oauth = oauth or settings.oauth
        common = {"timeout": oauth.timeout_seconds, "client": client}
        registry = cls()

        if oauth.google_enabled:
            registry.register(
                GoogleProviderExchange(
                    oauth.google_client_id,
                    oauth.google_client_secret,
                    oauth.google_redirect_uri,
                    **common,
                )
            )
        if oauth.facebook_enabled:
            registry.register(
                FacebookProviderExchange(
                    oauth.facebook_client_id,
                    oauth.facebook_client_secret,
                    oauth.facebook_redirect_uri,
                    api_version=oauth.facebook_api_version,
                    **common,
                )
            )
        if oauth.apple_enabled:
            registry.register(
                AppleProviderExchange(
                    oauth.apple_client_id,
                    oauth.apple_team_id,
                    oauth.apple_key_id,
                    oauth.apple_private_key,
                    oauth.apple_redirect_uri,
                    **common,
                )
            )
        return registry
