"""
Facebook (Graph API) provider exchange.
"""

import httpx

from authcore.core.interfaces.security import ExternalIdentity

from .base import HttpProviderExchange

GRAPH_URL = "https://graph.facebook.com"
PROFILE_FIELDS = "id,email,name,picture.type(large)"


class FacebookProviderExchange(HttpProviderExchange):
    """Authorization code -> access token -> /me profile."""

    provider = "facebook"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        api_version: str = "v19.0",
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.api_version = api_version

    async def _exchange(
        self,
        client: httpx.AsyncClient,
        authorization_code: str,
        code_verifier: str | None,
    ) -> ExternalIdentity:
        tokens = self._json(
            await client.get(
                f"{GRAPH_URL}/{self.api_version}/oauth/access_token",
                params={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "code": authorization_code,
                },
                timeout=self.timeout,
            ),
            "token",
        )
        profile = self._json(
            await client.get(
                f"{GRAPH_URL}/{self.api_version}/me",
                params={"fields": PROFILE_FIELDS, "access_token": tokens.get("access_token", "")},
                timeout=self.timeout,
            ),
            "profile",
        )

        picture = profile.get("picture") or {}
        avatar_url = (picture.get("data") or {}).get("url") if isinstance(picture, dict) else None

        return self._identity(
            profile.get("id"),
            email=profile.get("email"),
            name=profile.get("name"),
            avatar_url=avatar_url,
        )
