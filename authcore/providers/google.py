"""
Google (OpenID Connect) provider exchange.
"""

import httpx

from authcore.core.interfaces.security import ExternalIdentity

from .base import HttpProviderExchange

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class GoogleProviderExchange(HttpProviderExchange):
    """Authorization code (with PKCE verifier) -> token -> userinfo."""

    provider = "google"

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, **kwargs):
        super().__init__(**kwargs)
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    async def _exchange(
        self,
        client: httpx.AsyncClient,
        authorization_code: str,
        code_verifier: str | None,
    ) -> ExternalIdentity:
        form = {
            "grant_type": "authorization_code",
            "code": authorization_code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
        }
        if code_verifier:
            form["code_verifier"] = code_verifier

        tokens = self._json(
            await client.post(GOOGLE_TOKEN_URL, data=form, timeout=self.timeout),
            "token",
        )
        userinfo = self._json(
            await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {tokens.get('access_token', '')}"},
                timeout=self.timeout,
            ),
            "userinfo",
        )
        return self._identity(
            userinfo.get("sub"),
            email=userinfo.get("email"),
            name=userinfo.get("name"),
            avatar_url=userinfo.get("picture"),
        )
