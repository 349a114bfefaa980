"""
Sign in with Apple provider exchange.

Apple authenticates the client with a short-lived ES256 JWT (the "client
secret") signed by the team's private key, and returns the identity as the
claims of an ID token. The ID token is read straight from Apple's TLS
response to the token request, so its claims are taken as issued.

Apple never returns a display name or avatar in the ID token.
"""

from datetime import timedelta

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from authcore.core.interfaces.security import ExternalIdentity, ProviderExchangeError
from authcore.utils.timezone import to_timestamp, utc_now

from .base import HttpProviderExchange

APPLE_ISSUER = "https://appleid.apple.com"
APPLE_TOKEN_URL = "https://appleid.apple.com/auth/token"
CLIENT_SECRET_TTL = timedelta(minutes=5)


class AppleProviderExchange(HttpProviderExchange):
    """Authorization code -> token response -> ID token claims."""

    provider = "apple"

    def __init__(
        self,
        client_id: str,
        team_id: str,
        key_id: str,
        private_key: str,
        redirect_uri: str,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.client_id = client_id
        self.team_id = team_id
        self.key_id = key_id
        self.private_key = private_key
        self.redirect_uri = redirect_uri

    def client_secret(self) -> str:
        """Signed client assertion required by Apple's token endpoint."""
        now = utc_now()
        return jwt.encode(
            {
                "iss": self.team_id,
                "iat": to_timestamp(now),
                "exp": to_timestamp(now + CLIENT_SECRET_TTL),
                "aud": APPLE_ISSUER,
                "sub": self.client_id,
            },
            self.private_key,
            algorithm="ES256",
            headers={"kid": self.key_id},
        )

    async def _exchange(
        self,
        client: httpx.AsyncClient,
        authorization_code: str,
        code_verifier: str | None,
    ) -> ExternalIdentity:
        try:
            client_secret = self.client_secret()
        except JOSEError as e:
            raise ProviderExchangeError("apple: cannot sign client secret") from e

        form = {
            "grant_type": "authorization_code",
            "code": authorization_code,
            "client_id": self.client_id,
            "client_secret": client_secret,
            "redirect_uri": self.redirect_uri,
        }
        if code_verifier:
            form["code_verifier"] = code_verifier

        tokens = self._json(
            await client.post(APPLE_TOKEN_URL, data=form, timeout=self.timeout),
            "token",
        )

        id_token = tokens.get("id_token")
        if not id_token:
            raise ProviderExchangeError("apple: token response without id_token")
        try:
            claims = jwt.get_unverified_claims(id_token)
        except JOSEError as e:
            raise ProviderExchangeError("apple: malformed id_token") from e

        if claims.get("iss") != APPLE_ISSUER or claims.get("aud") != self.client_id:
            raise ProviderExchangeError("apple: id_token issued for another audience")

        return self._identity(claims.get("sub"), email=claims.get("email"))
