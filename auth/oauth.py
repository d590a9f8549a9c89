"""
auth/oauth.py -- Google identity provider built on Authlib and python-jose.

The exchange handler (auth/exchange.py) talks to the provider only through
the IdentityProvider protocol below, so route tests substitute an in-memory
fake and never touch the network.

GoogleIdentityProvider:
  authorization_url() -- the consent URL returned by GET /login. Scope is
      "openid email profile" with access_type=offline and prompt=consent.
  exchange_code()     -- authorization-code grant via Authlib's
      AsyncOAuth2Client (httpx). Bounded by the configured timeout.
  verify_assertion()  -- verifies the id_token signature against Google's
      published JWKS with python-jose and checks aud == client id and iss is
      a Google issuer. Returns the raw claims dict.

JWKS caching:
  Google's signing keys are fetched once and reused for JWKS_CACHE_SECONDS.
  An id_token whose "kid" is not in the cached set forces a refetch, so a
  key rotation on Google's side never fails a login.

Security notes:
  The id_token is only trusted after verify_assertion() succeeds. The token
  endpoint response alone proves nothing about who the user is.

  at_hash is checked whenever Google includes it, so the access token passed
  along with the id_token must be the one issued in the same response.

Layer rule: no imports from api/ or posts/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Optional, Protocol

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri
from jose import jwt

logger = logging.getLogger("quillpost.auth.oauth")

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 -- URL, not a password
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")
GOOGLE_SCOPE = "openid email profile"

JWKS_CACHE_SECONDS = 3600


class IdentityProvider(Protocol):
    """Capability interface for an external OAuth/OIDC identity provider."""

    def authorization_url(self) -> str: ...

    async def exchange_code(self, code: str) -> dict: ...

    async def verify_assertion(self, id_token: str, access_token: str | None = None) -> dict: ...


class GoogleIdentityProvider:
    """Google OAuth 2.0 / OpenID Connect provider.

    transport is handed to every httpx client this provider opens; tests pass
    an httpx.MockTransport. clock drives the JWKS cache expiry.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._jwks: dict | None = None
        self._jwks_fetched_at = 0.0
        if not (client_id and client_secret):
            logger.warning("Google OAuth client id/secret not configured -- logins will fail")

    def authorization_url(self) -> str:
        return prepare_grant_uri(
            GOOGLE_AUTHORIZE_URL,
            self.client_id,
            "code",
            redirect_uri=self.redirect_uri,
            scope=GOOGLE_SCOPE,
            access_type="offline",
            prompt="consent",
        )

    async def exchange_code(self, code: str) -> dict:
        """Trade an authorization code for Google's token response.

        Raises authlib's OAuthError when Google rejects the code and
        httpx.HTTPError on transport failures; the exchange handler maps both
        to OAuthExchangeFailed.
        """
        async with AsyncOAuth2Client(
            client_id=self.client_id,
            client_secret=self._client_secret,
            redirect_uri=self.redirect_uri,
            scope=GOOGLE_SCOPE,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            token = await client.fetch_token(GOOGLE_TOKEN_URL, code=code)
        return dict(token)

    async def verify_assertion(self, id_token: str, access_token: str | None = None) -> dict:
        """Verify a Google id_token and return its claims.

        Raises jose.JWTError on a malformed token, bad signature, wrong
        audience, wrong issuer, at_hash mismatch or expiry.
        """
        kid = jwt.get_unverified_header(id_token).get("kid")
        jwks = await self._signing_keys(kid)
        return jwt.decode(
            id_token,
            jwks,
            algorithms=["RS256"],
            audience=self.client_id,
            issuer=list(GOOGLE_ISSUERS),
            access_token=access_token,
        )

    async def _signing_keys(self, kid: str | None) -> dict:
        """Return the cached JWKS, refetching when stale or missing kid."""
        stale = self._jwks is None or self._clock() - self._jwks_fetched_at >= JWKS_CACHE_SECONDS
        if not stale and kid is not None and kid not in _key_ids(self._jwks):
            logger.info("Unknown JWKS kid %s -- refetching Google signing keys", kid)
            stale = True
        if stale:
            self._jwks = await self._fetch_jwks()
            self._jwks_fetched_at = self._clock()
        return self._jwks

    async def _fetch_jwks(self) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.get(GOOGLE_JWKS_URL)
            resp.raise_for_status()
            return resp.json()


def _key_ids(jwks: dict) -> set[str]:
    return {key.get("kid") for key in jwks.get("keys", [])}
