"""
auth/exchange.py -- OAuth authorization-code exchange.

OAuthExchangeHandler.exchange(code) walks a fixed sequence and ends in
exactly one of: a LoginResult, or one of the errors below.

  1. Start               -- no code                  -> MissingCode
  2. CodeExchange        -- no id_token in response  -> NoIdentityAssertion
  3. AssertionValidation -- sub/email/name missing   -> IncompleteProfile
  4. Reconciliation      -- UserDirectory upsert (role never overwritten)
  5. TokenIssuance       -- SessionTokenCodec.issue()

Anything else raised in steps 2-5 (timeout, transport error, Google
rejecting the code, signature failure, database error) is logged here and
re-raised as OAuthExchangeFailed. The client sees "Login failed" and has to
restart the login flow -- there is no automatic retry.

The upsert in step 4 is the only write and is a single atomic statement, so
a failure at any step leaves no half-written identity behind, and step 5 is
never reached after a failure.

Delivering the token (fragment redirect or cookie) is the route's job; see
api/routes/oauth.py.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from starlette.concurrency import run_in_threadpool

from auth.models import ROLE_USER, Identity
from auth.oauth import IdentityProvider
from auth.store import UserDirectory
from auth.tokens import SessionTokenCodec
from core.errors import IncompleteProfile, MissingCode, NoIdentityAssertion, OAuthExchangeFailed

logger = logging.getLogger("quillpost.auth.oauth")


@dataclass(frozen=True)
class ProviderProfile:
    """Profile fields extracted from a verified identity assertion."""

    subject_id: str
    email: str
    name: str
    picture_url: str = ""

    @classmethod
    def from_claims(cls, claims: dict) -> "ProviderProfile":
        subject_id = claims.get("sub")
        email = claims.get("email")
        name = claims.get("name")
        if not subject_id or not email or not name:
            raise IncompleteProfile()
        return cls(subject_id=str(subject_id), email=email, name=name, picture_url=claims.get("picture") or "")


@dataclass(frozen=True)
class LoginResult:
    identity: Identity
    token: str


class OAuthExchangeHandler:
    """Turns an authorization code into a local identity and session token."""

    def __init__(
        self,
        provider: IdentityProvider,
        directory: UserDirectory,
        codec: SessionTokenCodec,
        timeout: float = 10.0,
    ) -> None:
        self.provider = provider
        self.directory = directory
        self.codec = codec
        self.timeout = timeout

    async def exchange(self, code: str | None) -> LoginResult:
        if not code:
            raise MissingCode()
        try:
            return await self._exchange(code)
        except (NoIdentityAssertion, IncompleteProfile):
            raise
        except Exception as exc:
            logger.warning("OAuth exchange failed: %s", type(exc).__name__, exc_info=True)
            raise OAuthExchangeFailed() from exc

    async def _exchange(self, code: str) -> LoginResult:
        tokens = await asyncio.wait_for(self.provider.exchange_code(code), self.timeout)
        id_token = tokens.get("id_token")
        if not id_token:
            raise NoIdentityAssertion()

        claims = await asyncio.wait_for(
            self.provider.verify_assertion(id_token, access_token=tokens.get("access_token")),
            self.timeout,
        )
        profile = ProviderProfile.from_claims(claims)

        identity = await run_in_threadpool(
            self.directory.upsert_by_external_id,
            profile.subject_id,
            profile.name,
            profile.email,
            profile.picture_url,
            ROLE_USER,
        )
        token = self.codec.issue(identity.external_id, identity.email, identity.role)
        logger.info("OAuth login succeeded for %s (role=%s)", identity.external_id, identity.role)
        return LoginResult(identity=identity, token=token)
