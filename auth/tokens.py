"""
auth/tokens.py -- Session token codec and cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with JWT_SECRET and carry
       sub (the Google subject id), email, role, iat and exp. verify() raises
       InvalidToken on any failure -- bad signature, malformed structure,
       missing claims, unknown role, or expiry all look identical to the
       caller so the endpoint cannot be used as an oracle.

  Role snapshot: the role claim is copied from the Identity at issue time.
       verify() never consults the database, so a demotion takes effect when
       the token expires (7 days by default) or the user logs in again.

  Constructor injection: SessionTokenCodec receives the secret from the
       lifespan (core.config.get_settings()) rather than reading it at module
       load. Tests build codecs with throwaway secrets and a fixed clock.

Layer rule: no imports from api/ or posts/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from jose import JWTError, jwt

from auth.models import ROLES, Claims
from core.config import SEVEN_DAYS_SECONDS
from core.errors import InvalidToken

logger = logging.getLogger("quillpost.auth")

_ALGORITHM = "HS256"

SESSION_COOKIE_NAME = "token"


class SessionTokenCodec:
    """Issues and verifies signed, time-limited session tokens.

    Usage:
        codec = SessionTokenCodec(settings.jwt_secret)
        token = codec.issue("g1", "a@b.com", "user")
        claims = codec.verify(token)   # -> Claims(subject="g1", ...)
    """

    def __init__(
        self,
        secret: str,
        lifetime_seconds: int = SEVEN_DAYS_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("SessionTokenCodec requires a non-empty secret")
        self._secret = secret
        self.lifetime_seconds = lifetime_seconds
        self._clock = clock

    def issue(self, subject: str, email: str, role: str) -> str:
        """Encode a signed JWT for the given identity claims.

        Args:
            subject: Identity.external_id, stored as the JWT "sub" claim.
            email:   Identity email at issue time.
            role:    "user" or "admin" -- a snapshot, see module docstring.
        """
        issued_at = int(self._clock())
        payload = {
            "sub": subject,
            "email": email,
            "role": role,
            "iat": issued_at,
            "exp": issued_at + self.lifetime_seconds,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> Claims:
        """Decode and verify a JWT. Returns Claims or raises InvalidToken.

        Expiry is checked against the real wall clock by python-jose, not the
        injected clock, so a token issued "in the past" by a test codec is
        genuinely expired.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                options={"require_sub": True, "require_iat": True, "require_exp": True},
            )
        except JWTError as exc:
            logger.debug("Session token rejected: %s", type(exc).__name__)
            raise InvalidToken() from exc

        email = payload.get("email")
        role = payload.get("role")
        if not isinstance(email, str) or role not in ROLES:
            raise InvalidToken()
        return Claims(
            subject=payload["sub"],
            email=email,
            role=role,
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )


# ---------------------------------------------------------------------------
# Cookie helpers (TOKEN_DELIVERY=cookie)
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int, secure: bool = True, samesite: str = "lax") -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    secure: only sent over HTTPS; disable with SECURE_COOKIES=false for local
        plain-HTTP development.
    max_age: matches the JWT lifetime so both expire together.
    """
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=secure,
        samesite=samesite,
        max_age=max_age,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME)
