"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Token sources, checked in priority order:
  1. "token" cookie -- set by the OAuth callback when TOKEN_DELIVERY=cookie.
  2. Authorization: Bearer <token> header -- SPA clients that received the
     token in the redirect fragment.

authenticate() verifies the token and returns typed Claims. It never touches
the database: the claims inside a valid token are trusted as-is until expiry.

require_admin() depends on authenticate(), so FastAPI always runs the
authentication step first. A 401 short-circuits the request before the route
body -- and therefore before any store access -- runs.

require_owner_or_admin() is a plain function, not a dependency: ownership can
only be checked after the route has loaded the resource. That ordering means
a caller can distinguish 404 (no such post) from 403 (not yours). This is
accepted behaviour.

Layer rule: no imports from api/ or posts/. May import from fastapi because
this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.models import Claims
from auth.tokens import SESSION_COOKIE_NAME, SessionTokenCodec
from core.errors import Forbidden, InvalidToken, Unauthenticated


def extract_token(request: Request) -> str | None:
    """Return the raw session token from the cookie or Bearer header, if any."""
    token: str | None = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def authenticate(request: Request) -> Claims:
    """Require a valid session token. Raises Unauthenticated (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: Claims = Depends(authenticate)): ...
    """
    token = extract_token(request)
    if token is None:
        raise Unauthenticated()
    codec: SessionTokenCodec = request.app.state.token_codec
    try:
        return codec.verify(token)
    except InvalidToken as exc:
        raise Unauthenticated("Invalid token") from exc


def require_admin(claims: Claims = Depends(authenticate)) -> Claims:
    """Require admin role. 401 if unauthenticated, 403 if not admin."""
    if not claims.is_admin:
        raise Forbidden("Admin access required")
    return claims


def require_owner_or_admin(claims: Claims, author_ref: str, message: str = "Not authorized") -> None:
    """Raise Forbidden unless the caller authored the resource or is an admin."""
    if claims.subject == author_ref or claims.is_admin:
        return
    raise Forbidden(message)
