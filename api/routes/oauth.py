"""
api/routes/oauth.py -- Google login endpoints.

Routes:
  GET /login         -- returns {"url": <Google consent URL>}
  GET /oauth?code=   -- OAuth callback; issues the session token and redirects
  GET /oauth/logout  -- clears the session cookie

Token delivery (TOKEN_DELIVERY):
  fragment (default) -- 302 to FRONTEND_REDIRECT_URL#token=<jwt>. The fragment
      never reaches a server, so the token stays out of access logs. The SPA
      reads it from location.hash and sends Authorization: Bearer <jwt>.
  cookie             -- 302 to FRONTEND_REDIRECT_URL with an httpOnly
      "token" cookie; the token never appears in a URL.

Security:
  GET /login and GET /oauth are rate-limited per client IP.
  Failures return {"message": ...} with a generic text; provider and transport
  errors are logged server-side only (see auth/exchange.py).
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.limiter import limiter
from api.models import LoginUrlResponse, MessageResponse
from auth.exchange import OAuthExchangeHandler
from auth.oauth import IdentityProvider
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import Settings

# Auth policy: every route here is public -- they exist to obtain or drop a session.
router = APIRouter()


@router.get("/login", response_model=LoginUrlResponse)
@limiter.limit("30/minute")
async def login(request: Request) -> JSONResponse:
    """Return the Google authorization URL the frontend should navigate to."""
    provider: IdentityProvider = request.app.state.identity_provider
    resp = JSONResponse(content=LoginUrlResponse(url=provider.authorization_url()).model_dump())
    resp.headers["Referrer-Policy"] = "no-referrer-when-downgrade"
    return resp


@router.get(
    "/oauth",
    status_code=302,
    responses={400: {"model": MessageResponse}, 500: {"model": MessageResponse}},
)
@limiter.limit("30/minute")
async def oauth_callback(request: Request, code: str | None = None) -> RedirectResponse:
    """Exchange the authorization code, then hand the session token to the frontend."""
    handler: OAuthExchangeHandler = request.app.state.oauth_exchange
    settings: Settings = request.app.state.settings

    result = await handler.exchange(code)

    frontend = settings.frontend_redirect_url
    if settings.token_delivery == "cookie":
        resp = RedirectResponse(frontend, status_code=302)
        set_session_cookie(
            resp,
            result.token,
            max_age=settings.token_expire_seconds,
            secure=settings.secure_cookies,
            samesite=settings.cookie_samesite,
        )
    else:
        resp = RedirectResponse(f"{frontend}#token={result.token}", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/oauth/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear the session cookie. A no-op for fragment delivery, where the client drops its copy."""
    resp = JSONResponse(content={"message": "Logged out successfully"})
    clear_session_cookie(resp)
    return resp
