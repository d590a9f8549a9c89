"""
core/errors.py -- Application error taxonomy.

Every error a route can surface to a client is an AppError subclass carrying
an HTTP status code and a client-safe message. api/main.py registers a single
exception handler that renders any AppError as {"message": ...}.

Messages are deliberately generic. Token failures never say whether the
signature, structure, or expiry was at fault, and OAuth failures never echo
provider or transport errors back to the client.

Layer rule: core/ is the kernel. No imports from api/, auth/, or posts/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code: int = 500
    message: str = "Server error"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class BadRequest(AppError):
    status_code = 400
    message = "Bad request"


class NotFound(AppError):
    status_code = 404
    message = "Not found"


class StoreError(AppError):
    status_code = 500
    message = "Server error"


# ---------------------------------------------------------------------------
# OAuth exchange
# ---------------------------------------------------------------------------


class MissingCode(BadRequest):
    message = "Missing code"


class NoIdentityAssertion(BadRequest):
    message = "No id_token returned"


class IncompleteProfile(BadRequest):
    message = "Incomplete Google profile: missing sub/email/name"


class OAuthExchangeFailed(AppError):
    status_code = 500
    message = "Login failed"


# ---------------------------------------------------------------------------
# Session tokens and authorization
# ---------------------------------------------------------------------------


class InvalidToken(AppError):
    """Raised by SessionTokenCodec.verify() for any verification failure."""

    status_code = 401
    message = "Invalid token"


class Unauthenticated(AppError):
    status_code = 401
    message = "Authentication required"


class Forbidden(AppError):
    status_code = 403
    message = "Forbidden"
