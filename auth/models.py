"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these classes only own the shape.

Layer rule: no imports from api/ or posts/.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


@dataclass
class Identity:
    """A local user record keyed by the OAuth provider's subject id.

    external_id is the Google "sub" claim: stable, unique, never changes.
    display_name / email / picture_url are refreshed on every OAuth login.
    role is only ever written at insert time or by the privileged role path
    (UserDirectory.set_role) -- the OAuth exchange never touches it.
    """

    external_id: str
    display_name: str
    email: str
    picture_url: str = ""
    role: str = ROLE_USER
    id: int | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass(frozen=True)
class Claims:
    """Decoded session token claims, attached to a request by the auth guard.

    role is a snapshot taken when the token was issued. A later role change
    only takes effect once the holder logs in again and gets a fresh token.
    """

    subject: str  # Identity.external_id
    email: str
    role: str
    issued_at: int  # seconds since epoch
    expires_at: int

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
