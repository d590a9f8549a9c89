"""
api/routes/users.py -- User profile and administration endpoints.

Routes:
  GET    /user?id=<external_id>       -- profile (full view for admins)
  DELETE /user?id=<external_id>       -- delete user and all their posts (admin only)
  PATCH  /user/role?id=<external_id>  -- assign role (admin only)

PATCH /user/role is the only HTTP path that changes a role. The OAuth callback
refreshes name/email/picture but never role, so promotion to admin always
goes through an authenticated admin (or the offline CLI in main.py).

PATCH /user/role refuses to demote the last remaining admin. Without
that guard the service could lose every admin with no recovery path short of
the CLI.

Handlers are plain `def` so FastAPI runs them in its threadpool; the stores
are synchronous SQLAlchemy.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.models import (
    AdminUserDetailResponse,
    MessageResponse,
    PostSummaryRow,
    PublicProfileResponse,
    RoleEnum,
    RoleUpdate,
    UserResponse,
)
from auth.dependencies import authenticate, require_admin
from auth.models import ROLE_ADMIN, Claims
from auth.store import UserDirectory
from core.errors import BadRequest, NotFound

# Auth policy:
# - GET    /user:       requires auth (authenticate); response shape depends on role
# - DELETE /user:       requires admin (require_admin)
# - PATCH  /user/role:  requires admin (require_admin)
router = APIRouter()


def _require_id(user_id: str | None) -> str:
    if not user_id:
        raise BadRequest("User ID is required")
    return user_id


@router.get("/user", response_model=AdminUserDetailResponse | PublicProfileResponse)
def get_user(
    request: Request,
    user_id: str | None = Query(default=None, alias="id"),
    claims: Claims = Depends(authenticate),
) -> AdminUserDetailResponse | PublicProfileResponse:
    """Return a user's profile.

    Admins get the full record plus a list of the user's posts. Everyone else
    gets the public profile (name, picture, role).
    """
    directory: UserDirectory = request.app.state.user_directory
    external_id = _require_id(user_id)

    identity = directory.find_by_external_id(external_id)
    if identity is None:
        raise NotFound("User not found")

    if not claims.is_admin:
        return PublicProfileResponse.from_identity(identity)

    user_posts = directory.list_posts_by_author(external_id)
    return AdminUserDetailResponse(
        user=UserResponse.from_identity(identity),
        posts=[PostSummaryRow(id=p.id, title=p.title, created_at=p.created_at) for p in user_posts],
        posts_count=len(user_posts),
    )


@router.delete("/user", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: str | None = Query(default=None, alias="id"),
    claims: Claims = Depends(require_admin),
) -> JSONResponse:
    """Delete a user and every post they authored, in one transaction."""
    directory: UserDirectory = request.app.state.user_directory
    external_id = _require_id(user_id)

    if directory.delete_by_external_id(external_id) is None:
        raise NotFound("User not found")
    return JSONResponse(content={"message": "User and all posts deleted successfully"})


@router.patch("/user/role", response_model=UserResponse)
def update_role(
    request: Request,
    body: RoleUpdate,
    user_id: str | None = Query(default=None, alias="id"),
    claims: Claims = Depends(require_admin),
) -> UserResponse:
    """Assign a role. Takes effect on the user's next login -- tokens carry a role snapshot."""
    directory: UserDirectory = request.app.state.user_directory
    external_id = _require_id(user_id)

    target = directory.find_by_external_id(external_id)
    if target is None:
        raise NotFound("User not found")

    if target.role == ROLE_ADMIN and body.role != RoleEnum.admin:
        # The last-admin check runs inside the demoting UPDATE
        updated = directory.demote_admin(external_id)
        if updated is None:
            updated = directory.find_by_external_id(external_id)
            if updated is not None and updated.role == ROLE_ADMIN:
                raise BadRequest("Cannot demote the last admin")
    else:
        updated = directory.set_role(external_id, body.role.value)
    if updated is None:
        raise NotFound("User not found")
    return UserResponse.from_identity(updated)
