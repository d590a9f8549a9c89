"""
API request and response models for Quillpost REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
posts/models.py, which own the internal domain representation. Route handlers
map between the two with the from_* factory methods below.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Identity
from posts.models import Post

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    admin = "admin"


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    """Body for every error response and for plain acknowledgements."""

    model_config = ConfigDict(frozen=True)

    message: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


class LoginUrlResponse(BaseModel):
    """Response for GET /login -- the provider consent URL."""

    model_config = ConfigDict(frozen=True)

    url: str


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Full identity view. Admin only."""

    model_config = ConfigDict(frozen=True)

    external_id: str
    name: str
    email: str
    picture: str
    role: RoleEnum
    created_at: str
    updated_at: str

    @classmethod
    def from_identity(cls, identity: Identity) -> "UserResponse":
        return cls(
            external_id=identity.external_id,
            name=identity.display_name,
            email=identity.email,
            picture=identity.picture_url,
            role=identity.role,
            created_at=identity.created_at,
            updated_at=identity.updated_at,
        )


class PublicProfileResponse(BaseModel):
    """Identity view for non-admin callers: no email, no ids."""

    model_config = ConfigDict(frozen=True)

    name: str
    picture: str
    role: RoleEnum

    @classmethod
    def from_identity(cls, identity: Identity) -> "PublicProfileResponse":
        return cls(name=identity.display_name, picture=identity.picture_url, role=identity.role)


class PostSummaryRow(BaseModel):
    """One post in an admin's view of a user profile."""

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    created_at: str


class AdminUserDetailResponse(BaseModel):
    """Response for GET /user when the caller is an admin."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    posts: list[PostSummaryRow]
    posts_count: int


class RoleUpdate(BaseModel):
    """Request body for PATCH /user/role."""

    role: RoleEnum


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


class PostWrite(BaseModel):
    """Request body for POST /post and PUT /post.

    Both fields are optional at the schema level so the route can answer a
    missing title/content with the documented 400 message instead of a 422.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, max_length=300)
    content: Optional[str] = Field(default=None, max_length=50_000)


class AuthorInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    external_id: str
    name: str
    picture: str


class PostResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    content: str
    author_ref: str
    created_at: str
    updated_at: str
    author: Optional[AuthorInfo] = None

    @classmethod
    def from_post(cls, post: Post, author: Optional[Identity] = None) -> "PostResponse":
        return cls(
            id=post.id,
            title=post.title,
            content=post.content,
            author_ref=post.author_ref,
            created_at=post.created_at,
            updated_at=post.updated_at,
            author=(
                AuthorInfo(external_id=author.external_id, name=author.display_name, picture=author.picture_url)
                if author is not None
                else None
            ),
        )


class PostEnvelope(BaseModel):
    """Response for GET /post."""

    model_config = ConfigDict(frozen=True)

    post: PostResponse


class PostMutationResponse(BaseModel):
    """Response for POST /post and PUT /post."""

    model_config = ConfigDict(frozen=True)

    message: str
    post: PostResponse


class PostPageResponse(BaseModel):
    """Response for GET /posts."""

    model_config = ConfigDict(frozen=True)

    posts: list[PostResponse]
    current_page: int
    total_pages: int
    total_posts: int
