"""
api/routes/posts.py -- Post CRUD endpoints.

Routes:
  GET    /posts?page=N  -- paginated list, newest first (requires auth)
  GET    /post?id=      -- single post (requires auth)
  POST   /post          -- create; author is the caller (requires auth)
  PUT    /post?id=      -- update title/content (owner or admin)
  DELETE /post?id=      -- delete (owner or admin)

Ownership: PUT and DELETE load the post first and then call
require_owner_or_admin(). A caller can therefore tell "no such post" (404)
from "not your post" (403). This is accepted behaviour.

author_ref always comes from the session token's subject claim, never from
the request body, and PUT cannot change it.
"""

from __future__ import annotations

import math
import re

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.models import (
    MessageResponse,
    PostEnvelope,
    PostMutationResponse,
    PostPageResponse,
    PostResponse,
    PostWrite,
)
from auth.dependencies import authenticate, require_owner_or_admin
from auth.models import Claims
from auth.store import UserDirectory
from core.config import Settings
from core.errors import BadRequest, NotFound
from posts.models import Post
from posts.store import PostStore

# Auth policy:
# - GET    /posts:  requires auth (authenticate)
# - GET    /post:   requires auth (authenticate)
# - POST   /post:   requires auth (authenticate)
# - PUT    /post:   requires auth + require_owner_or_admin
# - DELETE /post:   requires auth + require_owner_or_admin
router = APIRouter()

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _require_post_id(post_id: int | None) -> int:
    if post_id is None:
        raise BadRequest("Post ID is required")
    return post_id


def _load_post(store: PostStore, post_id: int | None) -> Post:
    post = store.get_post(_require_post_id(post_id))
    if post is None:
        raise NotFound("Post not found")
    return post


def _page_number(raw: str | None) -> int:
    """Parse ?page= leniently: a leading integer is used, anything else or below 1 means page 1."""
    match = _LEADING_INT.match(raw or "")
    if match is None:
        return 1
    return max(int(match.group(1)), 1)


@router.get("/posts", response_model=PostPageResponse)
def list_posts(
    request: Request,
    page: str | None = Query(default=None),
    claims: Claims = Depends(authenticate),
) -> PostPageResponse:
    """Return one page of posts with each author's public profile attached."""
    store: PostStore = request.app.state.post_store
    directory: UserDirectory = request.app.state.user_directory
    settings: Settings = request.app.state.settings
    page_size = settings.posts_page_size
    page_number = _page_number(page)

    page_posts = store.list_posts(page=page_number, page_size=page_size)
    total = store.count_posts()

    authors = {ref: directory.find_by_external_id(ref) for ref in {p.author_ref for p in page_posts}}
    return PostPageResponse(
        posts=[PostResponse.from_post(p, authors.get(p.author_ref)) for p in page_posts],
        current_page=page_number,
        total_pages=math.ceil(total / page_size),
        total_posts=total,
    )


@router.get("/post", response_model=PostEnvelope)
def get_post(
    request: Request,
    post_id: int | None = Query(default=None, alias="id"),
    claims: Claims = Depends(authenticate),
) -> PostEnvelope:
    store: PostStore = request.app.state.post_store
    directory: UserDirectory = request.app.state.user_directory

    post = _load_post(store, post_id)
    author = directory.find_by_external_id(post.author_ref)
    return PostEnvelope(post=PostResponse.from_post(post, author))


@router.post("/post", response_model=PostMutationResponse, status_code=201)
def create_post(
    request: Request,
    body: PostWrite,
    claims: Claims = Depends(authenticate),
) -> PostMutationResponse:
    """Create a post owned by the authenticated caller."""
    store: PostStore = request.app.state.post_store
    if not body.title or not body.content:
        raise BadRequest("Title and content are required")

    post = store.create_post(Post(title=body.title, content=body.content, author_ref=claims.subject))
    return PostMutationResponse(message="Post created successfully", post=PostResponse.from_post(post))


@router.put("/post", response_model=PostMutationResponse)
def update_post(
    request: Request,
    body: PostWrite,
    post_id: int | None = Query(default=None, alias="id"),
    claims: Claims = Depends(authenticate),
) -> PostMutationResponse:
    """Update a post's title and/or content. Owner or admin only."""
    store: PostStore = request.app.state.post_store

    post = _load_post(store, post_id)
    require_owner_or_admin(claims, post.author_ref, "Not authorized to edit this post")

    updated = store.update_post(post.id, title=body.title, content=body.content)
    if updated is None:
        raise NotFound("Post not found")
    return PostMutationResponse(message="Post updated successfully", post=PostResponse.from_post(updated))


@router.delete("/post", response_model=MessageResponse)
def delete_post(
    request: Request,
    post_id: int | None = Query(default=None, alias="id"),
    claims: Claims = Depends(authenticate),
) -> JSONResponse:
    """Delete a post. Owner or admin only."""
    store: PostStore = request.app.state.post_store

    post = _load_post(store, post_id)
    require_owner_or_admin(claims, post.author_ref, "Not authorized to delete this post")

    store.delete_post(post.id)
    return JSONResponse(content={"message": "Post deleted successfully"})
