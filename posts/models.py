"""
posts/models.py -- Domain dataclass for posts.

Pure data container. All persistence lives in posts/store.py.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Post:
    """A user-authored post.

    author_ref is the author's Identity.external_id. It is set once at
    creation and never updated; ownership checks compare it against the
    session token's subject claim.

    id is None before the record is written to the database.
    """

    title: str
    content: str
    author_ref: str
    id: int | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""
