"""
posts/store.py -- SQLAlchemy Core persistence layer for posts.

Pattern: Repository + Data Mapper (same as auth/store.py).

author_ref is written by create_post() and never appears in an UPDATE --
update_post() only accepts title and content, which keeps ownership fixed
for the lifetime of the post.

Cascading deletes by author live in auth/store.py (UserDirectory) so that
the identity and its posts are removed in one transaction.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from core.db import now_iso, posts
from posts.models import Post


class PostStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_post(self, post: Post) -> Post:
        """Insert a new post and return it with id and timestamps filled in."""
        now = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                posts.insert().values(
                    title=post.title,
                    content=post.content,
                    author_ref=post.author_ref,
                    created_at=now,
                    updated_at=now,
                )
            )
            post_id = result.inserted_primary_key[0]
        return Post(
            id=post_id,
            title=post.title,
            content=post.content,
            author_ref=post.author_ref,
            created_at=now,
            updated_at=now,
        )

    def get_post(self, post_id: int) -> Post | None:
        with self.engine.connect() as conn:
            row = conn.execute(posts.select().where(posts.c.id == post_id)).fetchone()
        return row_to_post(row) if row is not None else None

    def list_posts(self, page: int = 1, page_size: int = 10) -> list[Post]:
        """Return one page of posts, newest first. page is 1-based."""
        page = max(page, 1)
        with self.engine.connect() as conn:
            rows = conn.execute(
                posts.select()
                .order_by(posts.c.created_at.desc(), posts.c.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            ).fetchall()
        return [row_to_post(r) for r in rows]

    def count_posts(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(posts)).scalar()
        return result or 0

    def update_post(self, post_id: int, title: str | None = None, content: str | None = None) -> Post | None:
        """Update title and/or content. Returns the updated post, or None if not found.

        Empty or None values leave the field unchanged.
        """
        fields: dict = {}
        if title:
            fields["title"] = title
        if content:
            fields["content"] = content
        with self.engine.begin() as conn:
            if fields:
                fields["updated_at"] = now_iso()
                conn.execute(posts.update().where(posts.c.id == post_id).values(**fields))
            row = conn.execute(posts.select().where(posts.c.id == post_id)).fetchone()
        return row_to_post(row) if row is not None else None

    def delete_post(self, post_id: int) -> bool:
        """Delete a post. Returns True if deleted, False if not found."""
        with self.engine.begin() as conn:
            result = conn.execute(posts.delete().where(posts.c.id == post_id))
        return result.rowcount > 0


def row_to_post(row) -> Post:
    return Post(
        id=row.id,
        title=row.title,
        content=row.content,
        author_ref=row.author_ref,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
