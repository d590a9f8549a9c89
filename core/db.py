"""
core/db.py -- SQLAlchemy Core schema and engine factory.

Both stores (auth/store.py and posts/store.py) share one Engine so that the
cascading user delete can remove an identity and its posts in a single
transaction. Tables live here rather than in each store for the same reason:
UserDirectory needs the posts table to cascade and to list posts by author.

Schema notes:
  users.external_id is UNIQUE. That constraint is what makes the OAuth upsert
  race-free: two concurrent first logins for the same Google subject collide
  on the index, and ON CONFLICT turns the loser into an update.

  posts.author_ref stores the author's external_id (a weak reference, no
  foreign key) and is indexed for posts-by-author lookups and cascades.

Layer rule: core/ is the kernel. No imports from api/, auth/, or posts/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("external_id", String(255), nullable=False, unique=True),
    Column("display_name", String(255), nullable=False),
    Column("email", String(320), nullable=False),
    Column("picture_url", Text, nullable=False, server_default=""),
    Column("role", String(16), nullable=False, server_default="user"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

posts = Table(
    "posts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(300), nullable=False),
    Column("content", Text, nullable=False),
    Column("author_ref", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_posts_author_ref", "author_ref"),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    """Create the shared Engine for db_url and make sure the schema exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # Route handlers run in FastAPI's threadpool, so one pooled
        # connection may be used from several threads over its lifetime.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    init_db(engine)
    return engine


def init_db(engine: Engine) -> None:
    metadata.create_all(engine)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
