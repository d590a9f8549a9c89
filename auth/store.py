"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper (same as posts/store.py).
UserDirectory is the repository; _row_to_identity is the mapper. Route and
exchange code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  upsert_by_external_id() is a single INSERT ... ON CONFLICT DO UPDATE
  statement on SQLite and PostgreSQL. The UNIQUE index on external_id makes
  concurrent first logins for the same subject collapse into one row. The
  conflict branch updates profile fields only -- role is not in the SET
  clause, so no provider response can ever change a user's role.

  delete_by_external_id() removes the identity's posts and then the identity
  inside one transaction. Either both disappear or neither does.

  demote_admin() folds the "more than one admin" check into its UPDATE, so
  concurrent demotions can never leave the service without an admin.

Layer rule: no imports from api/. Import from core/ and posts/models is
allowed -- the directory owns the posts-by-author view.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import ROLE_ADMIN, ROLE_USER, ROLES, Identity
from core.db import now_iso, posts, users
from core.errors import StoreError
from posts.models import Post
from posts.store import row_to_post

logger = logging.getLogger("quillpost.store")

# Dialects with a native INSERT ... ON CONFLICT construct in SQLAlchemy.
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class UserDirectory:
    """Repository for Identity records.

    Usage:
        directory = UserDirectory(create_db_engine("sqlite:///quillpost.db"))
        identity = directory.upsert_by_external_id("g1", "Alice", "a@b.com", "")
        directory.find_by_external_id("g1")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_external_id(self, external_id: str) -> Identity | None:
        """Look up an identity by provider subject id. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.external_id == external_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def list_identities(self) -> list[Identity]:
        """Return all identities ordered by display name. Admin tooling only."""
        with self.engine.connect() as conn:
            rows = conn.execute(users.select().order_by(users.c.display_name, users.c.external_id)).fetchall()
        return [_row_to_identity(r) for r in rows]

    def count_admins(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users).where(users.c.role == ROLE_ADMIN)).scalar()
        return result or 0

    def list_posts_by_author(self, external_id: str) -> list[Post]:
        """Return every post whose author_ref is external_id, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                posts.select()
                .where(posts.c.author_ref == external_id)
                .order_by(posts.c.created_at.desc(), posts.c.id.desc())
            ).fetchall()
        return [row_to_post(r) for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_by_external_id(
        self,
        external_id: str,
        display_name: str,
        email: str,
        picture_url: str = "",
        default_role: str = ROLE_USER,
    ) -> Identity:
        """Create or refresh the identity for external_id and return it.

        New rows get default_role. Existing rows have display_name, email,
        picture_url and updated_at overwritten; role and created_at are kept.
        """
        if default_role not in ROLES:
            raise ValueError(f"Unknown role: {default_role!r}")
        now = now_iso()
        profile = {"display_name": display_name, "email": email, "picture_url": picture_url or ""}
        row_values = {**profile, "external_id": external_id, "role": default_role, "created_at": now, "updated_at": now}

        make_insert = _UPSERT_INSERTS.get(self.engine.dialect.name)
        if make_insert is not None:
            stmt = make_insert(users).values(**row_values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[users.c.external_id],
                set_={**profile, "updated_at": now},
            )
            with self.engine.begin() as conn:
                conn.execute(stmt)
                row = conn.execute(users.select().where(users.c.external_id == external_id)).fetchone()
        else:
            row = self._insert_or_update(external_id, row_values, {**profile, "updated_at": now})

        if row is None:
            raise StoreError("User not found after write")
        return _row_to_identity(row)

    def _insert_or_update(self, external_id: str, row_values: dict, update_values: dict):
        """Portable upsert: insert, and on a UNIQUE collision update instead.

        The UNIQUE constraint still guarantees a single row; the loser of a
        concurrent insert race lands in the IntegrityError branch.
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(users.insert().values(**row_values))
        except IntegrityError:
            with self.engine.begin() as conn:
                conn.execute(users.update().where(users.c.external_id == external_id).values(**update_values))
        with self.engine.connect() as conn:
            return conn.execute(users.select().where(users.c.external_id == external_id)).fetchone()

    def set_role(self, external_id: str, role: str) -> Identity | None:
        """Assign a role. Together with demote_admin() the only writes that change role.

        Reachable from PATCH /user/role (admin only) and the admin CLI.
        Returns the updated identity, or None if external_id does not exist.
        """
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role!r}")
        with self.engine.begin() as conn:
            result = conn.execute(
                users.update().where(users.c.external_id == external_id).values(role=role, updated_at=now_iso())
            )
            if result.rowcount == 0:
                return None
            row = conn.execute(users.select().where(users.c.external_id == external_id)).fetchone()
        logger.info("Role for %s set to %s", external_id, role)
        return _row_to_identity(row)

    def demote_admin(self, external_id: str) -> Identity | None:
        """Set an admin's role to user unless they are the last admin.

        The admin count is evaluated inside the UPDATE itself, so two admins
        demoting each other concurrently cannot both succeed. Returns the
        updated identity, or None if nothing changed (unknown id, not an
        admin, or the last admin).
        """
        admin_count = select(func.count()).select_from(users).where(users.c.role == ROLE_ADMIN).scalar_subquery()
        with self.engine.begin() as conn:
            if self.engine.dialect.name != "sqlite":
                # Row locks on every admin serialize concurrent demotions.
                # SQLite needs none: the UPDATE takes the database write lock.
                conn.execute(select(users.c.id).where(users.c.role == ROLE_ADMIN).with_for_update()).fetchall()
            result = conn.execute(
                users.update()
                .where(users.c.external_id == external_id, users.c.role == ROLE_ADMIN, admin_count > 1)
                .values(role=ROLE_USER, updated_at=now_iso())
            )
            if result.rowcount == 0:
                return None
            row = conn.execute(users.select().where(users.c.external_id == external_id)).fetchone()
        logger.info("Admin %s demoted to %s", external_id, ROLE_USER)
        return _row_to_identity(row)

    def delete_by_external_id(self, external_id: str) -> Identity | None:
        """Delete an identity and every post it authored, atomically.

        Returns the deleted identity, or None (with nothing deleted) if the
        identity does not exist.
        """
        with self.engine.begin() as conn:
            row = conn.execute(users.select().where(users.c.external_id == external_id)).fetchone()
            if row is None:
                return None
            removed = conn.execute(posts.delete().where(posts.c.author_ref == external_id)).rowcount
            conn.execute(users.delete().where(users.c.external_id == external_id))
        logger.info("Deleted user %s and %d post(s)", external_id, removed)
        return _row_to_identity(row)


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        external_id=row.external_id,
        display_name=row.display_name,
        email=row.email,
        picture_url=row.picture_url or "",
        role=row.role,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
