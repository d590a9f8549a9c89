#!/usr/bin/env python3
"""
Quillpost admin CLI -- out-of-band identity administration.

The OAuth login never assigns or changes roles, so the very first admin has
to be promoted from outside the API. This tool talks to the database
directly and does not need JWT_SECRET or Google credentials.

Usage:
  python main.py list-users
  python main.py set-role 109876543210 admin
  python main.py set-role 109876543210 user
  python main.py --db-url sqlite:///quillpost.db set-role 109876543210 admin

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the Quillpost database (default sqlite:///quillpost.db).
"""

import argparse
import sys
from typing import Optional

from auth.models import ROLES
from auth.store import UserDirectory
from core.config import DatabaseSettings
from core.db import create_db_engine


def _directory(db_url: Optional[str]) -> UserDirectory:
    url = db_url or DatabaseSettings().database_url
    return UserDirectory(create_db_engine(url))


def cmd_list_users(args: argparse.Namespace) -> int:
    directory = _directory(args.db_url)
    identities = directory.list_identities()
    if not identities:
        print("  No users yet. Users are created on their first Google login.")
        return 0
    for identity in identities:
        print(f"  {identity.external_id:<24} {identity.role:<6} {identity.email:<32} {identity.display_name}")
    return 0


def cmd_set_role(args: argparse.Namespace) -> int:
    directory = _directory(args.db_url)
    updated = directory.set_role(args.external_id, args.role)
    if updated is None:
        print(f"  [!] No user with external id '{args.external_id}'. They must log in once first.")
        return 1
    print(f"  {updated.external_id} ({updated.email}) is now '{updated.role}'.")
    print("  The change applies from the user's next login; existing tokens keep their old role until expiry.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="quillpost", description="Quillpost identity administration.")
    parser.add_argument("--db-url", default=None, help="Database URL (overrides DATABASE_URL).")
    sub = parser.add_subparsers(dest="command", required=True)

    list_users = sub.add_parser("list-users", help="List every identity with its role.")
    list_users.set_defaults(func=cmd_list_users)

    set_role = sub.add_parser("set-role", help="Assign a role to an identity.")
    set_role.add_argument("external_id", help="Google subject id of the user.")
    set_role.add_argument("role", choices=ROLES)
    set_role.set_defaults(func=cmd_set_role)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
