#!/usr/bin/env python3
"""
EduManage admin CLI -- maintenance tasks that run outside the web server.

Usage:
  python main.py create-user --username admin --role admin --email admin@school.test \
      --first-name Ada --last-name Admin
  python main.py purge-sessions

create-user prompts for the password (never pass it on the command line,
where it would land in shell history). It is the way to bootstrap the first
admin account; afterwards admins create users through POST /api/v1/users.

Environment variables: see core/config.py (DATABASE_URL, SECRET_KEY, DEBUG, ...).
"""

import argparse
import getpass
import sys

from auth.accounts import AccountService
from auth.errors import UserExists
from auth.models import Principal, Role
from auth.sessions import SessionManager
from auth.store import ActivityLog, SqlSessionBackend, StudentStore, UserStore, create_db_engine
from core.config import get_settings

# Attributed to no user: the CLI acts outside any session.
_SYSTEM = Principal(user_id=None, username="system", role=Role.admin)


def _build_services(db_url: str) -> tuple[AccountService, SessionManager]:
    settings = get_settings()
    engine = create_db_engine(db_url)
    users, students = UserStore(engine), StudentStore(engine)
    sessions = SessionManager(
        SqlSessionBackend(engine),
        users,
        students,
        secret_key=settings.secret_key,
        ttl_seconds=settings.session_ttl_seconds,
    )
    return AccountService(users, students, ActivityLog(engine), sessions), sessions


def _read_password() -> str:
    password = getpass.getpass("Password: ")
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        sys.exit(1)
    if getpass.getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return password


def cmd_create_user(args: argparse.Namespace) -> int:
    accounts, _ = _build_services(args.database_url)
    try:
        user = accounts.create_user(
            _SYSTEM,
            username=args.username,
            password=_read_password(),
            first_name=args.first_name,
            last_name=args.last_name,
            email=args.email,
            role=Role(args.role),
        )
    except UserExists:
        print(f"  [!] A user named '{args.username}' or with email '{args.email}' already exists.")
        return 1
    print(f"  Created {user.role.value} '{user.username}' (id={user.id})")
    return 0


def cmd_purge_sessions(args: argparse.Namespace) -> int:
    _, sessions = _build_services(args.database_url)
    removed = sessions.purge_expired()
    print(f"  Purged {removed} expired session(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="edumanage",
        description="EduManage administration commands.",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL (default: DATABASE_URL from the environment)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="create a user account")
    create.add_argument("--username", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--first-name", required=True)
    create.add_argument("--last-name", required=True)
    create.add_argument("--role", choices=[r.value for r in Role], default=Role.admin.value)
    create.set_defaults(func=cmd_create_user)

    purge = sub.add_parser("purge-sessions", help="delete expired sessions")
    purge.set_defaults(func=cmd_purge_sessions)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.database_url is None:
        args.database_url = get_settings().database_url
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
