#!/usr/bin/env python3
"""
OrgDesk -- user and department administration API.

Usage:
  python main.py seed-admin
  python main.py seed-admin --email ops@example.com --username ops --password s3cret!
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080 --reload

Environment variables (see core/config.py for the full list):
  DATABASE_URL  SQLAlchemy URL. Defaults to orgdesk.db next to the code.
  SECRET_KEY    JWT signing key, at least 32 characters. Required unless DEBUG=true.
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from auth import admin
from auth.store import UserStore
from core.config import get_settings


def seed_admin(email: str, username: str, name: str, password: str) -> int:
    """Create the default administrator. Returns a process exit code.

    Skips (exit 0) when an account with that email or username already exists,
    so the command is safe to run on every deploy.
    """
    settings = get_settings()
    if len(password) < settings.password_min_length:
        print(f"  [!] Password must be at least {settings.password_min_length} characters.")
        return 2
    if len(password.encode("utf-8")) > 72:
        print("  [!] Password must be at most 72 bytes.")
        return 2

    store =UserStore(settings.database_url)
    try:
        if store.get_by_email(email) is not None or store.get_by_username(username) is not None:
            print(f"  Admin '{username}' already exists, nothing to do.")
            return 0
        try:
            user = admin.create_user(
                store,
                name=name,
                email=email,
                password=password,
                role="admin",
                username=username,
            )
        except IntegrityError:
            # Created concurrently by another seed run.
            print(f"  Admin '{username}' already exists, nothing to do.")
            return 0
        print(f"  Created admin '{user.username}' <{user.email}> (id {user.id}).")
        return 0
    finally:
        store.close()


def serve(host: str, port: int, reload: bool) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=host, port=port, reload=reload)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="orgdesk",
        description="User and department administration API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py seed-admin
  python main.py seed-admin --password 'change-me-now'
  python main.py serve --port 8080
  DEBUG=true python main.py serve --reload
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    seed = sub.add_parser("seed-admin", help="Create the default administrator account")
    seed.add_argument("--email", default="admin@example.com", help="Admin email (default: admin@example.com)")
    seed.add_argument("--username", default="admin", help="Admin username (default: admin)")
    seed.add_argument("--name", default="Administrator", help="Display name (default: Administrator)")
    seed.add_argument("--password", default=None, help="Admin password (prompted for when omitted)")

    run = sub.add_parser("serve", help="Run the API with uvicorn")
    run.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    run.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    run.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")

    args = parser.parse_args()

    if args.command == "seed-admin":
        password = args.password or getpass.getpass("Admin password: ")
        sys.exit(seed_admin(args.email, args.username, args.name, password))
    if args.command == "serve":
        sys.exit(serve(args.host, args.port, args.reload))
    parser.print_help()


if __name__ == "__main__":
    main()
