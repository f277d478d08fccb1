#!/usr/bin/env python3
"""
Auth Template -- command line entry point.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000
  python main.py serve --reload
  python main.py create-user --email admin@example.com --password 's3cret-pass' --role admin

Configuration is read from environment variables and .env (see core/config.py).
create-user writes straight to the configured store, which is how the first
admin account is bootstrapped -- the HTTP API only ever creates "user" roles.
"""

import argparse
import getpass
import sys

from auth.errors import UserExistsError
from auth.models import AuthProvider, User
from auth.service import normalize_email
from auth.store import create_user_store
from auth.tokens import hash_password
from core.config import get_settings

_MIN_PASSWORD_LENGTH = 8


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _create_user(args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    if len(password) < _MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {_MIN_PASSWORD_LENGTH} characters.")
        return 1

    settings = get_settings()
    if settings.storage_backend == "memory":
        print("  [!] STORAGE_BACKEND=memory -- the user would be lost when this command exits.")
        return 1

    store = create_user_store(settings)
    try:
        user = store.create_user(
            User(
                email=normalize_email(args.email),
                name=args.name,
                role=args.role,
                hashed_password=hash_password(password, settings.bcrypt_rounds),
                provider=AuthProvider.LOCAL,
            )
        )
    except UserExistsError:
        print(f"  [!] A user with email '{args.email}' already exists.")
        return 1
    finally:
        store.close()

    print(f"  Created {user.role} {user.email} (id {user.id}).")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="auth-template",
        description="JWT + OAuth authentication API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py create-user --email admin@example.com --role admin
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=3000, help="Port (default: 3000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Create a local account in the configured store")
    create.add_argument("--email", required=True, help="Login email")
    create.add_argument("--password", help="Password (prompted when omitted)")
    create.add_argument("--name", default=None, help="Display name")
    create.add_argument("--role", default="user", help="Role, e.g. user or admin (default: user)")
    create.set_defaults(func=_create_user)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
