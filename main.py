"""Command-line interface for the event hub service."""

from __future__ import annotations

import argparse
import logging
import sys
from getpass import getpass
from typing import Sequence

import anyio

from eventhub.config import Settings, load_settings
from eventhub.errors import EventHubError
from eventhub.models import Role
from eventhub.passwords import PasswordHasher
from eventhub.repository import Database, resolve_database_path
from eventhub.users import UserDirectory

logger = logging.getLogger("eventhub.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Event hub utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the SQLite database")
    subparsers.add_parser("list-users", help="List registered accounts")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP and WebSocket service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=3000, help="Port for the API (default: 3000)")

    user_parser = subparsers.add_parser("create-user", help="Create an account")
    user_parser.add_argument("email", help="Unique email address for login")
    user_parser.add_argument(
        "--role",
        default=Role.ATTENDEE.value,
        choices=[role.value for role in Role],
        help="Account role (default: ATTENDEE)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "list-users", "create-user"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _open_database(settings: Settings) -> Database:
    db_path = settings.database_path or resolve_database_path(None)
    database = Database(db_path)
    database.initialize()
    logger.info("Database initialised at %s", db_path)
    return database


def _serve(settings: Settings, *, host: str, port: int) -> None:
    from eventhub.service import create_app
    import uvicorn

    if settings.database_path is None:
        logger.warning("EVENTHUB_DB_PATH is not set; accounts and events are kept in memory only")

    logger.info("Starting event hub on http://%s:%s (WebSocket at /ws)", host, port)
    app = create_app(settings=settings)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password: ")
        if not password:
            print("Password must not be empty. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(settings: Settings, email: str, role: str) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return 1

    database = _open_database(settings)
    directory = UserDirectory(database.users, PasswordHasher(rounds=settings.bcrypt_rounds))

    try:
        user = anyio.run(directory.register, email, password, role)
    except EventHubError as exc:
        print(f"Failed to create user: {exc.message}")
        return 1

    print(f"Created user {user.id}: {user.email} ({user.role.value})")
    return 0


def _list_users(settings: Settings) -> None:
    users = _open_database(settings).users.list()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':<32}  {'Email':<32}  {'Role':<10}  Created")
    print("-" * 100)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:<32}  {user.email:<32}  {user.role.value:<10}  {created}")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings()

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
    elif args.command == "init-db":
        _open_database(settings)
        print("Database initialisation complete.")
    elif args.command == "list-users":
        _list_users(settings)
    elif args.command == "create-user":
        return _create_user(settings, args.email, args.role)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
