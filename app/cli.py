"""Maintenance commands for the local credential store.

    python -m app.cli create-user --email a@b.co --password '...' [--name NAME]
    python -m app.cli sweep
"""
from __future__ import annotations
import argparse
import asyncio
import sys

from .db import SessionLocal
from .observability.logging import setup_logging
from .repos import users as users_repo
from .services.credential_store import get_password_hash
from .services.password_reset import normalize_email, validate_password
from .errors import ResetError
from .workers import otp_sweeper


async def _create_user(email: str, password: str, name: str | None) -> str:
    email = normalize_email(email, missing="--email is required")
    validate_password(password)
    async with SessionLocal() as db:
        user = await users_repo.create(db, email=email, password_hash=get_password_hash(password), display_name=name)
        await db.commit()
        return str(user.id)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="app.cli")
    sub = parser.add_subparsers(dest="command", required=True)

    p_user = sub.add_parser("create-user", help="add an account to the local users table")
    p_user.add_argument("--email", required=True)
    p_user.add_argument("--password", required=True)
    p_user.add_argument("--name", default=None)

    sub.add_parser("sweep", help="delete expired reset codes once")

    args = parser.parse_args(argv)
    setup_logging()

    if args.command == "create-user":
        try:
            user_id = asyncio.run(_create_user(args.email, args.password, args.name))
        except ResetError as exc:
            print(exc.message, file=sys.stderr)
            return 2
        print(user_id)
        return 0

    swept = asyncio.run(otp_sweeper.run_once())
    print(f"swept {swept}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
