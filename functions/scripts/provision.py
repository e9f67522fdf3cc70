"""
Provision accounts in the bug tracker store.

Ensures the default developer account exists and optionally creates an
extra user, e.g. on first deployment:

    python scripts/provision.py --username alice --name Alice --role developer
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bugtracker.config import get_settings
from bugtracker.db import UsernameTakenError
from bugtracker.dependencies import get_db_client
from bugtracker.security import hash_password
from bugtracker.seed import ensure_seed_account
from bugtracker.types import UserRole

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Provision bug tracker accounts")
    parser.add_argument(
        "--skip-seed",
        action="store_true",
        help="Do not create the default developer account",
    )
    parser.add_argument("--username", type=str, default=None, help="User to create")
    parser.add_argument("--name", type=str, default=None, help="Display name")
    parser.add_argument(
        "--role",
        type=str,
        choices=[role.value for role in UserRole],
        default=UserRole.USER.value,
    )
    parser.add_argument(
        "--password",
        type=str,
        default=None,
        help="Password for the new user (prompted when omitted)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    db = get_db_client()

    if not args.skip_seed:
        seed = ensure_seed_account(db, settings)
        logger.info("Seed account %s (%s) is present", seed.username, seed.id)

    if args.username:
        password = args.password or getpass.getpass(f"Password for {args.username}: ")
        try:
            user = db.create_user(
                name=args.name or args.username,
                username=args.username,
                password_hash=hash_password(password),
                role=UserRole(args.role),
            )
        except UsernameTakenError:
            logger.error("Username %r is already taken", args.username)
            return 1
        logger.info("Created %s user %s (%s)", user.role.value, user.username, user.id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
