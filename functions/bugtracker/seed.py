"""
First-run provisioning of the default developer account.
"""

from __future__ import annotations

import logging

from bugtracker.config import Settings
from bugtracker.db import DbClient, UserRecord, UsernameTakenError
from bugtracker.security import hash_password
from bugtracker.types import UserRole

logger = logging.getLogger(__name__)


def ensure_seed_account(db: DbClient, settings: Settings) -> UserRecord:
    """
    Create the default developer account unless it already exists.

    Safe to call on every startup; an existing account is returned untouched
    (its password is not reset).
    """
    existing = db.get_user_by_username(settings.seed_username)
    if existing:
        return existing
    try:
        user = db.create_user(
            name=settings.seed_name,
            username=settings.seed_username,
            password_hash=hash_password(settings.seed_password),
            role=UserRole.DEVELOPER,
        )
    except UsernameTakenError:
        # Another process provisioned it between the lookup and the insert.
        return db.get_user_by_username(settings.seed_username)
    logger.warning(
        "Provisioned default developer account %r; change its password",
        settings.seed_username,
    )
    return user
