"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Depends

from bugtracker.config import get_settings
from bugtracker.db import DbClient, InMemoryDbClient, SqlDbClient
from bugtracker.notifications import (
    FirebaseNotifier,
    InMemoryNotifier,
    NotificationDispatcher,
    Notifier,
)

_db_client: DbClient | None = None
_notifier: Notifier | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = SqlDbClient(settings.database_url)
    return _db_client


def get_notifier() -> Notifier:
    global _notifier
    if _notifier:
        return _notifier

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.firebase_service_account:
        _notifier = InMemoryNotifier()
    else:
        _notifier = FirebaseNotifier(settings.firebase_service_account)
    return _notifier


def get_dispatcher(
    db: DbClient = Depends(get_db_client),
    notifier: Notifier = Depends(get_notifier),
) -> NotificationDispatcher:
    return NotificationDispatcher(db, notifier)
