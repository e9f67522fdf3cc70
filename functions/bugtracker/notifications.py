"""
Push notifications for report lifecycle events.

Recipient selection is a pure function of the event, the report and the
acting user. Delivery goes through a ``Notifier`` transport (Firebase Cloud
Messaging in production, an in-memory recorder for development and tests).
The dispatcher glues the two together and never lets a delivery failure
escape to the caller.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

import firebase_admin
from firebase_admin import credentials, messaging

from bugtracker.db import DbClient, ReportRecord
from bugtracker.types import NotificationEvent, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PushMessage:
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)


def select_recipients(
    event: NotificationEvent,
    report: ReportRecord,
    actor_id: Optional[str] = None,
    developer_ids: Iterable[str] = (),
) -> set[str]:
    """Return the ids of the users who should hear about ``event``.

    The acting user is never notified about their own action.
    """
    if event == NotificationEvent.NEW_REPORT:
        recipients = set(developer_ids)
    elif event == NotificationEvent.STATUS_CHANGED:
        recipients = {report.reporter_id}
    elif event == NotificationEvent.ASSIGNED:
        recipients = {report.assigned_to_id}
    elif event == NotificationEvent.COMMENT_ADDED:
        recipients = {report.reporter_id, report.assigned_to_id}
    else:
        raise ValueError(f"Unknown notification event: {event}")

    recipients.discard(actor_id)
    return {user_id for user_id in recipients if user_id}


def build_message(
    event: NotificationEvent,
    report: ReportRecord,
    actor_name: Optional[str] = None,
) -> PushMessage:
    if event == NotificationEvent.NEW_REPORT:
        title = "New Bug Reported"
        body = f"#{report.id}: {report.app or 'Unknown app'}"
    elif event == NotificationEvent.STATUS_CHANGED:
        title = "Report Status Updated"
        body = f"Your report #{report.id} is now {report.status.label}"
    elif event == NotificationEvent.ASSIGNED:
        title = "Report Assigned"
        body = f"You have been assigned report #{report.id}"
    elif event == NotificationEvent.COMMENT_ADDED:
        title = "New Comment"
        body = f"{actor_name or 'Someone'} commented on report #{report.id}"
    else:
        raise ValueError(f"Unknown notification event: {event}")
    return PushMessage(
        title=title,
        body=body,
        data={"reportId": report.id, "event": event.value},
    )


class Notifier(Protocol):
    """Delivers one message to one or more device tokens."""

    def send(self, tokens: list[str], message: PushMessage) -> None:
        ...


@dataclass
class InMemoryNotifier:
    """Records messages instead of delivering them."""

    sent: list[tuple[list[str], PushMessage]] = field(default_factory=list)

    def send(self, tokens: list[str], message: PushMessage) -> None:
        self.sent.append((list(tokens), message))

    def reset(self) -> None:
        self.sent.clear()


class FirebaseNotifier:
    """
    Firebase Cloud Messaging transport.

    More than one token goes out as a single multicast batch.
    """

    def __init__(self, service_account_json: str):
        if not service_account_json:
            raise ValueError("FIREBASE_SERVICE_ACCOUNT is required for FirebaseNotifier")
        try:
            self.app = firebase_admin.get_app()
        except ValueError:
            cred = credentials.Certificate(json.loads(service_account_json))
            self.app = firebase_admin.initialize_app(cred)

    def send(self, tokens: list[str], message: PushMessage) -> None:
        if not tokens:
            return
        notification = messaging.Notification(title=message.title, body=message.body)
        if len(tokens) > 1:
            response = messaging.send_each_for_multicast(
                messaging.MulticastMessage(
                    tokens=tokens, notification=notification, data=message.data
                ),
                app=self.app,
            )
            if response.failure_count:
                logger.warning(
                    "FCM multicast delivered %d/%d messages",
                    response.success_count,
                    len(tokens),
                )
            return
        messaging.send(
            messaging.Message(
                token=tokens[0], notification=notification, data=message.data
            ),
            app=self.app,
        )


class NotificationDispatcher:
    """Resolves recipients to push tokens and hands the message to the notifier."""

    def __init__(self, db: DbClient, notifier: Notifier):
        self.db = db
        self.notifier = notifier

    def _resolve_tokens(
        self, user_ids: Iterable[str], known_tokens: Optional[dict[str, str]] = None
    ) -> list[str]:
        """Map user ids to distinct push tokens; ``known_tokens`` skips the store lookup."""
        tokens: list[str] = []
        for user_id in sorted(user_ids):
            if known_tokens is not None:
                token = known_tokens.get(user_id)
            else:
                user = self.db.get_user(user_id)
                token = user.push_token if user else None
            if token and token not in tokens:
                tokens.append(token)
        return tokens

    def dispatch(
        self,
        event: NotificationEvent,
        report: ReportRecord,
        *,
        actor_id: Optional[str] = None,
        actor_name: Optional[str] = None,
    ) -> int:
        """Send the notification for ``event``; returns the number of tokens targeted."""
        try:
            developer_tokens: Optional[dict[str, str]] = None
            if event == NotificationEvent.NEW_REPORT:
                developer_tokens = {
                    user.id: user.push_token
                    for user in self.db.list_users(role=UserRole.DEVELOPER)
                    if user.push_token
                }
            recipients = select_recipients(
                event,
                report,
                actor_id=actor_id,
                developer_ids=developer_tokens or (),
            )
            tokens = self._resolve_tokens(recipients, developer_tokens)
            if not tokens:
                logger.debug(
                    "No push tokens for %s on report %s", event.value, report.id
                )
                return 0
            self.notifier.send(tokens, build_message(event, report, actor_name))
            logger.info(
                "Sent %s notification for report %s to %d device(s)",
                event.value,
                report.id,
                len(tokens),
            )
            return len(tokens)
        except Exception:
            logger.exception(
                "Failed to send %s notification for report %s", event.value, report.id
            )
            return 0
