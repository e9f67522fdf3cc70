import unittest
from unittest.mock import MagicMock, patch

from bugtracker.db import InMemoryDbClient, ReportRecord
from bugtracker.notifications import (
    FirebaseNotifier,
    InMemoryNotifier,
    NotificationDispatcher,
    PushMessage,
    build_message,
    select_recipients,
)
from bugtracker.types import NotificationEvent, ReportStatus, UserRole


def make_report(**overrides):
    fields = {"id": "r1", "reporter_id": "u_rep", "app": "Checkout"}
    fields.update(overrides)
    return ReportRecord(**fields)


class SelectRecipientsTests(unittest.TestCase):
    def test_new_report_targets_developer_pool(self):
        recipients = select_recipients(
            NotificationEvent.NEW_REPORT,
            make_report(),
            developer_ids=["u_dev1", "u_dev2"],
        )
        self.assertEqual(recipients, {"u_dev1", "u_dev2"})

    def test_status_change_targets_reporter(self):
        recipients = select_recipients(
            NotificationEvent.STATUS_CHANGED, make_report(assigned_to_id="u_dev")
        )
        self.assertEqual(recipients, {"u_rep"})

    def test_status_change_by_reporter_notifies_nobody(self):
        recipients = select_recipients(
            NotificationEvent.STATUS_CHANGED, make_report(), actor_id="u_rep"
        )
        self.assertEqual(recipients, set())

    def test_assignment_targets_assignee(self):
        recipients = select_recipients(
            NotificationEvent.ASSIGNED, make_report(assigned_to_id="u_dev")
        )
        self.assertEqual(recipients, {"u_dev"})

    def test_comment_by_reporter_targets_assignee(self):
        report = make_report(assigned_to_id="u_dev")
        recipients = select_recipients(
            NotificationEvent.COMMENT_ADDED, report, actor_id="u_rep"
        )
        self.assertEqual(recipients, {"u_dev"})

    def test_comment_by_reporter_without_assignee(self):
        recipients = select_recipients(
            NotificationEvent.COMMENT_ADDED, make_report(), actor_id="u_rep"
        )
        self.assertEqual(recipients, set())

    def test_comment_by_assignee_targets_reporter(self):
        report = make_report(assigned_to_id="u_dev")
        recipients = select_recipients(
            NotificationEvent.COMMENT_ADDED, report, actor_id="u_dev"
        )
        self.assertEqual(recipients, {"u_rep"})

    def test_comment_by_third_party_targets_both(self):
        report = make_report(assigned_to_id="u_dev")
        recipients = select_recipients(
            NotificationEvent.COMMENT_ADDED, report, actor_id="u_other"
        )
        self.assertEqual(recipients, {"u_rep", "u_dev"})


class BuildMessageTests(unittest.TestCase):
    def test_status_message_uses_readable_status(self):
        message = build_message(
            NotificationEvent.STATUS_CHANGED,
            make_report(status=ReportStatus.IN_PROGRESS),
        )
        self.assertEqual(message.title, "Report Status Updated")
        self.assertEqual(message.body, "Your report #r1 is now in progress")
        self.assertEqual(message.data, {"reportId": "r1", "event": "status_changed"})

    def test_new_report_message(self):
        message = build_message(NotificationEvent.NEW_REPORT, make_report())
        self.assertEqual(message.body, "#r1: Checkout")


class DispatcherTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.notifier = InMemoryNotifier()
        self.dispatcher = NotificationDispatcher(self.db, self.notifier)

    def _user(self, username, role=UserRole.USER, token=None):
        user = self.db.create_user(
            name=username, username=username, password_hash="x", role=role
        )
        if token:
            self.db.update_push_token(user.id, token)
        return user

    def test_skips_users_without_tokens(self):
        reporter = self._user("rita")
        sent = self.dispatcher.dispatch(
            NotificationEvent.STATUS_CHANGED, make_report(reporter_id=reporter.id)
        )
        self.assertEqual(sent, 0)
        self.assertEqual(self.notifier.sent, [])

    def test_new_report_fans_out_once(self):
        self._user("dev1", role=UserRole.DEVELOPER, token="t1")
        self._user("dev2", role=UserRole.DEVELOPER, token="t2")
        self._user("rita", token="t3")

        sent = self.dispatcher.dispatch(NotificationEvent.NEW_REPORT, make_report())

        self.assertEqual(sent, 2)
        self.assertEqual(len(self.notifier.sent), 1)
        self.assertEqual(sorted(self.notifier.sent[0][0]), ["t1", "t2"])

    def test_new_report_reads_developer_tokens_once(self):
        self._user("dev1", role=UserRole.DEVELOPER, token="t1")
        self._user("dev2", role=UserRole.DEVELOPER, token="t2")
        db = MagicMock(wraps=self.db)
        dispatcher = NotificationDispatcher(db, self.notifier)

        sent = dispatcher.dispatch(NotificationEvent.NEW_REPORT, make_report())

        self.assertEqual(sent, 2)
        db.list_users.assert_called_once_with(role=UserRole.DEVELOPER)
        db.get_user.assert_not_called()

    def test_new_report_skips_acting_developer(self):
        dev = self._user("dev1", role=UserRole.DEVELOPER, token="t1")
        self._user("dev2", role=UserRole.DEVELOPER, token="t2")
        self.dispatcher.dispatch(
            NotificationEvent.NEW_REPORT, make_report(), actor_id=dev.id
        )
        self.assertEqual(self.notifier.sent[0][0], ["t2"])

    def test_shared_device_token_is_sent_once(self):
        self._user("dev1", role=UserRole.DEVELOPER, token="shared")
        self._user("dev2", role=UserRole.DEVELOPER, token="shared")
        self.dispatcher.dispatch(NotificationEvent.NEW_REPORT, make_report())
        self.assertEqual(self.notifier.sent[0][0], ["shared"])

    def test_transport_failure_is_logged_not_raised(self):
        notifier = MagicMock()
        notifier.send.side_effect = RuntimeError("unreachable")
        dispatcher = NotificationDispatcher(self.db, notifier)
        reporter = self._user("rita", token="t1")

        with self.assertLogs("bugtracker.notifications", level="ERROR") as logs:
            sent = dispatcher.dispatch(
                NotificationEvent.STATUS_CHANGED, make_report(reporter_id=reporter.id)
            )
        self.assertEqual(sent, 0)
        self.assertIn("status_changed", logs.output[0])

    def test_store_failure_is_logged_not_raised(self):
        db = MagicMock()
        db.list_users.side_effect = RuntimeError("db down")
        dispatcher = NotificationDispatcher(db, self.notifier)
        with self.assertLogs("bugtracker.notifications", level="ERROR"):
            self.assertEqual(
                dispatcher.dispatch(NotificationEvent.NEW_REPORT, make_report()), 0
            )


class FirebaseNotifierTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("bugtracker.notifications.firebase_admin.get_app")
        self.get_app = patcher.start()
        self.addCleanup(patcher.stop)
        self.notifier = FirebaseNotifier('{"type": "service_account"}')
        self.message = PushMessage(title="T", body="B", data={"reportId": "r1"})

    def test_requires_service_account(self):
        with self.assertRaises(ValueError):
            FirebaseNotifier("")

    @patch("bugtracker.notifications.messaging.send")
    @patch("bugtracker.notifications.messaging.send_each_for_multicast")
    def test_multiple_tokens_use_one_multicast(self, multicast, single):
        multicast.return_value = MagicMock(failure_count=0, success_count=2)
        self.notifier.send(["a", "b"], self.message)
        multicast.assert_called_once()
        sent = multicast.call_args.args[0]
        self.assertEqual(sent.tokens, ["a", "b"])
        self.assertEqual(sent.notification.title, "T")
        single.assert_not_called()

    @patch("bugtracker.notifications.messaging.send")
    @patch("bugtracker.notifications.messaging.send_each_for_multicast")
    def test_single_token_uses_send(self, multicast, single):
        self.notifier.send(["a"], self.message)
        single.assert_called_once()
        self.assertEqual(single.call_args.args[0].token, "a")
        multicast.assert_not_called()

    @patch("bugtracker.notifications.messaging.send")
    def test_no_tokens_is_noop(self, single):
        self.notifier.send([], self.message)
        single.assert_not_called()


if __name__ == "__main__":
    unittest.main()
