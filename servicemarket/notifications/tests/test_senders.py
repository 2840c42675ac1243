"""
Tests for the notification senders and notify_safely.
"""

from unittest.mock import MagicMock

from django.test import TestCase
from django.test import override_settings

from servicemarket.accounts.tests.factories import AccountFactory
from servicemarket.notifications.models import Notification
from servicemarket.notifications.senders import DatabaseNotificationSender
from servicemarket.notifications.senders import get_notification_sender
from servicemarket.notifications.senders import notify_safely
from servicemarket.notifications.senders import render


class RenderTests(TestCase):
    def test_expiring_title_pluralizes_days(self):
        title, body = render(
            Notification.Type.SUBSCRIPTION_EXPIRING,
            {"plan_name": "Pro", "days_until_expiration": 3},
        )
        self.assertEqual(title, "Subscription Expires in 3 Days")
        self.assertIn("Your Pro will expire in 3 days.", body)

    def test_expiring_title_singular_day(self):
        title, _body = render(
            Notification.Type.SUBSCRIPTION_EXPIRING,
            {"plan_name": "Pro", "days_until_expiration": 1},
        )
        self.assertEqual(title, "Subscription Expires in 1 Day")

    def test_missing_plan_name_falls_back_to_subscription(self):
        title, body = render(Notification.Type.SUBSCRIPTION_EXPIRED, {})
        self.assertEqual(title, "Subscription Expired")
        self.assertTrue(body.startswith("Your subscription has expired."))


class DatabaseNotificationSenderTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.account = AccountFactory()

    def test_creates_notification_row(self):
        DatabaseNotificationSender().notify(
            self.account,
            Notification.Type.SUBSCRIPTION_GRACE_PERIOD_EXPIRED,
            {"plan_name": "Premium", "subscription_id": "abc"},
        )

        notification = Notification.objects.get(account=self.account)
        self.assertEqual(notification.title, "Grace Period Ended - Subscription Expired")
        self.assertIn("Premium grace period has ended", notification.body)
        self.assertEqual(notification.payload["subscription_id"], "abc")
        self.assertTrue(notification.is_unread)

    def test_default_sender_is_database_sender(self):
        self.assertIsInstance(get_notification_sender(), DatabaseNotificationSender)

    @override_settings(NOTIFICATION_SENDER_CLASS="unittest.mock.MagicMock")
    def test_sender_class_is_configurable(self):
        self.assertIsInstance(get_notification_sender(), MagicMock)


class NotifySafelyTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.account = AccountFactory()

    def test_returns_true_on_success(self):
        sender = MagicMock()
        self.assertTrue(notify_safely(sender, self.account, "system_alert", {}))
        sender.notify.assert_called_once_with(self.account, "system_alert", {})

    def test_swallows_sender_failure(self):
        sender = MagicMock()
        sender.notify.side_effect = ConnectionError("push gateway down")

        with self.assertLogs("servicemarket.notifications.senders", level="ERROR"):
            result = notify_safely(sender, self.account, "system_alert", {})

        self.assertFalse(result)
