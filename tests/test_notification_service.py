"""
Unit tests for order notification emails.

SMTP is replaced by a MagicMock connection factory; nothing leaves the
process.
"""

from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from services.fulfillment_service import order_from_session
from services.notification_service import (
    LoggingNotificationDispatcher,
    SmtpNotificationDispatcher,
    create_dispatcher,
)

from fakes import make_session


# Fixtures

@pytest.fixture
def email_settings(settings):
    return replace(
        settings,
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="orders@example.com",
        smtp_password="secret",
        owner_email="owner@example.com",
        business_name="iTapRing",
    )


@pytest.fixture
def smtp():
    """The connection object handed out by the factory's context manager."""
    return MagicMock()


@pytest.fixture
def smtp_factory(smtp):
    factory = MagicMock()
    factory.return_value.__enter__.return_value = smtp
    return factory


@pytest.fixture
def order():
    session = make_session()
    return order_from_session("ORD-000042", session, session["_line_items"])


def sent_message(smtp):
    assert smtp.send_message.call_count == 1
    return smtp.send_message.call_args[0][0]


class TestSmtpNotificationDispatcher:
    """Rendering and sending."""

    def test_customer_confirmation(self, email_settings, smtp_factory, smtp, order):
        dispatcher = SmtpNotificationDispatcher(email_settings, smtp_factory=smtp_factory)

        dispatcher.send_customer_confirmation(order)

        smtp_factory.assert_called_once_with("smtp.example.com", 587)
        smtp.login.assert_called_once_with("orders@example.com", "secret")
        message = sent_message(smtp)
        assert message["To"] == "jane@example.com"
        assert message["Subject"] == "Order Confirmation - ORD-000042"
        assert "iTapRing" in message["From"]

        text = message.get_body(("plain",)).get_content()
        assert "ORD-000042" in text
        assert "Black Ring (Black - Size 8) x1 - $80.00" in text
        assert "Springfield, IL 62701" in text

        html = message.get_body(("html",)).get_content()
        assert "ORD-000042" in html

    def test_owner_notification(self, email_settings, smtp_factory, smtp, order):
        dispatcher = SmtpNotificationDispatcher(email_settings, smtp_factory=smtp_factory)

        dispatcher.send_owner_notification(order)

        message = sent_message(smtp)
        assert message["To"] == "owner@example.com"
        assert message["Subject"] == "New Order ORD-000042 - $80.00"
        text = message.get_body(("plain",)).get_content()
        assert "Product ID: ring-black" in text
        assert "pi_test_123" in text

    def test_owner_notification_skipped_without_owner_email(self, email_settings, smtp_factory, order):
        dispatcher = SmtpNotificationDispatcher(
            replace(email_settings, owner_email=""), smtp_factory=smtp_factory
        )

        dispatcher.send_owner_notification(order)

        smtp_factory.assert_not_called()

    def test_html_escapes_customer_data(self, email_settings, smtp_factory, smtp, order):
        order.customer_name = "<script>alert(1)</script>"
        dispatcher = SmtpNotificationDispatcher(email_settings, smtp_factory=smtp_factory)

        dispatcher.send_customer_confirmation(order)

        html = sent_message(smtp).get_body(("html",)).get_content()
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_smtp_failure_propagates(self, email_settings, smtp_factory, smtp, order):
        smtp.send_message.side_effect = ConnectionRefusedError("refused")
        dispatcher = SmtpNotificationDispatcher(email_settings, smtp_factory=smtp_factory)

        with pytest.raises(ConnectionRefusedError):
            dispatcher.send_customer_confirmation(order)


class TestCreateDispatcher:
    """Dispatcher selection."""

    def test_smtp_when_configured(self, email_settings):
        assert isinstance(create_dispatcher(email_settings), SmtpNotificationDispatcher)

    def test_logging_when_not_configured(self, settings):
        assert isinstance(create_dispatcher(settings), LoggingNotificationDispatcher)

    def test_logging_dispatcher_never_raises(self, order):
        dispatcher = LoggingNotificationDispatcher()

        dispatcher.send_customer_confirmation(order)
        dispatcher.send_owner_notification(order)
