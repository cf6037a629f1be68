"""
Order notification emails.

The fulfillment pipeline calls a NotificationDispatcher after an order has
been persisted. Dispatch is fire-and-forget from the pipeline's point of
view: an exception here is logged by the caller and never undoes an order.

Implementations:
    SmtpNotificationDispatcher     - Jinja2 templates sent over SMTP
    LoggingNotificationDispatcher  - Used when SMTP is not configured

Templates (templates/email/):
    customer_confirmation.html / .txt
    owner_notification.html / .txt
"""

from __future__ import annotations

import smtplib
import ssl
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import CheckoutSettings
from models.order import Order
from logging_config import get_logger


logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

SMTP_SSL_PORT = 465
SMTP_TIMEOUT_SECONDS = 10.0


class NotificationDispatcher(ABC):
    """Sends order notifications."""

    @abstractmethod
    def send_customer_confirmation(self, order: Order) -> None:
        """Send the order confirmation to the customer."""
        ...

    @abstractmethod
    def send_owner_notification(self, order: Order) -> None:
        """Tell the shop owner about a new order."""
        ...


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Logs instead of sending. Used when email is not configured."""

    def send_customer_confirmation(self, order: Order) -> None:
        logger.info(
            f"Email not configured - skipping customer confirmation for {order.order_id}"
        )

    def send_owner_notification(self, order: Order) -> None:
        logger.info(
            f"Email not configured - skipping owner notification for {order.order_id}"
        )


class SmtpNotificationDispatcher(NotificationDispatcher):
    """
    Renders Jinja2 email templates and sends them over SMTP.

    Port 465 uses implicit SSL; any other port upgrades with STARTTLS.
    A new connection is opened per message.
    """

    def __init__(
        self,
        settings: CheckoutSettings,
        template_dir: Path = TEMPLATE_DIR,
        smtp_factory: Optional[Callable[..., smtplib.SMTP]] = None
    ):
        """
        Initialize the dispatcher.

        Args:
            settings: Checkout settings with SMTP credentials
            template_dir: Directory holding the email templates
            smtp_factory: Connection factory (defaults by port; injectable for tests)
        """
        self._settings = settings
        self._smtp_factory = smtp_factory
        self._env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def send_customer_confirmation(self, order: Order) -> None:
        context = self._context(order)
        self._send(
            to=order.customer_email,
            sender=f'"{self._settings.business_name}" <{self._settings.smtp_user}>',
            subject=f"Order Confirmation - {order.order_id}",
            html=self._env.get_template("customer_confirmation.html").render(context),
            text=self._env.get_template("customer_confirmation.txt").render(context),
        )
        logger.info(f"Customer confirmation sent for {order.order_id}")

    def send_owner_notification(self, order: Order) -> None:
        owner_email = self._settings.owner_email
        if not owner_email:
            logger.info("Owner email not configured - skipping owner notification")
            return

        context = self._context(order)
        self._send(
            to=owner_email,
            sender=f'"{self._settings.business_name} Orders" <{self._settings.smtp_user}>',
            subject=f"New Order {order.order_id} - ${order.amount:.2f}",
            html=self._env.get_template("owner_notification.html").render(context),
            text=self._env.get_template("owner_notification.txt").render(context),
        )
        logger.info(f"Owner notification sent for {order.order_id}")

    def _context(self, order: Order) -> Dict[str, Any]:
        return {
            "order": order,
            "business_name": self._settings.business_name,
            "support_email": self._settings.owner_email,
            "year": datetime.now(timezone.utc).year,
        }

    def _send(self, to: str, sender: str, subject: str, html: str, text: str) -> None:
        message = EmailMessage()
        message["From"] = sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")

        with self._connect() as smtp:
            if self._settings.smtp_user:
                smtp.login(self._settings.smtp_user, self._settings.smtp_password)
            smtp.send_message(message)

    def _connect(self) -> smtplib.SMTP:
        host = self._settings.smtp_host
        port = self._settings.smtp_port

        if self._smtp_factory is not None:
            return self._smtp_factory(host, port)

        context = ssl.create_default_context()
        if port == SMTP_SSL_PORT:
            return smtplib.SMTP_SSL(host, port, timeout=SMTP_TIMEOUT_SECONDS, context=context)

        smtp = smtplib.SMTP(host, port, timeout=SMTP_TIMEOUT_SECONDS)
        try:
            smtp.starttls(context=context)
        except smtplib.SMTPException:
            smtp.close()
            raise
        return smtp


def create_dispatcher(settings: CheckoutSettings) -> NotificationDispatcher:
    """SMTP dispatcher if email is configured, else the logging one."""
    if settings.email_configured:
        logger.info(f"Email notifications enabled via {settings.smtp_host}:{settings.smtp_port}")
        return SmtpNotificationDispatcher(settings)

    logger.warning("Email not configured (SMTP_HOST/SMTP_USER/SMTP_PASS/OWNER_EMAIL)")
    return LoggingNotificationDispatcher()
