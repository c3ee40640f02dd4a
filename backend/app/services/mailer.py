"""
Mailer: delivery-method selection plus the defaults applied to outgoing mail.

Selection order (first match wins):
  1. SES API   : both AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY set
  2. SMTP      : SMTP_ADDRESS set
  3. none      : deliveries are disabled and messages are only logged
"""

import logging
from typing import Optional, Protocol, Union

from app.config import MailerSettings, Settings
from app.models.mail_message import MessagePart, OutgoingMessage
from app.services.ses_delivery import SesDeliveryMethod
from app.services.smtp_delivery import SmtpDeliveryMethod

logger = logging.getLogger(__name__)


class DeliveryMethod(Protocol):
    def deliver(self, message: OutgoingMessage): ...


def build_delivery_method(settings: Settings) -> Optional[Union[SesDeliveryMethod, SmtpDeliveryMethod]]:
    if settings.ses is not None:
        return SesDeliveryMethod(settings.ses)
    if settings.smtp is not None:
        return SmtpDeliveryMethod(settings.smtp)
    return None


def delivery_method_name(method: Optional[DeliveryMethod]) -> str:
    if isinstance(method, SesDeliveryMethod):
        return "ses"
    if isinstance(method, SmtpDeliveryMethod):
        return "smtp"
    return "none"


class Mailer:
    """
    Composes messages with the configured defaults and hands them to the
    active delivery method.

    When a delivery method is configured, deliveries are performed and
    delivery errors are raised to the caller. Without one, ``deliver`` logs
    the message and returns False.
    """

    def __init__(
        self,
        settings: Settings,
        delivery_method: Optional[DeliveryMethod] = None,
        raise_delivery_errors: Optional[bool] = None,
    ):
        self.defaults: MailerSettings = settings.mailer
        self.delivery_method = delivery_method or build_delivery_method(settings)
        self.perform_deliveries = self.delivery_method is not None
        self.raise_delivery_errors = (
            self.perform_deliveries if raise_delivery_errors is None else raise_delivery_errors
        )

    def url_for(self, path: str = "") -> str:
        """Absolute URL for ``path`` using the mailer host and protocol."""
        base_url = f"{self.defaults.default_protocol}://{self.defaults.default_host}"
        if not path:
            return base_url + "/"
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return base_url + path

    def compose(
        self,
        to: Union[str, list[str]],
        subject: str,
        text_body: Optional[str] = None,
        html_body: Optional[str] = None,
        sender: Optional[str] = None,
        cc: Optional[list[str]] = None,
        bcc: Optional[list[str]] = None,
    ) -> OutgoingMessage:
        """Build a message; supplying both bodies produces a multipart message."""
        recipients = [to] if isinstance(to, str) else list(to)
        common = dict(
            sender=sender or self.defaults.default_from,
            to=recipients,
            cc=cc,
            bcc=bcc,
            subject=subject,
        )
        if text_body is not None and html_body is not None:
            return OutgoingMessage(
                parts=[
                    MessagePart(content_type="text/plain; charset=UTF-8", body=text_body),
                    MessagePart(content_type="text/html; charset=UTF-8", body=html_body),
                ],
                **common,
            )
        if html_body is not None:
            return OutgoingMessage(content_type="text/html", body=html_body, **common)
        return OutgoingMessage(content_type="text/plain", body=text_body or "", **common)

    def deliver(self, message: OutgoingMessage) -> bool:
        if not self.perform_deliveries:
            logger.info(
                "Mail delivery disabled; not sending %r to %s",
                message.subject,
                ", ".join(message.to or []),
            )
            return False
        try:
            self.delivery_method.deliver(message)
            return True
        except Exception as exc:
            if self.raise_delivery_errors:
                raise
            logger.error(f"Delivery failed and raise_delivery_errors is off: {exc}")
            return False
