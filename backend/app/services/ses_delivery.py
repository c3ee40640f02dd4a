"""
AWS SES API delivery method.

Sends outgoing mail through the SES v2 ``SendEmail`` API instead of SMTP.

Request shape (SES v2, ``Content.Simple``):

  FromEmailAddress   str   : the message sender
  Destination        dict  : ToAddresses / CcAddresses / BccAddresses
  Content.Simple     dict  : Subject {Data, Charset} and Body {Text?, Html?}

Only ``text/plain`` and ``text/html`` bodies are forwarded; other parts
(attachments) are dropped. If SES changes its schema, only this file needs
updating.
"""

import logging
import re
from typing import Any, Optional

import boto3

from app.config import DEFAULT_SES_REGION, SesSettings
from app.models.mail_message import OutgoingMessage

logger = logging.getLogger(__name__)

_CHARSET = "UTF-8"

_TEXT_PLAIN = re.compile(r"text/plain", re.IGNORECASE)
_TEXT_HTML = re.compile(r"text/html", re.IGNORECASE)


def _body_entry(data: str) -> dict:
    return {"Data": data, "Charset": _CHARSET}


def _body_key(content_type: str) -> Optional[str]:
    """Map a media type to the SES body key, or None for anything else."""
    if _TEXT_PLAIN.search(content_type or ""):
        return "Text"
    if _TEXT_HTML.search(content_type or ""):
        return "Html"
    return None


def build_send_email_request(message: OutgoingMessage) -> dict[str, Any]:
    """
    Translate an OutgoingMessage into SES v2 ``send_email`` keyword arguments.

    Single-part messages become an Html body when their content type is HTML
    and a Text body otherwise. Multipart messages forward the first text/plain
    part and the first text/html part; further parts of the same type are
    skipped with a warning. Earlier releases let the last duplicate
    overwrite the first without any warning.
    """
    destination = {
        "ToAddresses": list(message.to or []),
        "CcAddresses": list(message.cc or []),
        "BccAddresses": list(message.bcc or []),
    }

    body: dict[str, dict] = {}
    if message.is_multipart:
        for part in message.parts:
            key = _body_key(part.content_type)
            if key is None:
                continue
            if key in body:
                logger.warning(
                    "Multipart message has more than one %s part; forwarding the first only",
                    part.content_type,
                )
                continue
            body[key] = _body_entry(part.decoded())
    else:
        key = "Html" if _TEXT_HTML.search(message.content_type or "") else "Text"
        body[key] = _body_entry(message.decoded_body())

    return {
        "FromEmailAddress": message.sender,
        "Destination": destination,
        "Content": {
            "Simple": {
                "Subject": {"Data": message.subject or "", "Charset": _CHARSET},
                "Body": body,
            }
        },
    }


class SesDeliveryMethod:
    """Delivery method that posts each message through the SES v2 API."""

    def __init__(self, settings: Optional[SesSettings] = None):
        self.settings = settings or SesSettings()

    def _client(self):
        # A fresh client per delivery; nothing is pooled between calls.
        return boto3.client(
            "sesv2",
            region_name=self.settings.region or DEFAULT_SES_REGION,
            aws_access_key_id=self.settings.access_key_id,
            aws_secret_access_key=self.settings.secret_access_key,
        )

    def deliver(self, message: OutgoingMessage) -> dict:
        """
        Send ``message`` with a single SendEmail call.

        Returns the SES response. Any client error (auth, network, rejected
        request) is logged and re-raised unchanged; nothing is retried.
        """
        try:
            request = build_send_email_request(message)
            response = self._client().send_email(**request)
            logger.info(
                "Email sent successfully via AWS SES API to: %s",
                ", ".join(message.to or []),
            )
            return response
        except Exception as exc:
            logger.error(f"Failed to send email via AWS SES API: {exc}")
            raise


def deliver(message: OutgoingMessage, settings: Optional[SesSettings] = None) -> dict:
    """Deliver one message through SES using ``settings``."""
    return SesDeliveryMethod(settings).deliver(message)
