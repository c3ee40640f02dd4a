"""
Provider-agnostic outgoing email model.

An OutgoingMessage is what the mailer hands to a delivery method. Delivery
methods (SES API, SMTP) translate it into their own wire format; only those
adapters know about provider-specific request shapes.
"""

from email.message import EmailMessage, Message
from email.utils import formataddr, getaddresses
from typing import Optional, Union

from pydantic import BaseModel


class MessagePart(BaseModel):
    """A single body part, tagged with its media type."""

    content_type: str
    body: Union[str, bytes]
    charset: str = "utf-8"

    def decoded(self) -> str:
        if isinstance(self.body, bytes):
            try:
                return self.body.decode(self.charset or "utf-8", errors="replace")
            except LookupError:
                # unregistered charset names such as "unknown-8bit"
                return self.body.decode("utf-8", errors="replace")
        return self.body


class OutgoingMessage(BaseModel):
    """
    Generic outgoing email.

    A message is either single-part (``content_type`` + ``body``) or
    multipart (``parts`` non-empty). Recipient lists are passed to the
    provider verbatim; cc/bcc may be omitted.
    """

    sender: str
    to: Optional[list[str]] = None
    cc: Optional[list[str]] = None
    bcc: Optional[list[str]] = None
    subject: Optional[str] = None
    content_type: str = "text/plain"
    body: Union[str, bytes] = ""
    charset: str = "utf-8"
    parts: list[MessagePart] = []

    @property
    def is_multipart(self) -> bool:
        return len(self.parts) > 0

    def decoded_body(self) -> str:
        return MessagePart(
            content_type=self.content_type, body=self.body, charset=self.charset
        ).decoded()

    def recipients(self) -> list[str]:
        """All envelope recipients: to, cc and bcc."""
        return list(self.to or []) + list(self.cc or []) + list(self.bcc or [])

    # ------------------------------------------------------------------
    # stdlib email interop
    # ------------------------------------------------------------------

    @classmethod
    def from_email_message(cls, msg: Message) -> "OutgoingMessage":
        """
        Build an OutgoingMessage from a stdlib ``email`` message.

        Multipart messages are flattened to their leaf parts; attachments are
        kept as parts with their own media type and ignored by adapters that
        only forward text bodies.
        """

        def _addresses(header: str) -> Optional[list[str]]:
            values = msg.get_all(header)
            if not values:
                return None
            pairs = getaddresses([str(v) for v in values])
            return [formataddr(pair) if pair[0] else pair[1] for pair in pairs if pair[1]]

        sender = (_addresses("From") or [""])[0]
        common = dict(
            sender=sender,
            to=_addresses("To"),
            cc=_addresses("Cc"),
            bcc=_addresses("Bcc"),
            subject=str(msg["Subject"]) if msg["Subject"] is not None else None,
        )

        if not msg.is_multipart():
            return cls(
                content_type=msg.get_content_type(),
                body=msg.get_payload(decode=True) or b"",
                charset=msg.get_content_charset() or "utf-8",
                **common,
            )

        parts = [
            MessagePart(
                content_type=part.get_content_type(),
                body=part.get_payload(decode=True) or b"",
                charset=part.get_content_charset() or "utf-8",
            )
            for part in msg.walk()
            if not part.is_multipart()
        ]
        return cls(parts=parts, **common)

    def to_email_message(self) -> EmailMessage:
        """
        Render as a stdlib EmailMessage for SMTP submission.

        Bcc is left out of the headers; SMTP delivery passes the
        full recipient list in the envelope instead.
        """
        msg = EmailMessage()
        msg["Subject"] = self.subject or ""
        msg["From"] = self.sender
        if self.to:
            msg["To"] = ", ".join(self.to)
        if self.cc:
            msg["Cc"] = ", ".join(self.cc)

        if not self.is_multipart:
            subtype = "html" if self.content_type.lower().startswith("text/html") else "plain"
            msg.set_content(self.decoded_body(), subtype=subtype, charset="utf-8")
            return msg

        text_parts = [p for p in self.parts if p.content_type.startswith("text/plain")]
        html_parts = [p for p in self.parts if p.content_type.startswith("text/html")]
        if text_parts:
            msg.set_content(text_parts[0].decoded(), subtype="plain", charset="utf-8")
            if html_parts:
                msg.add_alternative(html_parts[0].decoded(), subtype="html", charset="utf-8")
        elif html_parts:
            msg.set_content(html_parts[0].decoded(), subtype="html", charset="utf-8")
        return msg
