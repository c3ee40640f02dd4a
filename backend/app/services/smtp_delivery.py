"""
SMTP delivery method.

Fallback used when SES API credentials are not configured but SMTP_ADDRESS is.
Port 465 uses implicit TLS; any other port connects in plain text and upgrades
with STARTTLS when the server offers it and enable_starttls_auto is on.
"""

import logging
import smtplib
import ssl

from app.config import ConfigurationError, SmtpSettings
from app.models.mail_message import OutgoingMessage

logger = logging.getLogger(__name__)

_SMTPS_PORT = 465
_TIMEOUT_SECONDS = 30

# authentication setting -> (SMTP AUTH mechanism, smtplib authobject name)
_AUTH_MECHANISMS = {
    "plain": ("PLAIN", "auth_plain"),
    "login": ("LOGIN", "auth_login"),
    "cram_md5": ("CRAM-MD5", "auth_cram_md5"),
}


def _ssl_context(verify_mode: str) -> ssl.SSLContext:
    """Build a TLS context; ``none`` disables certificate verification."""
    context = ssl.create_default_context()
    if verify_mode == "none":
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class SmtpDeliveryMethod:
    def __init__(self, settings: SmtpSettings):
        self.settings = settings

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        context = _ssl_context(s.openssl_verify_mode)
        if s.port == _SMTPS_PORT:
            server = smtplib.SMTP_SSL(
                s.address, s.port, local_hostname=s.domain,
                timeout=_TIMEOUT_SECONDS, context=context,
            )
            server.ehlo(s.domain)
            return server

        server = smtplib.SMTP(s.address, s.port, local_hostname=s.domain, timeout=_TIMEOUT_SECONDS)
        server.ehlo(s.domain)
        if s.enable_starttls_auto and server.has_extn("starttls"):
            server.starttls(context=context)
            server.ehlo(s.domain)
        return server

    def _authenticate(self, server: smtplib.SMTP) -> None:
        s = self.settings
        if not (s.user_name and s.password):
            return
        if s.authentication not in _AUTH_MECHANISMS:
            raise ConfigurationError(
                f"Unsupported SMTP authentication {s.authentication!r}. "
                f"Supported: {sorted(_AUTH_MECHANISMS)}"
            )
        mechanism, authobject = _AUTH_MECHANISMS[s.authentication]
        server.user, server.password = s.user_name, s.password
        server.auth(mechanism, getattr(server, authobject))

    def login_check(self) -> None:
        """Connect and authenticate without sending anything."""
        server = self._connect()
        with server:
            self._authenticate(server)

    def deliver(self, message: OutgoingMessage) -> None:
        """Send ``message``; failures are logged and re-raised."""
        try:
            # SMTP.__exit__ sends QUIT and tolerates an already dropped connection
            server = self._connect()
            with server:
                self._authenticate(server)
                server.send_message(
                    message.to_email_message(),
                    from_addr=message.sender,
                    to_addrs=message.recipients(),
                )
            logger.info(
                "Email sent successfully via SMTP (%s) to: %s",
                self.settings.address,
                ", ".join(message.to or []),
            )
        except Exception as exc:
            logger.error(f"Failed to send email via SMTP: {exc}")
            raise
