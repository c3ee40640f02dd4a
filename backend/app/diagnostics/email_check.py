#!/usr/bin/env python3
"""
Send a test email through the configured mail delivery method.

Usage
-----
# Use the active delivery method (SES when AWS keys are set, otherwise SMTP)
storefront-email-check --to ops@example.com

# Force one transport
storefront-email-check --via smtp
storefront-email-check --via ses

# SMTP connect + authenticate only, nothing is sent
storefront-email-check --via smtp --login-only

Environment / .env
------------------
SMTP_ADDRESS, SMTP_PORT, SMTP_DOMAIN, SMTP_USERNAME, SMTP_PASSWORD,
SMTP_AUTHENTICATION, SMTP_ENABLE_STARTTLS_AUTO, SMTP_OPENSSL_VERIFY_MODE
                         SMTP transport (SMTP_ADDRESS required for --via smtp).
AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_REGION
                         SES API transport (both keys required for --via ses).
TEST_EMAIL_TO            Default recipient. Falls back to MAIL_FROM.
"""

import argparse
import socket
import sys
from datetime import datetime, timezone
from typing import Mapping, Optional

from app.config import Settings, load_settings
from app.diagnostics.common import fail, info, ok, report_exception
from app.logging_config import configure_logging
from app.services.mailer import Mailer
from app.services.ses_delivery import SesDeliveryMethod
from app.services.smtp_delivery import SmtpDeliveryMethod


def _default_via(settings: Settings) -> str:
    return "ses" if settings.ses is not None else "smtp"


def _smtp_method(settings: Settings) -> Optional[SmtpDeliveryMethod]:
    if settings.smtp is None:
        fail("SMTP_ADDRESS is not set. Configure SMTP_ADDRESS (and credentials) to test SMTP delivery.")
        return None
    s = settings.smtp
    info(f"SMTP server : {s.address}:{s.port} (domain {s.domain})")
    info(f"SMTP user   : {s.user_name or '(none)'} via {s.authentication}")
    info(f"STARTTLS    : {'auto' if s.enable_starttls_auto else 'off'}, verify mode {s.openssl_verify_mode}")
    return SmtpDeliveryMethod(s)


def _ses_method(settings: Settings) -> Optional[SesDeliveryMethod]:
    if settings.ses is None:
        fail(
            "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must both be set to test SES API delivery."
        )
        return None
    info(f"SES region  : {settings.ses.region}")
    info(f"Access key  : {settings.ses.access_key_id[:4]}…")
    return SesDeliveryMethod(settings.ses)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storefront-email-check",
        description="Send a test email through SMTP or the SES API.",
    )
    parser.add_argument(
        "--via",
        choices=["smtp", "ses"],
        default=None,
        help="Transport to test (default: the active delivery method)",
    )
    parser.add_argument(
        "--to",
        default=None,
        metavar="ADDRESS",
        help="Recipient address (default: TEST_EMAIL_TO, then MAIL_FROM)",
    )
    parser.add_argument(
        "--login-only",
        action="store_true",
        help="SMTP only: connect and authenticate without sending a message",
    )
    return parser


def main(argv: Optional[list[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(environ)
    configure_logging(settings.log_level)

    via = args.via or _default_via(settings)
    print(f"Testing email delivery via {via.upper()}")

    method = _smtp_method(settings) if via == "smtp" else _ses_method(settings)
    if method is None:
        return 1

    if args.login_only:
        if not isinstance(method, SmtpDeliveryMethod):
            fail("--login-only is only supported with --via smtp")
            return 1
        try:
            method.login_check()
        except Exception as exc:
            report_exception("SMTP login", exc)
            return 1
        ok(f"Connected and authenticated to {settings.smtp.address}:{settings.smtp.port}")
        return 0

    recipient = args.to or settings.test_email_to or settings.mailer.default_from
    sent_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
    mailer = Mailer(settings, delivery_method=method)
    message = mailer.compose(
        to=recipient,
        subject=f"Storefront email check ({via.upper()})",
        text_body=(
            f"This is a test email sent via {via.upper()} from {socket.gethostname()} at {sent_at}.\n"
            f"Store URL: {mailer.url_for('/')}\n"
        ),
        html_body=(
            f"<p>This is a test email sent via <strong>{via.upper()}</strong> "
            f"from {socket.gethostname()} at {sent_at}.</p>"
            f"<p>Store URL: <a href=\"{mailer.url_for('/')}\">{mailer.url_for('/')}</a></p>"
        ),
    )
    info(f"From        : {message.sender}")
    info(f"To          : {recipient}")

    try:
        method.deliver(message)
    except Exception as exc:
        report_exception("Sending test email", exc)
        return 1

    ok(f"Test email sent to {recipient} via {via.upper()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
