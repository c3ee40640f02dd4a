"""
Unit tests for the mailer: delivery-method selection, message composition,
and the perform/raise delivery flags.
"""

import email
import pytest
from unittest.mock import MagicMock

from app.config import load_settings
from app.models.mail_message import OutgoingMessage
from app.services.mailer import Mailer, build_delivery_method, delivery_method_name
from app.services.ses_delivery import SesDeliveryMethod
from app.services.smtp_delivery import SmtpDeliveryMethod


SES_ENV = {"AWS_ACCESS_KEY_ID": "AKIATEST", "AWS_SECRET_ACCESS_KEY": "secret"}
SMTP_ENV = {"SMTP_ADDRESS": "smtp.example.com"}


class TestBuildDeliveryMethod:

    def test_ses_when_aws_keys_present(self):
        method = build_delivery_method(load_settings(SES_ENV))
        assert isinstance(method, SesDeliveryMethod)
        assert delivery_method_name(method) == "ses"

    def test_ses_wins_over_smtp(self):
        method = build_delivery_method(load_settings({**SES_ENV, **SMTP_ENV}))
        assert isinstance(method, SesDeliveryMethod)

    def test_smtp_when_only_smtp_address(self):
        method = build_delivery_method(load_settings(SMTP_ENV))
        assert isinstance(method, SmtpDeliveryMethod)
        assert delivery_method_name(method) == "smtp"

    def test_none_without_configuration(self):
        method = build_delivery_method(load_settings({}))
        assert method is None
        assert delivery_method_name(method) == "none"


class TestCompose:

    def test_default_from_and_single_text_body(self):
        mailer = Mailer(load_settings({"MAIL_FROM": "shop@example.com"}))
        message = mailer.compose(to="alice@example.com", subject="Hi", text_body="Hello")

        assert message.sender == "shop@example.com"
        assert message.to == ["alice@example.com"]
        assert message.is_multipart is False
        assert message.content_type == "text/plain"

    def test_html_only(self):
        message = Mailer(load_settings({})).compose(to=["a@example.com"], subject="Hi", html_body="<p>x</p>")
        assert message.content_type == "text/html"
        assert message.decoded_body() == "<p>x</p>"

    def test_text_and_html_is_multipart(self):
        message = Mailer(load_settings({})).compose(
            to="a@example.com", subject="Hi", text_body="x", html_body="<p>x</p>", sender="other@example.com"
        )
        assert message.sender == "other@example.com"
        assert [p.content_type.split(";")[0] for p in message.parts] == ["text/plain", "text/html"]

    def test_url_for(self):
        mailer = Mailer(load_settings({"MAILER_DEFAULT_HOST": "shop.example.com"}))

        assert mailer.url_for() == "https://shop.example.com/"
        assert mailer.url_for("orders/R123") == "https://shop.example.com/orders/R123"
        assert mailer.url_for("/account") == "https://shop.example.com/account"
        assert mailer.url_for("http://elsewhere.example.com/x") == "http://elsewhere.example.com/x"

    def test_url_for_protocol(self):
        mailer = Mailer(load_settings({"MAILER_DEFAULT_PROTOCOL": "http"}))
        assert mailer.url_for("/") == "http://localhost/"


class TestDeliver:

    def _message(self) -> OutgoingMessage:
        return OutgoingMessage(sender="shop@example.com", to=["a@example.com"], subject="Hi", body="x")

    def test_delivery_disabled_without_method(self):
        mailer = Mailer(load_settings({}))

        assert mailer.perform_deliveries is False
        assert mailer.deliver(self._message()) is False

    def test_delivers_through_method(self):
        method = MagicMock()
        mailer = Mailer(load_settings({}), delivery_method=method)

        assert mailer.deliver(self._message()) is True
        method.deliver.assert_called_once()

    def test_errors_raised_by_default(self):
        method = MagicMock()
        method.deliver.side_effect = RuntimeError("boom")
        mailer = Mailer(load_settings({}), delivery_method=method)

        with pytest.raises(RuntimeError, match="boom"):
            mailer.deliver(self._message())

    def test_errors_swallowed_when_raise_disabled(self):
        method = MagicMock()
        method.deliver.side_effect = RuntimeError("boom")
        mailer = Mailer(load_settings({}), delivery_method=method, raise_delivery_errors=False)

        assert mailer.deliver(self._message()) is False


class TestOutgoingMessageInterop:
    """stdlib email <-> OutgoingMessage conversion."""

    def test_from_multipart_email_message(self):
        raw = (
            "From: Shop <shop@example.com>\r\n"
            "To: alice@example.com, bob@example.com\r\n"
            "Cc: carol@example.com\r\n"
            "Subject: Receipt\r\n"
            "MIME-Version: 1.0\r\n"
            'Content-Type: multipart/alternative; boundary="XYZ"\r\n'
            "\r\n"
            "--XYZ\r\n"
            "Content-Type: text/plain; charset=utf-8\r\n"
            "\r\n"
            "Thanks\r\n"
            "--XYZ\r\n"
            "Content-Type: text/html; charset=utf-8\r\n"
            "\r\n"
            "<p>Thanks</p>\r\n"
            "--XYZ--\r\n"
        )
        message = OutgoingMessage.from_email_message(email.message_from_string(raw))

        assert message.sender == "Shop <shop@example.com>"
        assert message.to == ["alice@example.com", "bob@example.com"]
        assert message.cc == ["carol@example.com"]
        assert message.bcc is None
        assert message.is_multipart
        assert [p.content_type for p in message.parts] == ["text/plain", "text/html"]
        assert message.parts[1].decoded().strip() == "<p>Thanks</p>"

    def test_from_single_part_email_message(self):
        raw = "From: shop@example.com\r\nTo: a@example.com\r\nSubject: Hi\r\n\r\nHello\r\n"
        message = OutgoingMessage.from_email_message(email.message_from_string(raw))

        assert message.is_multipart is False
        assert message.content_type == "text/plain"
        assert message.decoded_body().strip() == "Hello"

    def test_to_email_message_multipart(self):
        message = Mailer(load_settings({})).compose(
            to="a@example.com", subject="Hi", text_body="plain", html_body="<p>html</p>", bcc=["x@example.com"]
        )
        rendered = message.to_email_message()

        assert rendered.get_content_type() == "multipart/alternative"
        assert rendered["Bcc"] is None
        assert rendered.get_body(("plain",)).get_content().strip() == "plain"
        assert rendered.get_body(("html",)).get_content().strip() == "<p>html</p>"
