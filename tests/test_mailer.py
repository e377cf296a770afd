"""Tests for the pre-meeting mail senders."""

from __future__ import annotations

import smtplib
from unittest.mock import patch

import pytest

from contour_onboarding.models import PreMeetRequest, SmtpConfig
from contour_onboarding.tools.mailer import (
    LoggingMailSender,
    SmtpMailSender,
    create_mail_sender,
    format_email_html,
)


@pytest.fixture
def request_() -> PreMeetRequest:
    return PreMeetRequest(
        session_id="s1",
        stakeholder_email="dana@acme.com",
        subject="Before we meet",
        body="Hi Dana,\nPlease share <your> org chart.",
        requested_artifacts=["Org chart"],
        upload_portal_url="https://portal.example.com/premeet/s1?a=1&b=2",
    )


class TestCreateMailSender:
    def test_unconfigured_logs(self):
        assert isinstance(create_mail_sender(SmtpConfig()), LoggingMailSender)

    def test_host_without_user_logs(self):
        assert isinstance(create_mail_sender(SmtpConfig(host="smtp.acme.com")), LoggingMailSender)

    def test_configured_sends(self):
        sender = create_mail_sender(SmtpConfig(host="smtp.acme.com", user="bot", password="pw"))
        assert isinstance(sender, SmtpMailSender)


class TestLoggingMailSender:
    def test_reports_not_sent(self, request_):
        result = LoggingMailSender().send(request_)
        assert result.sent is False
        assert result.error == "SMTP not configured. Email logged."


class TestFormatEmailHtml:
    def test_escapes_body_and_url(self, request_):
        html = format_email_html(request_)
        assert "&lt;your&gt;" in html
        assert "a=1&amp;b=2" in html
        assert html.count("<p style=\"margin: 8px 0;\">") == 2


class TestSmtpMailSender:
    def test_sends_with_starttls_and_login(self, request_):
        smtp = SmtpConfig(host="smtp.acme.com", port=587, user="bot", password="pw", sender="onboard@acme.com")
        with patch("contour_onboarding.tools.mailer.smtplib.SMTP") as smtp_cls:
            result = SmtpMailSender(smtp).send(request_)

        assert result.sent is True
        smtp_cls.assert_called_once_with("smtp.acme.com", 587, timeout=30.0)
        client = smtp_cls.return_value
        client.starttls.assert_called_once()
        client.login.assert_called_once_with("bot", "pw")
        sent = client.send_message.call_args.args[0]
        assert sent["To"] == "dana@acme.com"
        assert sent["From"] == "onboard@acme.com"
        assert sent["Subject"] == "Before we meet"

    def test_ssl_port_uses_smtp_ssl(self, request_):
        smtp = SmtpConfig(host="smtp.acme.com", port=465, user="bot", password="pw")
        with patch("contour_onboarding.tools.mailer.smtplib.SMTP_SSL") as ssl_cls:
            result = SmtpMailSender(smtp).send(request_)
        assert result.sent is True
        ssl_cls.return_value.starttls.assert_not_called()

    def test_smtp_failure_reported(self, request_):
        smtp = SmtpConfig(host="smtp.acme.com", user="bot", password="pw")
        with patch("contour_onboarding.tools.mailer.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
            result = SmtpMailSender(smtp).send(request_)
        assert result.sent is False
        assert "bad credentials" in result.error

    def test_missing_address(self, request_):
        request_.stakeholder_email = ""
        result = SmtpMailSender(SmtpConfig(host="h", user="u")).send(request_)
        assert result.sent is False
        assert result.error == "No stakeholder email address"
