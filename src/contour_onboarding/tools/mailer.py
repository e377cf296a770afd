"""Outbound email collaborator for the pre-meeting request."""

from __future__ import annotations

import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from ..models import MailResult, PreMeetRequest, SmtpConfig

logger = logging.getLogger(__name__)


class MailSender(Protocol):
    def send(self, request: PreMeetRequest) -> MailResult: ...


def format_email_html(request: PreMeetRequest) -> str:
    paragraphs = "".join(
        f'<p style="margin: 8px 0;">{html.escape(line)}</p>' for line in request.body.split("\n")
    )
    url = html.escape(request.upload_portal_url)
    return (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto; color: #333;">'
        f"{paragraphs}"
        '<div style="margin: 20px 0; padding: 16px; background: #f7f7f7; border-radius: 8px;">'
        f'<strong>Upload your files here:</strong><br><a href="{url}">{url}</a></div>'
        '<p style="color: #666; font-size: 13px;">'
        "Accepted formats: Excel (.xlsx, .csv), PDF, screenshots, Word documents</p>"
        "</div>"
    )


class LoggingMailSender:
    """Used when SMTP is not configured: the email is logged, not sent."""

    def send(self, request: PreMeetRequest) -> MailResult:
        logger.info(
            "SMTP not configured. Pre-meeting email to %s: %s\n%.200s",
            request.stakeholder_email or "<no address>",
            request.subject,
            request.body,
        )
        return MailResult(sent=False, error="SMTP not configured. Email logged.")


class SmtpMailSender:
    def __init__(self, smtp: SmtpConfig, timeout: float = 30.0) -> None:
        self.smtp = smtp
        self.timeout = timeout

    def _build(self, request: PreMeetRequest) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.smtp.sender
        message["To"] = request.stakeholder_email
        message["Subject"] = request.subject
        message.set_content(request.body)
        message.add_alternative(format_email_html(request), subtype="html")
        return message

    def send(self, request: PreMeetRequest) -> MailResult:
        if not request.stakeholder_email:
            return MailResult(sent=False, error="No stakeholder email address")
        message = self._build(request)
        try:
            if self.smtp.port == 465:
                server = smtplib.SMTP_SSL(self.smtp.host, self.smtp.port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.smtp.host, self.smtp.port, timeout=self.timeout)
            with server:
                if self.smtp.port != 465:
                    server.starttls()
                if self.smtp.user:
                    server.login(self.smtp.user, self.smtp.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Pre-meeting email to %s failed: %s", request.stakeholder_email, exc)
            return MailResult(sent=False, error=str(exc))
        return MailResult(sent=True, message_id=message.get("Message-ID"))


def create_mail_sender(smtp: SmtpConfig) -> MailSender:
    if smtp.host and smtp.user:
        return SmtpMailSender(smtp)
    return LoggingMailSender()
