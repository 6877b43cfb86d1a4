# portal/services/mailer.py
import asyncio
import logging
import smtplib
from concurrent.futures import ThreadPoolExecutor
from email.message import EmailMessage
from typing import Any, Callable, Dict, Mapping

from portal.core.config import settings

logger = logging.getLogger(__name__)

_thread_pool = ThreadPoolExecutor(max_workers=2)


def _credentials(data: Mapping[str, Any]) -> str:
    return (
        f"Hello {data.get('name') or data.get('email')},\n\n"
        f"An account has been created for you on the assessment portal.\n\n"
        f"Login email: {data.get('email')}\n"
        f"Temporary password: {data.get('password')}\n"
        f"Login at: {data.get('login_url')}\n\n"
        "You will be asked to change this password after your first login.\n"
    )


def _test_invitation(data: Mapping[str, Any]) -> str:
    body = (
        f"Hello {data.get('name') or data.get('email')},\n\n"
        f"{data.get('company_name') or 'A company'} has invited you to take the assessment "
        f"\"{data.get('test_title')}\".\n\n"
    )
    if data.get("message"):
        body += f"{data['message']}\n\n"
    if data.get("invite_url"):
        body += f"Start here (single use, expires {data.get('expires_at')}): {data['invite_url']}\n"
    if data.get("password"):
        body += f"Or log in with {data.get('email')} / {data['password']} at {data.get('login_url')}\n"
    return body


def _payment_reminder(data: Mapping[str, Any]) -> str:
    return (
        f"Hello {data.get('company_name')},\n\n"
        f"This is a reminder that invoice {data.get('invoice_number')} for "
        f"{data.get('amount')} {data.get('currency')} is due on {data.get('due_date')}.\n"
    )


TEMPLATES: Dict[str, Callable[[Mapping[str, Any]], str]] = {
    "credentials": _credentials,
    "test_invitation": _test_invitation,
    "payment_reminder": _payment_reminder,
}


def render(template: str, data: Mapping[str, Any]) -> str:
    try:
        return TEMPLATES[template](data)
    except KeyError:
        raise ValueError(f"unknown email template: {template}") from None


def _deliver(msg: EmailMessage) -> None:
    """Blocking SMTP delivery. Run in threadpool for async use."""
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SEC) as server:
        if settings.SMTP_USE_TLS:
            server.starttls()
        if settings.SMTP_USERNAME:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD or "")
        server.send_message(msg)


class EmailSender:
    """Sends templated mail; failures are logged and reported as False, never raised."""

    def __init__(self, deliver: Callable[[EmailMessage], None] = _deliver):
        self._deliver = deliver

    def build_message(self, to: str, subject: str, template: str, data: Mapping[str, Any]) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = settings.SMTP_FROM
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(render(template, data))
        return msg

    async def send(self, to: str, subject: str, template: str, data: Mapping[str, Any]) -> bool:
        if not settings.SMTP_HOST:
            logger.info("SMTP not configured; skipping %s email to %s", template, to)
            return False
        try:
            msg = self.build_message(to, subject, template, data)
            loop = asyncio.get_event_loop()
            await loop.run_in_executor(_thread_pool, self._deliver, msg)
        except (smtplib.SMTPException, OSError, ValueError):
            logger.exception("Failed to send %s email to %s", template, to)
            return False
        logger.info("Sent %s email to %s", template, to)
        return True


email_sender = EmailSender()

