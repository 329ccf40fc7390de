"""
verification/mailer.py -- Outbound email for OTP and reset-password messages.

Senders implement one method:

    send(to_address, subject, html_body) -> str   # provider message id

and raise EmailDeliveryError when the message could not be delivered.

HttpEmailSender
  Posts a JSON message to a transactional email API (Resend-compatible
  payload: from / to / subject / html, bearer API key) over a shared
  requests.Session. Delivery policy: bounded retry with a fixed backoff.
  Connection errors, timeouts, 429 and 5xx responses are retried up to
  `attempts` times; any other 4xx is a permanent failure and is raised at
  once. Each request carries a timeout, so a send can never hang the
  workflow indefinitely.

LogEmailSender
  DEBUG-only stand-in that writes the message to the log instead of
  sending it. The body contains the OTP code, so it must never be used in
  production -- build_email_sender() refuses unless DEBUG is on.

Templates are Jinja2 files in verification/templates/ with HTML
autoescaping, so a first name like "<script>" is rendered inert.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Protocol

import requests
from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import Settings
from verification.outcomes import EmailDeliveryError

logger = logging.getLogger("otpgate.mailer")

_templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates")),
    autoescape=select_autoescape(["html"]),
)


class EmailSender(Protocol):
    def send(self, to_address: str, subject: str, html_body: str) -> str: ...


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def render_otp_email(app_name: str, first_name: str, code: str, url: str, expire_minutes: int) -> str:
    return _templates.get_template("otp_email.html").render(
        app_name=app_name,
        first_name=first_name,
        code=code,
        url=url,
        expire_minutes=expire_minutes,
    )


def render_reset_password_email(app_name: str, first_name: str, url: str, expire_minutes: int) -> str:
    return _templates.get_template("reset_password_email.html").render(
        app_name=app_name,
        first_name=first_name,
        url=url,
        expire_minutes=expire_minutes,
    )


# ---------------------------------------------------------------------------
# Senders
# ---------------------------------------------------------------------------


class HttpEmailSender:
    """Sends email through a JSON HTTP API with bounded, fixed-backoff retries."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        sender: str,
        timeout: float = 10.0,
        attempts: int = 3,
        backoff_seconds: float = 1.0,
        session: requests.Session | None = None,
        sleep=time.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.api_url = api_url
        self.sender = sender
        self.timeout = timeout
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._session = session or requests.Session()
        # Known endpoint; a redirect chain here is never legitimate.
        self._session.max_redirects = 3
        self._session.headers.update({"Authorization": f"Bearer {api_key}"})

    def send(self, to_address: str, subject: str, html_body: str) -> str:
        payload = {"from": self.sender, "to": [to_address], "subject": subject, "html": html_body}
        last_error = ""
        for attempt in range(1, self.attempts + 1):
            try:
                resp = self._session.post(self.api_url, json=payload, timeout=self.timeout)
            except requests.RequestException as exc:
                last_error = type(exc).__name__
                logger.warning("Email send attempt %d/%d failed: %s", attempt, self.attempts, last_error)
            else:
                if resp.status_code < 400:
                    return _message_id(resp)
                last_error = f"HTTP {resp.status_code}"
                if resp.status_code != 429 and resp.status_code < 500:
                    # Permanent rejection (bad key, bad address) -- retrying cannot help.
                    raise EmailDeliveryError(f"Email API rejected message: {last_error}")
                logger.warning("Email send attempt %d/%d failed: %s", attempt, self.attempts, last_error)
            if attempt < self.attempts and self.backoff_seconds > 0:
                self._sleep(self.backoff_seconds)
        raise EmailDeliveryError(f"Email delivery failed after {self.attempts} attempts: {last_error}")

    def close(self) -> None:
        self._session.close()


class LogEmailSender:
    """Writes messages to the log instead of sending them. DEBUG only."""

    def __init__(self) -> None:
        self.sent = 0

    def send(self, to_address: str, subject: str, html_body: str) -> str:
        self.sent += 1
        logger.info("DEBUG mail to=%s subject=%r\n%s", to_address, subject, html_body)
        return f"log-{self.sent}"

    def close(self) -> None:
        pass


def build_email_sender(settings: Settings) -> HttpEmailSender | LogEmailSender:
    """Pick the sender for this process from settings."""
    if settings.email_api_key:
        return HttpEmailSender(
            api_url=settings.email_api_url,
            api_key=settings.email_api_key,
            sender=settings.email_from,
            timeout=settings.email_timeout_seconds,
            attempts=settings.email_send_attempts,
            backoff_seconds=settings.email_retry_backoff_seconds,
        )
    if not settings.debug:
        raise RuntimeError("EMAIL_API_KEY is required outside DEBUG mode")
    logger.warning("EMAIL_API_KEY not set -- emails will be written to the log (DEBUG mode)")
    return LogEmailSender()


def _message_id(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        return str(body.get("id", ""))
    return ""
