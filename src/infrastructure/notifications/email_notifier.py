"""Transactional emails for the account lifecycle.

Modes:
    - console: log the email (development, tests)
    - resend: send through the Resend HTTP API

Delivery failures are logged and reported as False. They never undo the
account operation that triggered the email.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime

import httpx

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailNotifier:
    def __init__(
        self,
        mode: str | None = None,
        resend_api_key: str | None = None,
        from_address: str | None = None,
        app_url: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.mode = mode or os.getenv("EMAIL_MODE", "console")
        self.resend_api_key = resend_api_key or os.getenv("RESEND_API_KEY")
        self.from_address = from_address or os.getenv("EMAIL_FROM", "Planora <noreply@getplanora.app>")
        self.app_url = (app_url or os.getenv("APP_URL", "http://localhost:3000")).rstrip("/")
        self.timeout = timeout
        if self.mode == "resend" and not self.resend_api_key:
            logger.warning("EMAIL_MODE=resend but RESEND_API_KEY is not set, falling back to console")
            self.mode = "console"

    def recovery_url(self, token: str) -> str:
        return f"{self.app_url}/cancel-deletion?token={token}"

    def send_deletion_scheduled(self, email: str, token: str, scheduled_purge_at: datetime) -> bool:
        url = self.recovery_url(token)
        purge_day = scheduled_purge_at.date().isoformat()
        subject = "Your Planora account deletion has been scheduled"
        text = (
            "We received a request to delete your Planora account.\n\n"
            f"Your account and all associated data will be permanently deleted on {purge_day}.\n"
            f"If you did not request this, or changed your mind, cancel the deletion here:\n{url}\n"
        )
        html = (
            "<h1>Account deletion scheduled</h1>"
            f"<p>Your account and all associated data will be permanently deleted on {purge_day}.</p>"
            "<p>If you did not request this, or changed your mind, you can cancel the deletion:</p>"
            f'<p><a href="{url}">Cancel account deletion</a></p>'
        )
        return self._send(email, subject, html, text)

    def send_email_change_verification(self, email: str, link: str | None) -> bool:
        if not link:
            # the identity provider mailed the challenge itself
            logger.info("No verification link to deliver for %s", email)
            return True
        subject = "Confirm your new Planora email address"
        text = f"Confirm this address for your Planora account:\n{link}\n"
        html = f'<p>Confirm this address for your Planora account:</p><p><a href="{link}">Confirm email</a></p>'
        return self._send(email, subject, html, text)

    def _send(self, to: str, subject: str, html: str, text: str) -> bool:
        if self.mode == "console":
            logger.info("EMAIL (console mode) to=%s subject=%r\n%s", to, subject, text)
            return True
        if self.mode == "resend":
            return self._send_resend(to, subject, html, text)
        logger.error("Unknown email mode: %s", self.mode)
        return False

    def _send_resend(self, to: str, subject: str, html: str, text: str) -> bool:
        try:
            response = httpx.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.resend_api_key}"},
                json={"from": self.from_address, "to": [to], "subject": subject, "html": html, "text": text},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.error("Failed to send email via Resend to %s: %s", to, exc)
            return False
        if response.status_code >= 400:
            logger.error("Resend API error %s for %s: %s", response.status_code, to, response.text)
            return False
        logger.info("Sent %r to %s via Resend", subject, to)
        return True
