"""
Outbound email and SMS adapters.

Resend and Twilio are plain REST APIs, called with httpx. When credentials
are not configured the log-only senders are used, so local runs never try
to reach the network.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from maintdesk.core.config import Settings

log = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class DeliveryError(Exception):
    """An outbound provider rejected or failed a message."""


class EmailSender(Protocol):
    async def send(self, *, to: str, subject: str, html: str) -> None: ...


class SmsSender(Protocol):
    async def send(self, *, to: str, body: str) -> None: ...


class ResendEmailSender:
    def __init__(self, api_key: str, from_address: str, timeout: float = 10.0) -> None:
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout

    async def send(self, *, to: str, subject: str, html: str) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                resp = await client.post(
                    RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"from": self.from_address, "to": [to], "subject": subject, "html": html},
                )
            except httpx.HTTPError as exc:
                raise DeliveryError(f"email transport error: {exc}") from exc

        if resp.status_code >= 400:
            raise DeliveryError(f"email rejected ({resp.status_code}): {resp.text[:200]}")


class TwilioSmsSender:
    def __init__(self, account_sid: str, auth_token: str, from_number: str, timeout: float = 10.0) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    async def send(self, *, to: str, body: str) -> None:
        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                resp = await client.post(
                    url,
                    auth=(self.account_sid, self.auth_token),
                    data={"To": to, "From": self.from_number, "Body": body},
                )
            except httpx.HTTPError as exc:
                raise DeliveryError(f"sms transport error: {exc}") from exc

        if resp.status_code >= 400:
            raise DeliveryError(f"sms rejected ({resp.status_code}): {resp.text[:200]}")


class LogEmailSender:
    async def send(self, *, to: str, subject: str, html: str) -> None:
        log.info("email not sent (no provider configured): %s -> %s", subject, to, extra={"channel": "email"})


class LogSmsSender:
    async def send(self, *, to: str, body: str) -> None:
        log.info("sms not sent (no provider configured) -> %s", to, extra={"channel": "sms"})


def build_email_sender(settings: Settings) -> EmailSender:
    if settings.email_enabled:
        return ResendEmailSender(
            settings.RESEND_API_KEY,
            settings.EMAIL_FROM,
            timeout=settings.OUTBOUND_TIMEOUT_SECONDS,
        )
    return LogEmailSender()


def build_sms_sender(settings: Settings) -> SmsSender:
    if settings.sms_enabled:
        return TwilioSmsSender(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_FROM_NUMBER,
            timeout=settings.OUTBOUND_TIMEOUT_SECONDS,
        )
    return LogSmsSender()


def short(text: Optional[str], limit: int = 140) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[: limit - 3] + "..."
