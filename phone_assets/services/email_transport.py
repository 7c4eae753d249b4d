"""Outbound email transports.

Dispatch code only sees the EmailTransport protocol. Production uses the
Resend REST API; without an API key messages are logged instead of sent.
"""

from __future__ import annotations

import html as html_module
import logging
import re
from dataclasses import dataclass
from typing import Protocol

import httpx

from phone_assets.core.config import settings
from phone_assets.services.http_service import RETRYABLE_STATUSES, request_with_retries
from phone_assets.utils.masking import mask_email

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0


@dataclass(frozen=True)
class SendResult:
    ok: bool
    error: str | None = None
    message_id: str | None = None


class EmailTransport(Protocol):
    async def send(
        self,
        to_email: str,
        subject: str,
        html: str,
        idempotency_key: str | None = None,
    ) -> SendResult: ...


def html_to_text(content: str) -> str:
    """Plain-text alternative for the HTML body."""
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", content, flags=re.DOTALL | re.I)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return html_module.unescape(text)


class ResendTransport:
    """Send through the Resend API with retries and an idempotency key."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        from_name: str | None = None,
        timeout: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.from_address = f"{from_name} <{from_email}>" if from_name else from_email
        self.timeout = timeout
        self._client = client

    async def send(
        self,
        to_email: str,
        subject: str,
        html: str,
        idempotency_key: str | None = None,
    ) -> SendResult:
        payload: dict[str, object] = {
            "from": self.from_address,
            "to": [to_email],
            "subject": subject,
            "html": html,
        }
        text = html_to_text(html)
        if text:
            payload["text"] = text

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            if self._client is not None:
                response = await self._post(self._client, headers, payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, headers, payload)
        except httpx.TimeoutException:
            logger.warning("Resend timeout for %s", mask_email(to_email))
            return SendResult(ok=False, error="Connection timeout")
        except httpx.HTTPError as e:
            logger.warning("Resend connection error for %s: %s", mask_email(to_email), e.__class__.__name__)
            return SendResult(ok=False, error=f"Connection error: {e.__class__.__name__}")

        if 200 <= response.status_code < 300:
            message_id = _response_field(response, "id")
            return SendResult(ok=True, message_id=message_id)

        # Idempotency conflict: this message was already accepted
        if response.status_code == 409:
            logger.info("Email already sent (409) to %s", mask_email(to_email))
            return SendResult(ok=True, message_id=_response_field(response, "id"))

        detail = _response_field(response, "message") or _response_field(response, "error")
        error = f"Resend API error: {response.status_code}"
        if detail:
            error = f"{error} ({detail})"
        logger.warning("Resend error for %s: %s", mask_email(to_email), error)
        return SendResult(ok=False, error=error)

    async def _post(
        self, client: httpx.AsyncClient, headers: dict[str, str], payload: dict[str, object]
    ) -> httpx.Response:
        async def request_fn() -> httpx.Response:
            return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

        return await request_with_retries(
            request_fn,
            max_attempts=RESEND_MAX_ATTEMPTS,
            base_delay=RESEND_RETRY_BASE_DELAY,
            max_delay=RESEND_RETRY_MAX_DELAY,
            retry_statuses=RETRYABLE_STATUSES,
        )


def _response_field(response: httpx.Response, key: str) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class LoggingTransport:
    """Dry-run transport: logs the message and reports success."""

    async def send(
        self,
        to_email: str,
        subject: str,
        html: str,
        idempotency_key: str | None = None,
    ) -> SendResult:
        logger.info("[dry-run] email to=%s subject=%r", mask_email(to_email), subject)
        return SendResult(ok=True, message_id=None)


def get_email_transport() -> EmailTransport:
    if settings.email_dry_run:
        return LoggingTransport()
    return ResendTransport(
        api_key=settings.RESEND_API_KEY,
        from_email=settings.EMAIL_FROM,
        from_name=settings.EMAIL_FROM_NAME,
        timeout=settings.EMAIL_SEND_TIMEOUT_SECONDS,
    )
