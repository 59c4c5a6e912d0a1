"""Transactional email delivery through the Resend REST API."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


class EmailError(Exception):
    """Email could not be handed to the delivery service."""


class EmailClient:
    def __init__(self, api_key: str, sender: str, timeout: float = 15.0) -> None:
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def send(self, to: str, subject: str, html: str) -> str:
        """Send one email and return the provider's message id."""
        if not self._api_key:
            raise EmailError("RESEND_API_KEY is not set")

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.post(
                    RESEND_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={"from": self._sender, "to": [to], "subject": subject, "html": html},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise EmailError(
                    f"Resend rejected email: {e.response.status_code} - {e.response.text[:200]}"
                ) from e
            except httpx.RequestError as e:
                raise EmailError(f"Resend unreachable: {type(e).__name__}") from e

        message_id = response.json().get("id")
        if not message_id:
            raise EmailError("Resend response carried no message id")
        logger.info(f"Email sent to {to}: {message_id}")
        return message_id
