"""Messenger Send API client.

Delivers text replies through the Graph API with an ``appsecret_proof``
and retries transient failures with bounded exponential backoff.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging

import httpx

from src.errors import CollaboratorFailure

logger = logging.getLogger(__name__)

_GRAPH_API_BASE = "https://graph.facebook.com/v18.0"
_MAX_RETRIES = 3
_BACKOFF_SECONDS = (0.25, 0.5, 1.0)  # one entry per retry


def appsecret_proof(page_access_token: str, app_secret: str) -> str:
    """HMAC-SHA256 of the access token keyed by the app secret."""
    return hmac.new(
        app_secret.encode(), page_access_token.encode(), hashlib.sha256,
    ).hexdigest()


class MessengerSendClient:
    """Sends text messages to Messenger users."""

    def __init__(
        self,
        app_secret: str,
        api_base: str = _GRAPH_API_BASE,
        timeout: float = 10.0,
    ) -> None:
        self._app_secret = app_secret
        self._api_base = api_base
        self._timeout = timeout

    async def send(self, page_access_token: str, recipient_id: str, text: str) -> None:
        """Send text to recipient_id.

        Retries on 429, 5xx and transport errors, up to 3 retries with
        0.25s/0.5s/1s backoff. Raises CollaboratorFailure once retries run
        out or on any other 4xx.
        """
        url = f"{self._api_base}/me/messages"
        payload = {
            "recipient": {"id": recipient_id},
            "messaging_type": "RESPONSE",
            "message": {"text": text},
        }
        params = {
            "access_token": page_access_token,
            "appsecret_proof": appsecret_proof(page_access_token, self._app_secret),
        }

        last_error = "no attempt made"
        async with httpx.AsyncClient(verify=True, timeout=self._timeout) as client:
            for attempt in range(_MAX_RETRIES + 1):
                try:
                    resp = await client.post(url, json=payload, params=params)
                except httpx.TransportError as exc:
                    last_error = repr(exc)
                else:
                    if resp.status_code < 400:
                        return
                    last_error = f"HTTP {resp.status_code}"
                    if not self._should_retry(resp.status_code):
                        raise CollaboratorFailure("send_api", last_error)

                if attempt < _MAX_RETRIES:
                    delay = _BACKOFF_SECONDS[attempt]
                    logger.warning(
                        "Send API attempt %d failed (%s); retrying in %.2fs",
                        attempt + 1, last_error, delay,
                    )
                    await asyncio.sleep(delay)

        raise CollaboratorFailure("send_api", last_error)

    @staticmethod
    def _should_retry(status_code: int) -> bool:
        """Only retry on 429 (rate limit) or 5xx (server error)."""
        return status_code == 429 or status_code >= 500
