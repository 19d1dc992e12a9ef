"""Chat-completion client for free-text replies.

Talks to an OpenAI-compatible ``/v1/chat/completions`` endpoint over httpx.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from src.errors import CollaboratorFailure

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a friendly, concise AI assistant chatting on Facebook Messenger. "
    "Answer helpfully and briefly."
)
FALLBACK_REPLY = "I'm here and ready to help! Could you rephrase your question?"
_ELLIPSIS = "…"


def clamp_text(text: str, max_chars: int = 800) -> str:
    """Trim and cut text to max_chars, marking the cut with an ellipsis."""
    trimmed = text.strip()
    if len(trimmed) <= max_chars:
        return trimmed
    return trimmed[:max_chars] + _ELLIPSIS


class CompletionClient:
    """Generates short assistant replies to user messages."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com",
        model: str = "gpt-4o-mini",
        max_input_chars: int = 800,
        max_output_chars: int = 800,
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._model = model
        self._max_input_chars = max_input_chars
        self._max_output_chars = max_output_chars
        self._timeout = timeout

    def build_request(self, prompt_text: str) -> dict[str, Any]:
        return {
            "model": self._model,
            "temperature": 0.3,
            "max_tokens": 300,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": clamp_text(prompt_text, self._max_input_chars)},
            ],
        }

    async def generate(self, prompt_text: str) -> str:
        """Return a reply for prompt_text, clamped to max_output_chars.

        Raises CollaboratorFailure on transport errors, non-2xx responses
        and unreadable bodies.
        """
        url = f"{self._base_url.rstrip('/')}/v1/chat/completions"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    url,
                    json=self.build_request(prompt_text),
                    headers=headers,
                    timeout=self._timeout,
                )
        except httpx.HTTPError as exc:
            raise CollaboratorFailure("completion", repr(exc)) from exc

        if resp.status_code >= 400:
            raise CollaboratorFailure("completion", f"HTTP {resp.status_code}")

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (json.JSONDecodeError, IndexError, KeyError, TypeError) as exc:
            raise CollaboratorFailure("completion", "unexpected response body") from exc

        reply = content.strip() if isinstance(content, str) else ""
        if not reply:
            logger.info("Empty completion; using fallback reply")
            reply = FALLBACK_REPLY
        return clamp_text(reply, self._max_output_chars)
