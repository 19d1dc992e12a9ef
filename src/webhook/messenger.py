"""Facebook Messenger webhook payload handling.

Handles the Meta verification challenge (GET) and extracts messaging
events from page webhook deliveries (POST).
"""

from __future__ import annotations

import hmac
from typing import Any

from src.webhook.models import ImageAttachment, MessagingEvent, WebhookResponse

PAGE_OBJECT = "page"


class MessengerWebhook:
    """Protocol-level handling of Messenger page webhooks."""

    def __init__(self, verify_token: str) -> None:
        self._verify_token = verify_token

    def handle_verification(self, params: dict[str, str]) -> WebhookResponse:
        """Answer the Meta subscription handshake.

        Echoes ``hub.challenge`` when mode is ``subscribe`` and the verify
        token matches; any mismatch is 403.
        """
        mode = params.get("hub.mode")
        token = params.get("hub.verify_token", "")
        if mode == "subscribe" and self._verify_token and hmac.compare_digest(
            token.encode(), self._verify_token.encode(),
        ):
            return WebhookResponse(text=params.get("hub.challenge", ""), status_code=200)
        return WebhookResponse(text="Forbidden", status_code=403)

    @staticmethod
    def is_page_payload(payload: dict[str, Any]) -> bool:
        return payload.get("object") == PAGE_OBJECT

    def extract_events(self, payload: dict[str, Any]) -> list[MessagingEvent]:
        """Flatten ``entry[].messaging[]`` into MessagingEvents.

        Malformed entries are skipped rather than failing the whole
        delivery. Non-message events (deliveries, reads, postbacks) come
        back with no text and no attachments.
        """
        events: list[MessagingEvent] = []
        for entry in _as_list(payload.get("entry")):
            if not isinstance(entry, dict):
                continue
            for item in _as_list(entry.get("messaging")):
                if isinstance(item, dict):
                    events.append(_parse_event(item))
        return events


def _as_list(value: object) -> list[Any]:
    return value if isinstance(value, list) else []


def _parse_event(item: dict[str, Any]) -> MessagingEvent:
    sender = item.get("sender")
    sender_id = sender.get("id") if isinstance(sender, dict) else None

    message = item.get("message")
    if not isinstance(message, dict):
        return MessagingEvent(sender_id=_as_str(sender_id))

    text = message.get("text")
    return MessagingEvent(
        sender_id=_as_str(sender_id),
        message_id=_as_str(message.get("mid")),
        text=text if isinstance(text, str) else None,
        image_attachments=_parse_images(message.get("attachments")),
        is_echo=message.get("is_echo") is True,
    )


def _parse_images(attachments: object) -> list[ImageAttachment]:
    images: list[ImageAttachment] = []
    for attachment in _as_list(attachments):
        if not isinstance(attachment, dict) or attachment.get("type") != "image":
            continue
        payload = attachment.get("payload")
        url = payload.get("url") if isinstance(payload, dict) else None
        if isinstance(url, str) and url:
            images.append(ImageAttachment(url=url))
    return images


def _as_str(value: object) -> str | None:
    # Sender ids may arrive as numbers from some test tools.
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return str(value) or None
    return None
