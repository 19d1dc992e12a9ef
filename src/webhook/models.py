"""Data models for the Messenger webhook pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ImageAttachment:
    url: str


@dataclass
class MessagingEvent:
    """One entry of ``entry[].messaging[]`` in a page webhook delivery."""

    sender_id: str | None
    message_id: str | None = None
    text: str | None = None
    image_attachments: list[ImageAttachment] = field(default_factory=list)
    is_echo: bool = False

    @property
    def has_message(self) -> bool:
        return bool(self.image_attachments) or bool(self.text and self.text.strip())


@dataclass
class WebhookResponse:
    """Response to return to the Messenger platform."""

    text: str
    status_code: int
