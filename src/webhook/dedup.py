"""Per-delivery duplicate suppression for Messenger message ids."""

from __future__ import annotations


class EventDeduplicator:
    """Tracks message ids seen within one webhook delivery.

    A fresh instance is created per inbound request; nothing is retained
    across deliveries. Events without a message id are always accepted.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def accept(self, message_id: str | None) -> bool:
        if not message_id:
            return True
        if message_id in self._seen:
            return False
        self._seen.add(message_id)
        return True
