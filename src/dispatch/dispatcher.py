"""Turns one accepted messaging event into a reply.

Image messages go to catalog search, text messages go to the completion
backend. Failures stay inside the event: they are logged and audited but
never raised to the ingress pipeline.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from src.dispatch.formatting import SEARCH_APOLOGY_MESSAGE, format_search_results
from src.models import AuditEvent, AuditEventType, RiskLevel, SearchMatch
from src.webhook.models import MessagingEvent

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


class TextCompletion(Protocol):
    async def generate(self, prompt_text: str) -> str: ...


class CatalogSearch(Protocol):
    async def search(
        self, image_url: str, limit: int = 5, threshold: float = 0.5,
    ) -> list[SearchMatch]: ...


class MessageSender(Protocol):
    async def send(self, page_access_token: str, recipient_id: str, text: str) -> None: ...


class ReplyDispatcher:
    """Generates and delivers the reply for a single messaging event."""

    def __init__(
        self,
        page_access_token: str,
        sender: MessageSender,
        completion: TextCompletion | None = None,
        catalog_search: CatalogSearch | None = None,
        audit_logger: AuditLogger | None = None,
        max_message_chars: int = 800,
        search_limit: int = 5,
        search_threshold: float = 0.5,
    ) -> None:
        self._page_access_token = page_access_token
        self._sender = sender
        self._completion = completion
        self._search = catalog_search
        self._audit = audit_logger
        self._max_message_chars = max_message_chars
        self._search_limit = search_limit
        self._search_threshold = search_threshold

    async def dispatch(self, event: MessagingEvent) -> None:
        """Reply to event. Never raises for collaborator failures."""
        if not event.sender_id:
            return
        if event.image_attachments:
            # Images take precedence; any accompanying text is ignored.
            await self._reply_to_image(event.sender_id, event.image_attachments[0].url)
            return
        text = (event.text or "").strip()
        if text:
            await self._reply_to_text(event.sender_id, text[:self._max_message_chars])

    async def _reply_to_image(self, sender_id: str, image_url: str) -> None:
        if self._search is None:
            logger.info("Catalog search not configured; ignoring image from %s", sender_id)
            return
        try:
            matches = await self._search.search(
                image_url, limit=self._search_limit, threshold=self._search_threshold,
            )
            await self._sender.send(
                self._page_access_token, sender_id, format_search_results(matches),
            )
        except Exception as exc:  # isolate failures to this event
            self._record_failure(sender_id, "image_search", exc)
            await self._send_apology(sender_id)
            return
        self._record_sent(sender_id, "image_search", matches=len(matches))

    async def _reply_to_text(self, sender_id: str, text: str) -> None:
        if self._completion is None:
            logger.info("Completion backend not configured; ignoring text from %s", sender_id)
            return
        try:
            reply = await self._completion.generate(text)
            await self._sender.send(self._page_access_token, sender_id, reply)
        except Exception as exc:  # isolate failures to this event
            self._record_failure(sender_id, "text_reply", exc)
            return
        self._record_sent(sender_id, "text_reply")

    async def _send_apology(self, sender_id: str) -> None:
        try:
            await self._sender.send(self._page_access_token, sender_id, SEARCH_APOLOGY_MESSAGE)
        except Exception:
            logger.exception("Failed to send apology to %s", sender_id)

    def _record_failure(self, sender_id: str, action: str, exc: BaseException) -> None:
        logger.error("Failed to handle %s for %s: %s", action, sender_id, exc, exc_info=exc)
        self._write_audit(AuditEvent(
            event_type=AuditEventType.DISPATCH_FAILURE,
            sender_id=sender_id,
            action=action,
            result="failure",
            risk_level=RiskLevel.MEDIUM,
            details={
                "error": str(exc),
                "collaborator": getattr(exc, "collaborator", None),
            },
        ))

    def _record_sent(self, sender_id: str, action: str, **details: object) -> None:
        self._write_audit(AuditEvent(
            event_type=AuditEventType.REPLY_SENT,
            sender_id=sender_id,
            action=action,
            result="success",
            risk_level=RiskLevel.INFO,
            details=details or None,
        ))

    def _write_audit(self, event: AuditEvent) -> None:
        if not self._audit:
            return
        try:
            self._audit.log(event)
        except OSError:
            logger.exception("Failed to write %s audit event", event.event_type.value)
