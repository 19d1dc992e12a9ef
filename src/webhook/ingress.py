"""Webhook ingress pipeline.

Pipeline stages for a POST delivery:
1. Signature check over the raw body
2. JSON parse and ``object == "page"`` check
3. Per event: dedup, payload check, per-sender rate limit
4. Fan-out of accepted events to the reply dispatcher

Dispatch is fire-and-forget: the platform is acknowledged once every
accepted event has a running task, without waiting for replies.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from src.errors import (
    AuthenticationError,
    DuplicateEventError,
    MalformedPayloadError,
    ThrottledError,
)
from src.models import AuditEvent, AuditEventType, RiskLevel
from src.webhook.dedup import EventDeduplicator
from src.webhook.models import MessagingEvent, WebhookResponse
from src.webhook.signature import verify_signature

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.dispatch.dispatcher import ReplyDispatcher
    from src.webhook.messenger import MessengerWebhook
    from src.webhook.rate_limiter import SenderRateLimiter

logger = logging.getLogger(__name__)


class WebhookIngress:
    """Validates Messenger deliveries and starts one reply task per event."""

    def __init__(
        self,
        webhook: MessengerWebhook,
        app_secret: str,
        rate_limiter: SenderRateLimiter,
        dispatcher: ReplyDispatcher,
        audit_logger: AuditLogger | None = None,
        max_concurrent_dispatches: int = 64,
    ) -> None:
        self._webhook = webhook
        self._app_secret = app_secret
        self._rate_limiter = rate_limiter
        self._dispatcher = dispatcher
        self._audit = audit_logger
        self._slots = asyncio.Semaphore(max_concurrent_dispatches)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def handle_post(
        self, raw_body: bytes, signature_header: str | None,
    ) -> WebhookResponse:
        """Process one signed delivery and return the acknowledgment."""
        try:
            payload = self._authenticate_and_parse(raw_body, signature_header)
        except AuthenticationError:
            self._log_audit(
                AuditEventType.SIGNATURE_FAILURE, None, "verify_signature",
                RiskLevel.HIGH, result="failure",
            )
            return WebhookResponse(text="Unauthorized", status_code=401)
        except MalformedPayloadError as exc:
            return WebhookResponse(text=str(exc), status_code=exc.status_code)

        started = self._dispatch_batch(self._webhook.extract_events(payload))
        logger.debug("Started %d reply task(s)", started)
        return WebhookResponse(text="OK", status_code=200)

    def _authenticate_and_parse(
        self, raw_body: bytes, signature_header: str | None,
    ) -> dict[str, Any]:
        if not verify_signature(raw_body, signature_header, self._app_secret):
            raise AuthenticationError("Invalid webhook signature")
        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedPayloadError("Invalid JSON", status_code=400) from exc
        if not isinstance(payload, dict):
            raise MalformedPayloadError("Invalid JSON", status_code=400)
        if not self._webhook.is_page_payload(payload):
            raise MalformedPayloadError("Not Found", status_code=404)
        return payload

    def _dispatch_batch(self, events: list[MessagingEvent]) -> int:
        dedup = EventDeduplicator()
        started = 0
        for event in events:
            try:
                admitted = self._admit(event, dedup)
            except DuplicateEventError as exc:
                self._log_audit(
                    AuditEventType.DUPLICATE_EVENT, event.sender_id, "dedup",
                    RiskLevel.LOW, details={"message_id": exc.message_id},
                )
                continue
            except ThrottledError:
                self._log_audit(
                    AuditEventType.THROTTLED, event.sender_id, "rate_limit",
                    RiskLevel.MEDIUM,
                )
                continue
            if admitted:
                self._spawn(event)
                started += 1
        return started

    def _admit(self, event: MessagingEvent, dedup: EventDeduplicator) -> bool:
        """Return True if the event should get a reply.

        Events without a sender or message payload (and page echoes) are
        skipped before they count against the sender's rate limit.
        """
        if not dedup.accept(event.message_id):
            raise DuplicateEventError(event.message_id or "")
        if event.sender_id is None or event.is_echo or not event.has_message:
            return False
        if not self._rate_limiter.allow(event.sender_id):
            raise ThrottledError(event.sender_id)
        return True

    def _spawn(self, event: MessagingEvent) -> None:
        task = asyncio.create_task(self._run_dispatch(event))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    async def _run_dispatch(self, event: MessagingEvent) -> None:
        async with self._slots:
            await self._dispatcher.dispatch(event)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Reply task failed", exc_info=exc)

    async def drain(self) -> None:
        """Wait for every in-flight reply task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _log_audit(
        self,
        event_type: AuditEventType,
        sender_id: str | None,
        action: str,
        risk_level: RiskLevel,
        result: str = "dropped",
        details: dict[str, object] | None = None,
    ) -> None:
        if not self._audit:
            return
        try:
            self._audit.log(AuditEvent(
                event_type=event_type,
                sender_id=sender_id,
                action=action,
                result=result,
                risk_level=risk_level,
                details=details,
            ))
        except OSError:
            logger.exception("Failed to write %s audit event", event_type.value)
