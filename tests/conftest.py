"""Shared test fixtures for the Messenger catalog bot."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.audit.logger import AuditLogger
from src.config import AppConfig
from src.models import AuditEvent, AuditEventType, Product, RiskLevel, SearchMatch
from src.webhook.signature import compute_signature

APP_SECRET = "test_app_secret"
VERIFY_TOKEN = "test_verify_token"
PAGE_TOKEN = "test_page_token"


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def mock_sender() -> AsyncMock:
    sender = AsyncMock()
    sender.send.return_value = None
    return sender


@pytest.fixture
def mock_completion() -> AsyncMock:
    completion = AsyncMock()
    completion.generate.return_value = "AI reply"
    return completion


@pytest.fixture
def mock_search() -> AsyncMock:
    search = AsyncMock()
    search.search.return_value = [make_search_match()]
    return search


# --- Factory functions for test data ---


def make_config(**kwargs: Any) -> AppConfig:
    """Factory for AppConfig with test secrets."""
    defaults: dict[str, Any] = {
        "page_access_token": PAGE_TOKEN,
        "verify_token": VERIFY_TOKEN,
        "app_secret": APP_SECRET,
    }
    defaults.update(kwargs)
    return AppConfig(**defaults)


def make_audit_event(**kwargs: Any) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "event_type": AuditEventType.THROTTLED,
        "action": "rate_limit",
        "result": "dropped",
        "risk_level": RiskLevel.MEDIUM,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)


def make_search_match(similarity: float = 0.87, **kwargs: Any) -> SearchMatch:
    """Factory for SearchMatch with sensible defaults."""
    product: dict[str, Any] = {
        "id": "prod-1",
        "name": "Blue Mug",
        "sku": "MUG-001",
        "price": 12.5,
        "stock": 3,
        "description": "Ceramic mug",
    }
    product.update(kwargs)
    return SearchMatch(product=Product(**product), similarity=similarity)


def make_event(
    sender_id: str | None = "user-1",
    mid: str | None = "mid.1",
    text: str | None = "hello",
    image_urls: list[str] | None = None,
) -> dict[str, Any]:
    """Build one ``messaging`` item as Messenger delivers it."""
    message: dict[str, Any] = {}
    if mid is not None:
        message["mid"] = mid
    if text is not None:
        message["text"] = text
    if image_urls:
        message["attachments"] = [
            {"type": "image", "payload": {"url": url}} for url in image_urls
        ]
    event: dict[str, Any] = {"message": message}
    if sender_id is not None:
        event["sender"] = {"id": sender_id}
    return event


def make_payload(*events: dict[str, Any], object_type: str = "page") -> dict[str, Any]:
    """Wrap messaging items in a single-entry page delivery."""
    return {
        "object": object_type,
        "entry": [{"id": "PAGE_ID", "time": 1700000000, "messaging": list(events)}],
    }


def sign_payload(payload: dict[str, Any], secret: str = APP_SECRET) -> tuple[bytes, str]:
    """Serialize payload and return (body, x-hub-signature-256 value)."""
    body = json.dumps(payload).encode()
    return body, compute_signature(body, secret)
