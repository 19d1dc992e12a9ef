"""Shared Pydantic data models for the Messenger catalog bot."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class AuditEventType(str, Enum):
    SIGNATURE_FAILURE = "signature_failure"
    DUPLICATE_EVENT = "duplicate_event"
    THROTTLED = "throttled"
    DISPATCH_FAILURE = "dispatch_failure"
    REPLY_SENT = "reply_sent"


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Catalog Models ---


class Product(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str
    sku: str | None = None
    price: float | None = None
    stock: int | None = None
    description: str | None = None
    image_url: str | None = None
    category_id: str | None = None
    tenant_id: str | None = None


class SearchMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    product: Product
    similarity: float


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    sender_id: str | None = None
    action: str
    result: str  # "success" | "failure" | "dropped"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
