"""In-memory fixed window rate limiter keyed by Messenger sender id."""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass
class RateBucket:
    count: int
    reset_at: float


class SenderRateLimiter:
    """Fixed window counter per sender.

    Default: 4 events per 30 seconds per sender. Bursts of up to twice the
    limit are possible across a window boundary. Expired buckets are swept
    once the map grows past ``max_buckets``.

    Not thread-safe: only the event loop thread may call into it.
    """

    def __init__(
        self,
        max_events: int = 4,
        window_seconds: float = 30.0,
        max_buckets: int = 10_000,
    ) -> None:
        self._max_events = max_events
        self._window_seconds = window_seconds
        self._max_buckets = max_buckets
        self._buckets: dict[str, RateBucket] = {}

    def allow(self, sender_id: str, now: float | None = None) -> bool:
        """Count one event for sender_id; return False if over the limit."""
        if now is None:
            now = time.monotonic()

        bucket = self._buckets.get(sender_id)
        # An expired bucket is never incremented; it starts a fresh window.
        if bucket is None or bucket.reset_at <= now:
            if bucket is None and len(self._buckets) >= self._max_buckets:
                self.sweep(now)
            self._buckets[sender_id] = RateBucket(
                count=1, reset_at=now + self._window_seconds,
            )
            return True

        if bucket.count < self._max_events:
            bucket.count += 1
            return True
        return False

    def sweep(self, now: float | None = None) -> int:
        """Drop every bucket whose window has passed. Returns how many were removed."""
        if now is None:
            now = time.monotonic()
        expired = [key for key, b in self._buckets.items() if b.reset_at <= now]
        for key in expired:
            del self._buckets[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._buckets)
