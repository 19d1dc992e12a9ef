"""Messenger webhook signature verification (x-hub-signature-256)."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADER = "x-hub-signature-256"
_PREFIX = "sha256="


def compute_signature(raw_body: bytes, app_secret: str) -> str:
    """Return the header value Meta would send for this body."""
    digest = hmac.new(app_secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return _PREFIX + digest


def verify_signature(
    raw_body: bytes,
    signature_header: str | None,
    app_secret: str,
) -> bool:
    """Verify the HMAC-SHA256 signature of a raw webhook body.

    The digest is computed over the exact bytes received, never over a
    re-serialized payload. Comparison is constant-time via
    hmac.compare_digest; a length mismatch is simply a non-match.
    """
    if not signature_header or not signature_header.startswith(_PREFIX):
        return False
    try:
        received = signature_header.encode("ascii")
    except UnicodeEncodeError:
        return False
    expected = compute_signature(raw_body, app_secret).encode("ascii")
    return hmac.compare_digest(expected, received)
