"""Tests for x-hub-signature-256 verification."""

from __future__ import annotations

import hashlib
import hmac as hmac_mod
from unittest.mock import patch

from src.webhook.signature import compute_signature, verify_signature

SECRET = "my_secret"
BODY = b'{"object":"page","entry":[]}'


def _sign_body(app_secret: str, body: bytes) -> str:
    sig = hmac_mod.new(app_secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={sig}"


class TestVerifySignature:
    def test_valid_signature_accepted(self) -> None:
        assert verify_signature(BODY, _sign_body(SECRET, BODY), SECRET) is True

    def test_compute_signature_matches_meta_format(self) -> None:
        assert compute_signature(BODY, SECRET) == _sign_body(SECRET, BODY)

    def test_wrong_secret_rejected(self) -> None:
        assert verify_signature(BODY, _sign_body("other", BODY), SECRET) is False

    def test_missing_header_rejected(self) -> None:
        assert verify_signature(BODY, None, SECRET) is False

    def test_empty_header_rejected(self) -> None:
        assert verify_signature(BODY, "", SECRET) is False

    def test_missing_prefix_rejected(self) -> None:
        digest = _sign_body(SECRET, BODY).removeprefix("sha256=")
        assert verify_signature(BODY, digest, SECRET) is False

    def test_sha1_prefix_rejected(self) -> None:
        digest = _sign_body(SECRET, BODY).removeprefix("sha256=")
        assert verify_signature(BODY, f"sha1={digest}", SECRET) is False

    def test_truncated_digest_rejected(self) -> None:
        assert verify_signature(BODY, _sign_body(SECRET, BODY)[:-1], SECRET) is False

    def test_non_ascii_header_rejected(self) -> None:
        assert verify_signature(BODY, "sha256=é", SECRET) is False

    def test_every_single_byte_mutation_rejected(self) -> None:
        header = _sign_body(SECRET, BODY)
        for i in range(len(BODY)):
            mutated = bytearray(BODY)
            mutated[i] ^= 0x01
            assert verify_signature(bytes(mutated), header, SECRET) is False

    def test_reserialized_body_rejected(self) -> None:
        """Whitespace changes alter the bytes and must invalidate the signature."""
        header = _sign_body(SECRET, BODY)
        assert verify_signature(b'{"object": "page", "entry": []}', header, SECRET) is False

    def test_constant_time_comparison(self) -> None:
        with patch("src.webhook.signature.hmac.compare_digest", return_value=True) as mock_cmp:
            verify_signature(BODY, _sign_body(SECRET, BODY), SECRET)
            mock_cmp.assert_called_once()
