from __future__ import annotations

import hashlib
import hmac

from paystack_relay.signature import compute_signature, verify_signature

SECRET = "sk_test_signature"


class TestPaystackSignature:
    """HMAC-SHA512 over the raw body, hex-encoded."""

    def test_compute_matches_hmac_sha512(self):
        body = b'{"event":"charge.success"}'
        expected = hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()
        assert compute_signature(SECRET, body) == expected
        assert len(expected) == 128

    def test_valid(self):
        body = b'{"event": "charge.success"}'
        assert verify_signature(SECRET, body, compute_signature(SECRET, body)) is True

    def test_whitespace_change_invalidates(self):
        body = b'{"event": "charge.success"}'
        sig = compute_signature(SECRET, body)
        assert verify_signature(SECRET, b'{"event":"charge.success"}', sig) is False

    def test_wrong_secret(self):
        body = b"{}"
        assert verify_signature(SECRET, body, compute_signature("other", body)) is False

    def test_missing_header(self):
        assert verify_signature(SECRET, b"{}", None) is False
        assert verify_signature(SECRET, b"{}", "") is False

    def test_missing_secret_fails_closed(self):
        body = b"{}"
        assert verify_signature("", body, compute_signature("", body)) is False

    def test_non_ascii_header_is_rejected(self):
        body = b'{"event": "charge.success"}'
        assert verify_signature(SECRET, body, "é" * 128) is False
        assert verify_signature(SECRET, body, compute_signature(SECRET, body)[:-1] + "ÿ") is False
