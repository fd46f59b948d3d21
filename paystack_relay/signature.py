"""Webhook signature checks.

Paystack signs the raw request body with HMAC-SHA512 using the account's
secret key and sends the hex digest in the ``x-paystack-signature`` header.
The digest must be computed over the bytes exactly as received.
"""

import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


def compute_signature(secret_key: str, raw_body: bytes) -> str:
    return hmac.new(secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_signature(secret_key: str, raw_body: bytes, signature_header: Optional[str]) -> bool:
    """Constant-time comparison of the expected digest with the header value.

    Fails closed when either the secret or the header is missing.
    """
    if not secret_key:
        logger.warning("PAYSTACK_SECRET_KEY not set, rejecting webhook")
        return False
    if not signature_header:
        return False

    expected = compute_signature(secret_key, raw_body).encode("ascii")
    # Header text may hold any latin-1 character; compare as bytes
    received = signature_header.strip().lower().encode("utf-8", "surrogateescape")
    return hmac.compare_digest(expected, received)
