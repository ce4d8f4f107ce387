"""Razorpay signature verification — HMAC-SHA256 with constant-time compare.

Security contract:
- The digest is computed over the exact raw bytes received; the body is
  never parsed or re-serialized before verification.
- Comparison visits every byte of equal-length inputs, so timing does not
  reveal where the first mismatch is.
- A missing signature or empty secret always fails (fail-closed).
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Sequence

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-razorpay-signature"


def compute_signature(secret: str, body: bytes) -> str:
    """Return the lowercase hex HMAC-SHA256 of ``body`` keyed by ``secret``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def constant_time_equals(a: Sequence[int], b: Sequence[int]) -> bool:
    """Compare two byte sequences without short-circuiting on a mismatch.

    Lengths are checked first; then every byte pair is XORed and the results
    OR-accumulated, so the loop always runs the full length.
    """
    if len(a) != len(b):
        return False

    result = 0
    for x, y in zip(a, b):
        result |= x ^ y
    return result == 0


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Verify the ``X-Razorpay-Signature`` header against the raw body.

    Args:
        body: Raw request body bytes
        signature: Value of the signature header (hex digest), may be None
        secret: Webhook secret configured in the Razorpay dashboard

    Returns:
        True if the signature is authentic
    """
    if not secret:
        logger.warning("Razorpay webhook secret not configured — rejecting webhook")
        return False
    if not signature:
        return False

    expected = compute_signature(secret, body).encode("ascii")
    provided = signature.encode("utf-8")
    return constant_time_equals(expected, provided)


def verify_payment_signature(
    entity_id: str, payment_id: str, signature: str | None, key_secret: str
) -> bool:
    """Verify a checkout callback signature.

    Razorpay signs ``"{order_id}|{payment_id}"`` for one-time orders and
    ``"{subscription_id}|{payment_id}"`` for subscriptions, using the API key
    secret rather than the webhook secret.
    """
    if not key_secret or not signature or not entity_id or not payment_id:
        return False

    message = f"{entity_id}|{payment_id}".encode("utf-8")
    expected = compute_signature(key_secret, message).encode("ascii")
    return constant_time_equals(expected, signature.encode("utf-8"))
