"""
Razorpay payment signature verification.
"""

import hashlib
import hmac
from typing import Any


def compute_payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of "<order_id>|<payment_id>" keyed with the gateway secret."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: Any, payment_id: Any, signature: Any, secret: Any) -> bool:
    """
    Check that a payment confirmation was signed by the gateway.

    Missing or malformed input is an invalid signature, never an error.
    """
    if not all(isinstance(v, str) and v for v in (order_id, payment_id, signature, secret)):
        return False

    expected = compute_payment_signature(order_id, payment_id, secret)
    try:
        return hmac.compare_digest(expected, signature)
    except TypeError:
        # compare_digest rejects non-ASCII str input
        return False
