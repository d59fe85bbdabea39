"""
Webhook signature verification.
"""
import base64
import hashlib
import hmac
from typing import Optional

from picksmart.errors import SignatureError

SIGNATURE_HEADER = "x-shopify-hmac-sha256"


def compute_signature(body: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of the raw body, as the platform sends it."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(body: bytes, signature: Optional[str], secret: str):
    """
    Raises:
        SignatureError: If the secret or header is missing or the digest does not match.
    """
    if not secret:
        raise SignatureError("Webhook secret is not configured")
    if not signature:
        raise SignatureError(f"Missing {SIGNATURE_HEADER} header")

    expected = compute_signature(body, secret)
    if not hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8")):
        raise SignatureError("Webhook signature mismatch")
