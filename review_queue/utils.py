"""
Request signing helpers for the queue API.
"""

import hmac
import hashlib
import logging

logger = logging.getLogger(__name__)


def sign_body(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of `body` keyed with `secret`."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_hmac_signature(body: bytes, signature: str, secret: str) -> bool:
    """
    Verify HMAC-SHA256 signature.

    Args:
        body: Raw request body bytes
        signature: Hex-encoded signature from X-Signature header
        secret: WEBHOOK_SECRET

    Returns:
        True if signature is valid, False otherwise (always False when no
        secret is configured)
    """
    if not secret:
        logger.error("Signature check requested but WEBHOOK_SECRET is empty")
        return False

    logger.debug(f"Body length: {len(body)} bytes, signature: {signature[:8]}...")

    # Constant-time comparison
    is_valid = hmac.compare_digest(sign_body(body, secret), signature)
    logger.info(f"HMAC signature verification: {'valid' if is_valid else 'invalid'}")

    return is_valid
