"""
Webhook Security Module

Signature verification for payment provider webhooks:
- Constant-time signature comparison
- Timestamp validation against replays (Standard Webhooks)
- Signatures computed over the raw request body
"""

import base64
import binascii
import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import Request

from .shared.exceptions import Unauthorized

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def compute_hmac_sha512(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA512 signature of payload (Paystack format)"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha512).hexdigest()


def extract_svix_signing_key(secret: str) -> bytes:
    """
    Extract Standard Webhooks signing key bytes from a whsec_ style secret.

    - Incoming secret typically looks like: "whsec_BASE64KEY"
    - The HMAC key is the BASE64-decoded bytes of the part after "whsec_"
    - If not prefixed, attempt base64 decode; if that fails, fall back to UTF-8 bytes
    """
    try:
        if secret.startswith("whsec_"):
            return base64.b64decode(secret[6:], validate=True)
        return base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError):
        return secret.encode("utf-8")


def compute_standard_webhook_signature(
    secret: str, webhook_id: str, timestamp: str, payload: bytes
) -> str:
    """Base64 HMAC-SHA256 over ``id.timestamp.payload``"""
    signed_message = b".".join([webhook_id.encode("utf-8"), timestamp.encode("utf-8"), payload])
    digest = hmac.new(extract_svix_signing_key(secret), signed_message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_timestamp(
    timestamp: Optional[str],
    max_age: int = MAX_WEBHOOK_AGE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """
    Verify webhook timestamp is within acceptable range.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age in seconds

    Returns:
        True if timestamp is valid, False otherwise
    """
    if not timestamp:
        return False

    try:
        webhook_time = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False

    current_time = int(now if now is not None else time.time())
    age = abs(current_time - webhook_time)
    if age > max_age:
        logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False
    return True


def _fail(message: str, raise_on_failure: bool) -> bool:
    logger.error(f"❌ {message}")
    if raise_on_failure:
        raise Unauthorized("Invalid webhook signature.")
    return False


async def verify_paystack_webhook(
    request: Request, secret: Optional[str], raise_on_failure: bool = True
) -> tuple[bool, bytes]:
    """
    Verify a Paystack webhook.

    Paystack sends the hex HMAC-SHA512 of the raw body, keyed with the secret
    key, in the ``x-paystack-signature`` header.

    Returns:
        Tuple of (is_valid, raw_body)
    """
    raw_body = await request.body()
    signature = request.headers.get("x-paystack-signature", "")

    logger.info(f"📥 Paystack webhook received ({len(raw_body)} bytes)")

    if not secret:
        return _fail("Paystack webhook secret not configured", raise_on_failure), raw_body
    if not signature:
        return _fail("Missing x-paystack-signature header", raise_on_failure), raw_body

    expected = compute_hmac_sha512(secret, raw_body)
    if not constant_time_compare(expected, signature.strip().lower()):
        return _fail("Paystack webhook signature mismatch", raise_on_failure), raw_body

    logger.info("✅ Paystack webhook signature verified")
    return True, raw_body


async def verify_dodo_webhook(
    request: Request, secret: Optional[str], raise_on_failure: bool = True
) -> tuple[bool, bytes]:
    """
    Verify a Dodo Payments webhook using the Standard Webhooks specification.

    The signed message is ``webhook-id.webhook-timestamp.payload`` and the
    ``webhook-signature`` header carries one or more space separated
    ``v1,<base64>`` entries.

    Returns:
        Tuple of (is_valid, raw_body)
    """
    # Get raw body BEFORE any parsing
    raw_body = await request.body()

    signature_header = request.headers.get("webhook-signature", "")
    timestamp = request.headers.get("webhook-timestamp", "")
    webhook_id = request.headers.get("webhook-id", "")

    logger.info(f"📥 Dodo webhook received: id={webhook_id or 'unknown'}")

    if not secret:
        return _fail("Dodo webhook secret not configured", raise_on_failure), raw_body
    if not signature_header or not webhook_id:
        return _fail("Missing webhook-signature or webhook-id header", raise_on_failure), raw_body
    if not verify_timestamp(timestamp):
        return _fail("Webhook timestamp expired or invalid", raise_on_failure), raw_body

    expected = compute_standard_webhook_signature(secret, webhook_id, timestamp, raw_body)
    for entry in signature_header.split():
        version, _, received = entry.partition(",")
        if version == "v1" and constant_time_compare(expected, received):
            logger.info(f"✅ Dodo webhook signature verified: {webhook_id}")
            return True, raw_body

    return _fail(f"Dodo webhook signature mismatch for {webhook_id}", raise_on_failure), raw_body
