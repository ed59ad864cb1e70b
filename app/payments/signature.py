import hashlib
import hmac

from app.logging.logger import Log


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA512 of the raw, unparsed request body."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_webhook_signature(raw_body: bytes, signature_header: str | None, secret: str) -> bool:
    """Check a webhook signature in constant time.

    With no secret configured the payload is accepted and the degraded trust
    mode is logged; whether that is acceptable is decided by the caller.
    """
    if not secret:
        Log.warning("Webhook secret not configured; signature NOT verified (degraded trust)")
        return True
    if not signature_header:
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected, signature_header.strip().lower())
