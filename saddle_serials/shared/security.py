import base64
import hashlib
import hmac


def verify_webhook_hmac(body: bytes, hmac_header: str | None, secret: str | None) -> bool:
    """Check ``X-Shopify-Hmac-Sha256``: base64(HMAC-SHA256(raw body, app secret))."""
    if not secret or not hmac_header or not body:
        return False
    computed = base64.b64encode(
        hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    ).decode("utf-8")
    return hmac.compare_digest(computed, hmac_header.strip())
