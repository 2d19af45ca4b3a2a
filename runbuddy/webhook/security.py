import base64
import hashlib
import hmac


def validate_signature(payload: bytes, signature_header: str, channel_secret: str) -> bool:
    """Validate the X-Line-Signature header against the raw request body."""
    if not channel_secret or not signature_header:
        return False
    digest = hmac.new(channel_secret.encode(), payload, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode()
    return hmac.compare_digest(expected, signature_header)
