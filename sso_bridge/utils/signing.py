import hashlib
import hmac
import re

_HEX_DIGEST = re.compile(r"[0-9a-fA-F]{64}")


def sign_payload(payload: str, secret: bytes) -> str:
    # Signed over the base64 text itself, not the decoded query string
    return hmac.new(secret, payload.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(payload: str, signature: str, secret: bytes) -> bool:
    """Check ``signature`` against ``payload`` in constant time.

    Anything other than a 64 character hex string is simply a mismatch, so
    callers only have one failure path to handle.
    """
    if not isinstance(signature, str) or not _HEX_DIGEST.fullmatch(signature):
        return False

    expected = hmac.new(secret, payload.encode("utf-8"), hashlib.sha256).digest()
    return hmac.compare_digest(expected, bytes.fromhex(signature))
