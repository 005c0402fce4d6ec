"""Security primitives shared by the ledger, token service and passkey engine."""

import base64
import hashlib
import hmac
import secrets


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token.

    Args:
        length: Number of random bytes to generate (default 32)

    Returns:
        URL-safe base64 encoded token without padding
    """
    return b64url_encode(secrets.token_bytes(length))


def b64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded URL-safe base64."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(data: str) -> bytes:
    """Decode URL-safe base64, tolerating missing padding."""
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def constant_time_equals(left: str | bytes | None, right: str | bytes | None) -> bool:
    """Compare two secrets without leaking where they differ."""
    if left is None or right is None:
        return False
    if isinstance(left, str):
        left = left.encode("utf-8")
    if isinstance(right, str):
        right = right.encode("utf-8")
    return hmac.compare_digest(left, right)


def hash_email(email: str) -> str:
    """Stable SHA-256 digest of a normalised email address."""
    return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()
