"""Voucher access tokens: HMAC-SHA256 over `doc_id|email`.

Tokens are never stored; rotating the secret revokes every issued link.
"""

import hashlib
import hmac


def sign(secret: str, doc_id: str, email: str) -> str:
    message = f"{doc_id}|{email}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify(secret: str, doc_id: str, email: str, token: str) -> bool:
    """Constant-time comparison of `token` against the expected signature."""

    expected = sign(secret, doc_id, email)
    return hmac.compare_digest(expected.encode("utf-8"), (token or "").encode("utf-8"))
