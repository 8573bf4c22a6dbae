"""Token generation, API key hashing and webhook signing."""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time

from fastapi import Request

from .config import settings

TOKEN_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
SIGNATURE_HEADER = "X-ClickNPS-Signature"
TIMESTAMP_HEADER = "X-ClickNPS-Timestamp"
USER_AGENT = "ClickNPS-Webhooks/1.0"


def generate_secure_token(length: int = 32) -> str:
    """Random URL-safe token drawn from a 64-character alphabet."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def generate_webhook_secret() -> str:
    return f"whk_{secrets.token_urlsafe(32)}"


def hash_api_key(token: str) -> str:
    """HMAC-SHA256 of an API key under the application pepper."""
    return hmac.new(
        settings.crypto_pepper.encode("utf-8"),
        token.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def extract_api_token(request: Request) -> str:
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return request.headers.get("x-api-key", "").strip()


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def signature_headers(body: bytes, secret: str, timestamp: int | None = None) -> dict[str, str]:
    """Headers sent with every outbound webhook."""
    if timestamp is None:
        timestamp = int(time.time())
    return {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: f"sha256={sign_payload(body, secret)}",
        TIMESTAMP_HEADER: str(timestamp),
        "User-Agent": USER_AGENT,
    }


def verify_webhook_signature(
    secret: str,
    body: bytes,
    signature: str,
    timestamp: str,
    tolerance_seconds: int = 300,
    now: int | None = None,
) -> bool:
    """Check a received webhook the way a receiving business would."""
    if not signature or not timestamp:
        return False
    try:
        sent_at = int(timestamp)
    except ValueError:
        return False
    if now is None:
        now = int(time.time())
    if abs(now - sent_at) > tolerance_seconds:
        return False

    provided = signature
    if provided.startswith("sha256="):
        provided = provided.split("=", 1)[1]
    return hmac.compare_digest(provided, sign_payload(body, secret))
