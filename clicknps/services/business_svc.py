"""Business service - webhook settings and API keys."""

from __future__ import annotations

import uuid
from urllib.parse import urlparse

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import utcnow
from ..errors import InvalidRequest, NotFound
from ..models.business import ApiKey, Business
from ..security import generate_secure_token, generate_webhook_secret, hash_api_key

API_KEY_PREFIX = "ck_"


async def create_business(db: AsyncSession, name: str) -> Business:
    business = Business(name=name.strip())
    db.add(business)
    await db.commit()
    await db.refresh(business)
    return business


async def get_business(db: AsyncSession, business_id: uuid.UUID) -> Business | None:
    result = await db.execute(select(Business).where(Business.id == business_id))
    return result.scalar_one_or_none()


def _validate_webhook_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidRequest("Invalid webhook URL format")
    return url


async def update_webhook_settings(
    db: AsyncSession,
    business_id: uuid.UUID,
    webhook_url: str | None,
    webhook_secret: str | None = None,
) -> Business:
    """Set or clear the webhook target.

    A URL without a secret gets a freshly generated secret. Clearing the
    URL clears the secret too.
    """
    business = await get_business(db, business_id)
    if not business:
        raise NotFound("Business not found")

    url = (webhook_url or "").strip()
    secret = (webhook_secret or "").strip()
    if url:
        business.webhook_url = _validate_webhook_url(url)
        business.webhook_secret = secret or generate_webhook_secret()
    else:
        business.webhook_url = None
        business.webhook_secret = None

    await db.commit()
    await db.refresh(business)
    return business


async def get_webhook_settings(db: AsyncSession, business_id: uuid.UUID) -> dict | None:
    business = await get_business(db, business_id)
    if not business:
        return None
    return {
        "webhook_url": business.webhook_url,
        "webhook_secret": business.webhook_secret,
    }


async def create_api_key(
    db: AsyncSession, business_id: uuid.UUID, name: str
) -> tuple[ApiKey, str]:
    """Create an API key and return it with the plain token (shown once)."""
    token = f"{API_KEY_PREFIX}{generate_secure_token(48)}"
    api_key = ApiKey(
        business_id=business_id,
        name=name.strip() or "default",
        key_hash=hash_api_key(token),
        key_preview=f"{token[:7]}...{token[-4:]}",
    )
    db.add(api_key)
    await db.commit()
    await db.refresh(api_key)
    return api_key, token


async def find_api_key_by_token(db: AsyncSession, token: str) -> ApiKey | None:
    if not token or not token.startswith(API_KEY_PREFIX):
        return None

    stmt = select(ApiKey).where(ApiKey.key_hash == hash_api_key(token))
    api_key = (await db.execute(stmt)).scalar_one_or_none()
    if not api_key:
        return None

    api_key.last_used_at = utcnow()
    await db.commit()
    return api_key

