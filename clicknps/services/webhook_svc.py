"""Webhook scheduler and sender.

The queue holds at most one pending entry per (business, survey, respondent).
Entries snapshot the business's webhook URL and secret when scheduled, so the
dispatcher never has to look at business settings.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import utcnow
from ..config import settings
from ..database import dialect_insert
from ..errors import InvalidRequest, NotFound
from ..models.business import Business
from ..models.webhook import PENDING_ONLY, WebhookDelivery, WebhookQueueEntry
from ..security import signature_headers
from .business_svc import get_business

logger = logging.getLogger(__name__)

KEY_COLUMNS = ["business_id", "survey_id", "respondent_id"]


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    status_code: int
    response_body: str

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "status_code": self.status_code,
            "response_body": self.response_body,
        }


def _pending_key(business_id: uuid.UUID, survey_id: str, respondent_id: str):
    return (
        WebhookQueueEntry.business_id == business_id,
        WebhookQueueEntry.survey_id == survey_id,
        WebhookQueueEntry.respondent_id == respondent_id,
        WebhookQueueEntry.status == "pending",
    )


async def get_pending_entry(
    db: AsyncSession, business_id: uuid.UUID, survey_id: str, respondent_id: str
) -> WebhookQueueEntry | None:
    stmt = select(WebhookQueueEntry).where(*_pending_key(business_id, survey_id, respondent_id))
    return (await db.execute(stmt)).scalar_one_or_none()


async def schedule_webhook(
    db: AsyncSession,
    business: Business,
    survey_id: str,
    respondent_id: str,
    score: int,
    comment: str | None = None,
    delay_seconds: int | None = None,
    now: datetime | None = None,
    commit: bool = True,
) -> WebhookQueueEntry | None:
    """Upsert the pending entry for this respondent.

    Returns None when the business has no webhook configured. An existing
    pending entry for the key is reused as-is.
    """
    if not business.webhook_configured:
        logger.debug("No webhook configured for business %s, skipping", business.id)
        return None

    delay = settings.comment_window_seconds if delay_seconds is None else delay_seconds
    scheduled_for = (now or utcnow()) + timedelta(seconds=delay)

    stmt = (
        dialect_insert(db, WebhookQueueEntry)
        .values(
            id=uuid.uuid4(),
            business_id=business.id,
            survey_id=survey_id,
            respondent_id=respondent_id,
            score=score,
            comment=comment,
            webhook_url=business.webhook_url,
            webhook_secret=business.webhook_secret,
            scheduled_for=scheduled_for,
            status="pending",
            attempts=0,
        )
        .on_conflict_do_nothing(index_elements=KEY_COLUMNS, index_where=PENDING_ONLY)
    )
    await db.execute(stmt)
    entry = await get_pending_entry(db, business.id, survey_id, respondent_id)
    if commit:
        await db.commit()
    return entry


async def refresh_timer(
    db: AsyncSession,
    business_id: uuid.UUID,
    survey_id: str,
    respondent_id: str,
    scheduled_for: datetime,
    commit: bool = True,
) -> bool:
    """Move a pending entry's delivery time. No-op once delivered or failed."""
    stmt = (
        update(WebhookQueueEntry)
        .where(*_pending_key(business_id, survey_id, respondent_id))
        .values(scheduled_for=scheduled_for, updated_at=utcnow())
    )
    result = await db.execute(stmt)
    if commit:
        await db.commit()
    return result.rowcount > 0


async def update_comment(
    db: AsyncSession,
    business_id: uuid.UUID,
    survey_id: str,
    respondent_id: str,
    comment: str,
    commit: bool = True,
) -> bool:
    """Attach a comment to a pending entry. No-op once delivered or failed."""
    stmt = (
        update(WebhookQueueEntry)
        .where(*_pending_key(business_id, survey_id, respondent_id))
        .values(comment=comment, updated_at=utcnow())
    )
    result = await db.execute(stmt)
    if commit:
        await db.commit()
    return result.rowcount > 0


def build_payload(
    survey_id: str,
    respondent_id: str,
    score: int,
    comment: str | None,
    sent_at: datetime | None = None,
) -> dict:
    return {
        "survey_id": survey_id,
        "subject_id": respondent_id,
        "score": score,
        "comment": comment,
        "timestamp": (sent_at or utcnow()).isoformat(),
    }


def encode_payload(payload: dict) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


async def send_webhook(
    payload: dict,
    webhook_url: str,
    webhook_secret: str,
    client: httpx.AsyncClient | None = None,
) -> DeliveryResult:
    """POST a signed payload. Transport errors come back as status 0."""
    body = encode_payload(payload)
    headers = signature_headers(body, webhook_secret)
    limit = settings.webhook_response_body_limit

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.webhook_timeout_seconds) as own_client:
                resp = await own_client.post(webhook_url, content=body, headers=headers)
        else:
            resp = await client.post(
                webhook_url,
                content=body,
                headers=headers,
                timeout=settings.webhook_timeout_seconds,
            )
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        message = str(exc) or exc.__class__.__name__
        return DeliveryResult(success=False, status_code=0, response_body=message[:limit])

    return DeliveryResult(
        success=200 <= resp.status_code < 300,
        status_code=resp.status_code,
        response_body=resp.text[:limit],
    )


async def send_test_webhook(
    db: AsyncSession,
    business_id: uuid.UUID,
    client: httpx.AsyncClient | None = None,
) -> DeliveryResult:
    """Deliver a sample payload right now; the queue is not touched."""
    business = await get_business(db, business_id)
    if not business:
        raise NotFound("Business not found")
    if not business.webhook_configured:
        raise InvalidRequest("Webhook not configured")

    payload = build_payload(
        survey_id="test",
        respondent_id="test_user",
        score=8,
        comment="This is a test webhook from ClickNPS",
    )
    result = await send_webhook(payload, business.webhook_url, business.webhook_secret, client=client)
    logger.info(
        "Test webhook for business %s returned %s", business_id, result.status_code
    )
    return result


async def recent_queue_entries(
    db: AsyncSession, business_id: uuid.UUID, limit: int = 10
) -> list[WebhookQueueEntry]:
    stmt = (
        select(WebhookQueueEntry)
        .where(WebhookQueueEntry.business_id == business_id)
        .order_by(WebhookQueueEntry.created_at.desc())
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all())


async def recent_deliveries(
    db: AsyncSession, business_id: uuid.UUID, limit: int = 20
) -> list[WebhookDelivery]:
    stmt = (
        select(WebhookDelivery)
        .where(WebhookDelivery.business_id == business_id)
        .order_by(WebhookDelivery.attempted_at.desc())
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all())
