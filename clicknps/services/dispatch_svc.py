"""Dispatch side of the webhook queue: claim, deliver, record, retry."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

import httpx
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import utcnow
from ..config import settings
from ..models.webhook import WebhookDelivery, WebhookQueueEntry
from .webhook_svc import DeliveryResult, build_payload, send_webhook

logger = logging.getLogger(__name__)


def retry_delay_seconds(attempts: int) -> int:
    """Delay before the next try after `attempts` failed attempts."""
    schedule = settings.webhook_retry_schedule_seconds
    index = min(max(attempts, 1), len(schedule)) - 1
    return schedule[index]


def _claimable(now: datetime):
    stale_before = now - timedelta(seconds=settings.webhook_claim_ttl_seconds)
    return and_(
        WebhookQueueEntry.status == "pending",
        or_(
            WebhookQueueEntry.claimed_at.is_(None),
            WebhookQueueEntry.claimed_at < stale_before,
        ),
    )


async def list_due_entries(
    db: AsyncSession, now: datetime | None = None, limit: int | None = None
) -> list[WebhookQueueEntry]:
    """Pending, unclaimed entries whose scheduled time has passed."""
    now = now or utcnow()
    stmt = (
        select(WebhookQueueEntry)
        .where(_claimable(now), WebhookQueueEntry.scheduled_for <= now)
        .order_by(WebhookQueueEntry.scheduled_for.asc(), WebhookQueueEntry.created_at.asc())
        .limit(limit or settings.dispatch_batch_size)
    )
    return list((await db.execute(stmt)).scalars().all())


async def claim_entry(
    db: AsyncSession, entry_id: uuid.UUID, now: datetime | None = None
) -> bool:
    """Atomically claim one entry; only one dispatcher can win.

    Claims older than the claim TTL are treated as abandoned and may be
    taken over, which makes delivery at-least-once.
    """
    now = now or utcnow()
    stmt = (
        update(WebhookQueueEntry)
        .where(WebhookQueueEntry.id == entry_id, _claimable(now))
        .values(claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount == 1


async def record_attempt(
    db: AsyncSession,
    entry: WebhookQueueEntry,
    result: DeliveryResult,
    now: datetime | None = None,
) -> WebhookQueueEntry:
    """Store the outcome of one attempt and move the entry on."""
    now = now or utcnow()
    entry.attempts += 1
    entry.last_attempt_at = now
    entry.response_status_code = result.status_code
    entry.response_body = result.response_body
    entry.claimed_at = None

    db.add(
        WebhookDelivery(
            business_id=entry.business_id,
            queue_entry_id=entry.id,
            attempt_number=entry.attempts,
            success=result.success,
            status_code=result.status_code,
            response_body=result.response_body,
            attempted_at=now,
        )
    )

    if result.success:
        entry.status = "delivered"
    elif entry.attempts >= settings.webhook_max_attempts:
        entry.status = "failed"
        logger.warning(
            "Webhook %s failed permanently after %d attempts (last status %s)",
            entry.id, entry.attempts, result.status_code,
        )
    else:
        entry.scheduled_for = now + timedelta(seconds=retry_delay_seconds(entry.attempts))

    await db.commit()
    return entry


async def deliver_entry(
    db: AsyncSession,
    entry: WebhookQueueEntry,
    client: httpx.AsyncClient | None = None,
    now: datetime | None = None,
) -> DeliveryResult:
    """Send a claimed entry and record the attempt."""
    # Pick up a comment attached after the entry was listed.
    await db.refresh(entry)
    payload = build_payload(entry.survey_id, entry.respondent_id, entry.score, entry.comment)
    result = await send_webhook(payload, entry.webhook_url, entry.webhook_secret, client=client)
    await record_attempt(db, entry, result, now=now)

    if result.success:
        logger.info("Webhook %s delivered: %s", entry.id, result.status_code)
    else:
        logger.warning(
            "Webhook %s attempt %d failed: %s", entry.id, entry.attempts, result.status_code
        )
    return result


async def process_due(
    db: AsyncSession,
    client: httpx.AsyncClient | None = None,
    now: datetime | None = None,
    limit: int | None = None,
) -> int:
    """Claim and deliver every due entry in one batch. Returns the number sent."""
    now = now or utcnow()
    entries = await list_due_entries(db, now=now, limit=limit)
    if entries:
        logger.info("Processing %d webhooks", len(entries))

    sent = 0
    for entry in entries:
        if not await claim_entry(db, entry.id, now=now):
            continue
        await deliver_entry(db, entry, client=client, now=now)
        sent += 1
    return sent
