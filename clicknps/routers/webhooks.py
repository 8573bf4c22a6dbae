"""Webhook settings, delivery history and the manual test action."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.business import ApiKey
from ..schemas.api import WebhookSettingsUpdate
from ..services import business_svc, webhook_svc
from .deps import require_api_key

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _mask(secret: str | None) -> str | None:
    if not secret:
        return None
    return f"{secret[:8]}..."


@router.get("")
async def webhook_settings(
    api_key: ApiKey = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    current = await business_svc.get_webhook_settings(db, api_key.business_id)
    entries = await webhook_svc.recent_queue_entries(db, api_key.business_id)
    deliveries = await webhook_svc.recent_deliveries(db, api_key.business_id)
    return {
        "webhook_url": current["webhook_url"],
        "webhook_secret": _mask(current["webhook_secret"]),
        "queue": [
            {
                "id": str(e.id),
                "survey_id": e.survey_id,
                "subject_id": e.respondent_id,
                "score": e.score,
                "comment": e.comment,
                "status": e.status,
                "attempts": e.attempts,
                "scheduled_for": e.scheduled_for.isoformat(),
                "response_status_code": e.response_status_code,
            }
            for e in entries
        ],
        "deliveries": [
            {
                "id": str(d.id),
                "queue_entry_id": str(d.queue_entry_id) if d.queue_entry_id else None,
                "attempt_number": d.attempt_number,
                "success": d.success,
                "status_code": d.status_code,
                "response_body": d.response_body,
                "attempted_at": d.attempted_at.isoformat() if d.attempted_at else None,
            }
            for d in deliveries
        ],
    }


@router.put("")
async def update_webhook_settings(
    data: WebhookSettingsUpdate,
    api_key: ApiKey = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    business = await business_svc.update_webhook_settings(
        db, api_key.business_id, data.webhook_url, data.webhook_secret
    )
    return {"webhook_url": business.webhook_url, "webhook_secret": business.webhook_secret}


@router.post("/test")
async def test_webhook(
    api_key: ApiKey = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    result = await webhook_svc.send_test_webhook(db, api_key.business_id)
    return result.to_dict()
