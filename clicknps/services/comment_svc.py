"""Comment attacher - free-text follow-up on a captured response."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import utcnow
from ..config import settings
from ..errors import InternalError, RaceLost
from . import ledger_svc, webhook_svc
from .capture_svc import within_comment_window
from .link_svc import resolve_token

logger = logging.getLogger(__name__)

COMMENTED_STATE = {"commented": True}


def encode_state(state: dict) -> str:
    return json.dumps(state, separators=(",", ":"), sort_keys=True)


def decode_state(raw: str | None) -> dict:
    """Parse the `state` query parameter; anything unreadable is no state."""
    if not raw:
        return {}
    try:
        state = json.loads(raw)
    except ValueError:
        return {}
    return state if isinstance(state, dict) else {}


def capture_path(token: str, state: dict | None = None) -> str:
    if state:
        return f"/r/{token}?state={quote(encode_state(state), safe='')}"
    return f"/r/{token}"


async def attach_comment(
    db: AsyncSession,
    token: str | None,
    raw_comment: str | None,
    now: datetime | None = None,
) -> str:
    """Save the comment and return where the respondent goes next.

    Inside the grace window the pending webhook is pushed back so the
    comment has time to settle before delivery.
    """
    now = now or utcnow()
    link = await resolve_token(db, token, now=now)

    comment = (raw_comment or "").strip()
    if not comment:
        return capture_path(link.token)

    survey = link.survey
    business_id = survey.business_id
    slug = survey.survey_id
    respondent_id = link.respondent_id
    redirect_url = survey.post_comment_redirect
    try:
        response = await ledger_svc.find_response(db, link.survey_id, link.respondent_id)
        if response is None:
            try:
                response = await ledger_svc.insert_response_if_absent(
                    db, link, responded_at=now, comment=comment
                )
            except RaceLost:
                response = await ledger_svc.find_response(db, link.survey_id, link.respondent_id)
                response.comment = comment
        else:
            response.comment = comment

        await webhook_svc.update_comment(
            db, business_id, slug, respondent_id, comment, commit=False
        )
        if within_comment_window(response.responded_at, now):
            await webhook_svc.refresh_timer(
                db,
                business_id,
                slug,
                respondent_id,
                scheduled_for=now + timedelta(seconds=settings.comment_window_seconds),
                commit=False,
            )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Attaching comment failed")
        raise InternalError(str(exc)) from exc

    logger.info("Comment saved for survey %s", slug)
    return redirect_url or capture_path(token, COMMENTED_STATE)
