"""Response capture - the click on a score link."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import as_utc, utcnow
from ..config import settings
from ..errors import InternalError, RaceLost
from ..models.response import Response
from . import ledger_svc, webhook_svc
from .link_svc import resolve_token

logger = logging.getLogger(__name__)


class PresentationState(str, enum.Enum):
    FRESH = "fresh"
    RECENT_DUPLICATE = "recent_duplicate"
    STALE_DUPLICATE = "stale_duplicate"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class Presentation:
    state: PresentationState
    score: int | None = None
    url: str | None = None

    @property
    def allows_comment(self) -> bool:
        return self.state in (PresentationState.FRESH, PresentationState.RECENT_DUPLICATE)


def within_comment_window(responded_at: datetime, now: datetime) -> bool:
    elapsed = (now - as_utc(responded_at)).total_seconds()
    return elapsed < settings.comment_window_seconds


def _duplicate(existing: Response, now: datetime) -> Presentation:
    # Always the originally captured score, not the link just clicked.
    score = existing.link.score
    if within_comment_window(existing.responded_at, now):
        return Presentation(PresentationState.RECENT_DUPLICATE, score=score)
    return Presentation(PresentationState.STALE_DUPLICATE, score=score)


async def capture(
    db: AsyncSession, token: str | None, now: datetime | None = None
) -> Presentation:
    """Record the first click for a respondent and queue its webhook.

    Later clicks on any of the respondent's eleven links report the
    original response instead of recording a new one.
    """
    now = now or utcnow()
    link = await resolve_token(db, token, now=now)
    survey = link.survey
    score = link.score
    redirect_url = survey.pre_comment_redirect

    try:
        existing = await ledger_svc.find_response(db, link.survey_id, link.respondent_id)
        if existing:
            return _duplicate(existing, now)

        try:
            await ledger_svc.insert_response_if_absent(db, link, responded_at=now)
        except RaceLost:
            existing = await ledger_svc.find_response(db, link.survey_id, link.respondent_id)
            return _duplicate(existing, now)

        await webhook_svc.schedule_webhook(
            db,
            survey.business,
            survey_id=survey.survey_id,
            respondent_id=link.respondent_id,
            score=score,
            comment=None,
            delay_seconds=settings.comment_window_seconds,
            now=now,
            commit=False,
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Capturing response failed")
        raise InternalError(str(exc)) from exc

    logger.info("Captured score %d for survey %s", score, survey.survey_id)
    if redirect_url:
        return Presentation(PresentationState.REDIRECT, score=score, url=redirect_url)
    return Presentation(PresentationState.FRESH, score=score)
