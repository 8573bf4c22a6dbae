"""Link store and minter - eleven pre-scored links per respondent."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from ..clock import as_utc, utcnow
from ..config import settings
from ..errors import InternalError, InvalidRequest, NotFound
from ..models.survey import Survey, SurveyLink
from ..security import generate_secure_token
from .survey_svc import validate_ttl_days

logger = logging.getLogger(__name__)

SCORES = range(0, 11)
TOKEN_LENGTH = 32


@dataclass(frozen=True)
class MintResult:
    links: dict[str, str]
    expires_at: datetime

    def to_dict(self) -> dict:
        return {"links": self.links, "expires_at": self.expires_at.isoformat()}


def link_url(token: str) -> str:
    return f"{settings.base_url.rstrip('/')}/r/{token}"


async def mint_links(
    db: AsyncSession,
    survey: Survey,
    respondent_id: str,
    ttl_days: int | None = None,
    now: datetime | None = None,
) -> MintResult:
    """Create one link per score 0-10, all sharing one expiry.

    All eleven rows go in with a single commit. Re-minting for the same
    respondent creates an independent set; the response ledger is what
    prevents double counting.
    """
    if not respondent_id or not respondent_id.strip():
        raise InvalidRequest("subject_id is required")
    ttl = validate_ttl_days(ttl_days if ttl_days is not None else survey.default_ttl_days)
    expires_at = (now or utcnow()) + timedelta(days=ttl)

    links = [
        SurveyLink(
            token=generate_secure_token(TOKEN_LENGTH),
            survey_id=survey.id,
            respondent_id=respondent_id,
            score=score,
            expires_at=expires_at,
        )
        for score in SCORES
    ]
    slug = survey.survey_id
    db.add_all(links)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Minting links failed for survey %s", slug)
        raise InternalError(str(exc)) from exc

    return MintResult(
        links={str(link.score): link_url(link.token) for link in links},
        expires_at=expires_at,
    )


async def resolve_token(
    db: AsyncSession, token: str | None, now: datetime | None = None
) -> SurveyLink:
    """Load a live link with its survey and business, or raise."""
    if not token or not token.strip():
        raise InvalidRequest()

    stmt = (
        select(SurveyLink)
        .where(SurveyLink.token == token)
        .options(joinedload(SurveyLink.survey).joinedload(Survey.business))
    )
    try:
        link = (await db.execute(stmt)).scalar_one_or_none()
    except SQLAlchemyError as exc:
        logger.exception("Link lookup failed")
        raise InternalError(str(exc)) from exc

    if link is None or as_utc(link.expires_at) <= (now or utcnow()):
        raise NotFound()
    return link


async def list_links(
    db: AsyncSession, survey: Survey, respondent_id: str
) -> list[SurveyLink]:
    stmt = (
        select(SurveyLink)
        .where(SurveyLink.survey_id == survey.id, SurveyLink.respondent_id == respondent_id)
        .order_by(SurveyLink.expires_at.desc(), SurveyLink.score.asc())
    )
    return list((await db.execute(stmt)).scalars().all())
