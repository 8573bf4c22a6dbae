"""Survey service - survey lookup/creation and response history."""

from __future__ import annotations

import re
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import settings
from ..errors import InvalidRequest
from ..models.response import Response
from ..models.survey import REDIRECT_TIMINGS, Survey

SLUG_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def is_valid_slug(value: str | None) -> bool:
    return bool(value) and bool(SLUG_RE.match(value))


def validate_ttl_days(ttl_days) -> int:
    is_int = isinstance(ttl_days, int) and not isinstance(ttl_days, bool)
    if not is_int or ttl_days < 1 or ttl_days > settings.max_ttl_days:
        raise InvalidRequest(f"ttl_days must be an integer between 1 and {settings.max_ttl_days}")
    return ttl_days


async def create_survey(
    db: AsyncSession,
    business_id: uuid.UUID,
    survey_id: str,
    title: str,
    description: str | None = None,
    ttl_days: int | None = None,
    redirect_url: str | None = None,
    redirect_timing: str | None = None,
) -> Survey:
    if not is_valid_slug(survey_id):
        raise InvalidRequest(
            "survey_id must contain only letters, numbers, underscores, and hyphens"
        )
    if not title or not title.strip():
        raise InvalidRequest("Survey title is required")
    timing = redirect_timing or "none"
    if timing not in REDIRECT_TIMINGS:
        raise InvalidRequest(f"redirect_timing must be one of {', '.join(REDIRECT_TIMINGS)}")

    survey = Survey(
        business_id=business_id,
        survey_id=survey_id,
        title=title.strip(),
        description=description or None,
        default_ttl_days=validate_ttl_days(ttl_days if ttl_days is not None else settings.default_ttl_days),
        redirect_url=(redirect_url or "").strip() or None,
        redirect_timing=timing,
    )
    db.add(survey)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise InvalidRequest(f"Survey '{survey_id}' already exists") from exc
    await db.refresh(survey)
    return survey


async def find_survey(
    db: AsyncSession, business_id: uuid.UUID, survey_id: str
) -> Survey | None:
    stmt = (
        select(Survey)
        .where(Survey.business_id == business_id, Survey.survey_id == survey_id)
        .options(selectinload(Survey.business))
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_surveys(db: AsyncSession, business_id: uuid.UUID) -> list[Survey]:
    stmt = (
        select(Survey)
        .where(Survey.business_id == business_id)
        .order_by(Survey.created_at.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def list_responses(db: AsyncSession, survey: Survey) -> list[Response]:
    """Recorded responses for a survey, newest first, with the clicked link."""
    stmt = (
        select(Response)
        .where(Response.survey_id == survey.id)
        .options(selectinload(Response.link))
        .order_by(Response.responded_at.desc())
    )
    return list((await db.execute(stmt)).scalars().all())
