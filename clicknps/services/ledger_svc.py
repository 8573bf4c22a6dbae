"""Response ledger - at most one response per (survey, respondent)."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database import dialect_insert
from ..errors import RaceLost
from ..models.response import Response
from ..models.survey import SurveyLink


async def find_response(
    db: AsyncSession, survey_id: uuid.UUID, respondent_id: str
) -> Response | None:
    """Existing response for the respondent across all of the survey's links."""
    stmt = (
        select(Response)
        .where(Response.survey_id == survey_id, Response.respondent_id == respondent_id)
        .options(selectinload(Response.link))
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def insert_response_if_absent(
    db: AsyncSession,
    link: SurveyLink,
    responded_at: datetime,
    comment: str | None = None,
) -> Response:
    """Insert the response in one statement, or raise RaceLost.

    The unique (survey_id, respondent_id) constraint decides the winner;
    nothing is committed here.
    """
    stmt = (
        dialect_insert(db, Response)
        .values(
            id=uuid.uuid4(),
            survey_link_id=link.id,
            survey_id=link.survey_id,
            respondent_id=link.respondent_id,
            responded_at=responded_at,
            comment=comment,
        )
        .on_conflict_do_nothing(index_elements=["survey_id", "respondent_id"])
        .returning(Response.id)
    )
    inserted_id = (await db.execute(stmt)).scalar_one_or_none()
    if inserted_id is None:
        raise RaceLost()

    response = await find_response(db, link.survey_id, link.respondent_id)
    if response is None:  # pragma: no cover - row was inserted above
        raise RaceLost()
    return response
