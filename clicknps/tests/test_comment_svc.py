"""Tests for attaching comments and the grace window timer."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clicknps.clock import as_utc, utcnow
from clicknps.errors import InvalidRequest, NotFound
from clicknps.models import Response, WebhookQueueEntry
from clicknps.services import capture_svc, comment_svc, ledger_svc, link_svc, survey_svc, webhook_svc

from .conftest import token_of


async def _captured(db: AsyncSession, survey, t0, score="8"):
    minted = await link_svc.mint_links(db, survey, "user_1", now=t0)
    token = token_of(minted.links[score])
    await capture_svc.capture(db, token, now=t0)
    return token


@pytest.mark.asyncio
async def test_comment_inside_window_refreshes_timer(db: AsyncSession, survey, business):
    t0 = utcnow()
    token = await _captured(db, survey, t0)

    target = await comment_svc.attach_comment(
        db, token, "  Great coffee  ", now=t0 + timedelta(seconds=100)
    )
    assert target == f"/r/{token}?state=%7B%22commented%22%3Atrue%7D"

    response = await ledger_svc.find_response(db, survey.id, "user_1")
    await db.refresh(response)
    assert response.comment == "Great coffee"

    entry = await webhook_svc.get_pending_entry(db, business.id, "q1-nps", "user_1")
    await db.refresh(entry)
    assert entry.comment == "Great coffee"
    assert as_utc(entry.scheduled_for) == t0 + timedelta(seconds=280)


@pytest.mark.asyncio
async def test_comment_after_window_keeps_timer(db: AsyncSession, survey, business):
    t0 = utcnow()
    token = await _captured(db, survey, t0)

    await comment_svc.attach_comment(db, token, "Late thought", now=t0 + timedelta(seconds=200))

    entry = await webhook_svc.get_pending_entry(db, business.id, "q1-nps", "user_1")
    await db.refresh(entry)
    assert entry.comment == "Late thought"
    assert as_utc(entry.scheduled_for) == t0 + timedelta(seconds=180)


@pytest.mark.asyncio
async def test_comment_replaces_previous(db: AsyncSession, survey):
    t0 = utcnow()
    token = await _captured(db, survey, t0)
    await comment_svc.attach_comment(db, token, "first", now=t0 + timedelta(seconds=10))
    await comment_svc.attach_comment(db, token, "second", now=t0 + timedelta(seconds=20))

    response = await ledger_svc.find_response(db, survey.id, "user_1")
    await db.refresh(response)
    assert response.comment == "second"


@pytest.mark.asyncio
async def test_empty_comment_writes_nothing(db: AsyncSession, survey, business):
    t0 = utcnow()
    token = await _captured(db, survey, t0)

    target = await comment_svc.attach_comment(db, token, "   ", now=t0 + timedelta(seconds=30))
    assert target == f"/r/{token}"

    response = await ledger_svc.find_response(db, survey.id, "user_1")
    await db.refresh(response)
    assert response.comment is None
    entry = await webhook_svc.get_pending_entry(db, business.id, "q1-nps", "user_1")
    await db.refresh(entry)
    assert as_utc(entry.scheduled_for) == t0 + timedelta(seconds=180)


@pytest.mark.asyncio
async def test_comment_without_prior_click_records_response(db: AsyncSession, survey):
    t0 = utcnow()
    minted = await link_svc.mint_links(db, survey, "user_2", now=t0)

    await comment_svc.attach_comment(db, token_of(minted.links["5"]), "Direct", now=t0)

    response = await ledger_svc.find_response(db, survey.id, "user_2")
    assert response.comment == "Direct"
    assert response.link.score == 5
    count = (await db.execute(select(func.count()).select_from(Response))).scalar_one()
    assert count == 1
    queued = (await db.execute(select(func.count()).select_from(WebhookQueueEntry))).scalar_one()
    assert queued == 0


@pytest.mark.asyncio
async def test_post_comment_redirect(db: AsyncSession, business):
    survey = await survey_svc.create_survey(
        db,
        business.id,
        "after",
        "After",
        redirect_url="https://acme.example.com/done",
        redirect_timing="post_comment",
    )
    t0 = utcnow()
    minted = await link_svc.mint_links(db, survey, "user_1", now=t0)
    token = token_of(minted.links["10"])
    await capture_svc.capture(db, token, now=t0)

    target = await comment_svc.attach_comment(db, token, "Love it", now=t0)
    assert target == "https://acme.example.com/done"


@pytest.mark.asyncio
async def test_comment_on_bad_token(db: AsyncSession):
    with pytest.raises(InvalidRequest):
        await comment_svc.attach_comment(db, "", "hello")
    with pytest.raises(NotFound):
        await comment_svc.attach_comment(db, "missing-token", "hello")


def test_capture_path():
    assert comment_svc.capture_path("abc") == "/r/abc"
    assert comment_svc.capture_path("abc", {"commented": True}) == "/r/abc?state=%7B%22commented%22%3Atrue%7D"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ('{"commented":true}', {"commented": True}),
        ("", {}),
        (None, {}),
        ("commented", {}),
        ("[1, 2]", {}),
    ],
)
def test_decode_state(raw, expected):
    assert comment_svc.decode_state(raw) == expected
