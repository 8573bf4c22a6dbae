"""Public respondent routes - score link capture and comment submission."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..services import capture_svc, comment_svc
from ..services.capture_svc import PresentationState

router = APIRouter(tags=["responses"])
templates = Jinja2Templates(directory=str(settings.templates_dir))


def score_tone(score: int) -> str:
    if score >= 9:
        return "promoter"
    if score >= 7:
        return "passive"
    return "detractor"


@router.get("/r/{token}")
async def capture_response(
    request: Request,
    token: str,
    state: str = "",
    db: AsyncSession = Depends(get_db),
):
    presentation = await capture_svc.capture(db, token)
    if presentation.state is PresentationState.REDIRECT:
        return RedirectResponse(presentation.url, status_code=303)

    return templates.TemplateResponse(request, "responses/thank_you.html", {
        "token": token,
        "score": presentation.score,
        "tone": score_tone(presentation.score),
        "state": presentation.state.value,
        "already_responded": presentation.state is not PresentationState.FRESH,
        "allows_comment": presentation.allows_comment,
        "commented": comment_svc.decode_state(state).get("commented") is True,
    })


@router.post("/r/{token}/comment")
async def submit_comment(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
):
    form = await request.form()
    target = await comment_svc.attach_comment(db, token, str(form.get("comment", "")))
    return RedirectResponse(target, status_code=303)
