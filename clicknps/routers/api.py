"""JSON API for businesses - link minting and response history."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.business import ApiKey
from ..schemas.api import MintLinksRequest
from ..services import link_svc, survey_svc
from .deps import require_api_key

router = APIRouter(prefix="/api", tags=["api"])


@router.post("/links/mint", status_code=201)
async def mint_links(
    data: MintLinksRequest,
    api_key: ApiKey = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    if not data.survey_id or not data.subject_id:
        raise HTTPException(
            status_code=400, detail="Missing required fields: survey_id and subject_id"
        )
    if not survey_svc.is_valid_slug(data.survey_id):
        raise HTTPException(
            status_code=400,
            detail="survey_id must contain only letters, numbers, underscores, and hyphens",
        )
    if not survey_svc.is_valid_slug(data.subject_id):
        raise HTTPException(
            status_code=400,
            detail="subject_id must contain only letters, numbers, underscores, and hyphens",
        )

    survey = await survey_svc.find_survey(db, api_key.business_id, data.survey_id)
    if not survey:
        raise HTTPException(
            status_code=404, detail="Survey not found. Please create the survey first."
        )

    result = await link_svc.mint_links(db, survey, data.subject_id, ttl_days=data.ttl_days)
    return result.to_dict()


@router.get("/surveys")
async def list_surveys(
    api_key: ApiKey = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    surveys = await survey_svc.list_surveys(db, api_key.business_id)
    return [
        {
            "survey_id": s.survey_id,
            "title": s.title,
            "description": s.description,
            "default_ttl_days": s.default_ttl_days,
            "redirect_url": s.redirect_url,
            "redirect_timing": s.redirect_timing,
        }
        for s in surveys
    ]


@router.get("/surveys/{survey_id}/responses")
async def list_responses(
    survey_id: str,
    api_key: ApiKey = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    survey = await survey_svc.find_survey(db, api_key.business_id, survey_id)
    if not survey:
        raise HTTPException(status_code=404, detail="Survey not found")

    responses = await survey_svc.list_responses(db, survey)
    return [
        {
            "id": str(r.id),
            "subject_id": r.respondent_id,
            "score": r.link.score,
            "comment": r.comment,
            "responded_at": r.responded_at.isoformat(),
        }
        for r in responses
    ]


@router.get("/surveys/{survey_id}/links/{subject_id}")
async def list_links(
    survey_id: str,
    subject_id: str,
    api_key: ApiKey = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
):
    survey = await survey_svc.find_survey(db, api_key.business_id, survey_id)
    if not survey:
        raise HTTPException(status_code=404, detail="Survey not found")

    links = await link_svc.list_links(db, survey, subject_id)
    return [
        {
            "score": link.score,
            "url": link_svc.link_url(link.token),
            "expires_at": link.expires_at.isoformat(),
        }
        for link in links
    ]
