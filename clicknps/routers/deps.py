"""Shared router dependencies."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.business import ApiKey
from ..security import extract_api_token
from ..services import business_svc


async def require_api_key(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> ApiKey:
    """Resolve the calling business from its API key."""
    token = extract_api_token(request)
    api_key = await business_svc.find_api_key_by_token(db, token)
    if not api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return api_key
