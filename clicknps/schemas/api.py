"""Pydantic models for the ClickNPS JSON API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class MintLinksRequest(BaseModel):
    survey_id: str = ""
    subject_id: str = ""
    # Validated by the minter so non-integers answer 400 rather than 422.
    ttl_days: Any = None


class WebhookSettingsUpdate(BaseModel):
    webhook_url: str | None = None
    webhook_secret: str | None = None
