"""Survey and SurveyLink models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDMixin
from .business import Business

REDIRECT_TIMINGS = ("none", "pre_comment", "post_comment")


class Survey(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "survey"
    __table_args__ = (
        UniqueConstraint("business_id", "survey_id", name="uq_survey_business_slug"),
        CheckConstraint(
            "default_ttl_days >= 1 AND default_ttl_days <= 365", name="ck_survey_ttl_days"
        ),
    )

    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("business.id", ondelete="CASCADE"), index=True
    )
    survey_id: Mapped[str] = mapped_column(String(255))  # human slug
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    default_ttl_days: Mapped[int] = mapped_column(Integer, default=30)
    redirect_url: Mapped[str | None] = mapped_column(Text, default=None)
    redirect_timing: Mapped[str] = mapped_column(String(20), default="none")

    business: Mapped[Business] = relationship()

    @property
    def pre_comment_redirect(self) -> str | None:
        if self.redirect_timing == "pre_comment" and self.redirect_url:
            return self.redirect_url
        return None

    @property
    def post_comment_redirect(self) -> str | None:
        if self.redirect_timing == "post_comment" and self.redirect_url:
            return self.redirect_url
        return None

    def __repr__(self) -> str:
        return f"<Survey {self.survey_id}>"


class SurveyLink(UUIDMixin, Base):
    """One pre-scored link. Never mutated after creation."""

    __tablename__ = "survey_link"
    __table_args__ = (
        CheckConstraint("score >= 0 AND score <= 10", name="ck_survey_link_score"),
    )

    token: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    survey_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("survey.id", ondelete="CASCADE"), index=True
    )
    respondent_id: Mapped[str] = mapped_column(String(255))
    score: Mapped[int] = mapped_column(Integer)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    survey: Mapped[Survey] = relationship()
