"""Response ledger model."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin
from .survey import SurveyLink


class Response(UUIDMixin, Base):
    """At most one row per (survey, respondent), whichever link was clicked."""

    __tablename__ = "response"
    __table_args__ = (
        UniqueConstraint("survey_id", "respondent_id", name="uq_response_survey_respondent"),
    )

    survey_link_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("survey_link.id", ondelete="CASCADE"), index=True
    )
    survey_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("survey.id", ondelete="CASCADE")
    )
    respondent_id: Mapped[str] = mapped_column(String(255))
    responded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    comment: Mapped[str | None] = mapped_column(Text, default=None)

    link: Mapped[SurveyLink] = relationship()

    def __repr__(self) -> str:
        return f"<Response {self.respondent_id}>"
