"""Durable webhook queue and delivery history models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDMixin

PENDING_ONLY = text("status = 'pending'")


class WebhookQueueEntry(UUIDMixin, TimestampMixin, Base):
    """Queued notification for one respondent; reschedulable while pending."""

    __tablename__ = "webhook_queue"
    __table_args__ = (
        Index(
            "uq_webhook_queue_pending_key",
            "business_id",
            "survey_id",
            "respondent_id",
            unique=True,
            sqlite_where=PENDING_ONLY,
            postgresql_where=PENDING_ONLY,
        ),
    )

    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("business.id", ondelete="CASCADE"), index=True
    )
    survey_id: Mapped[str] = mapped_column(String(255))  # survey slug
    respondent_id: Mapped[str] = mapped_column(String(255))
    score: Mapped[int] = mapped_column(Integer)
    comment: Mapped[str | None] = mapped_column(Text, default=None)
    webhook_url: Mapped[str] = mapped_column(Text)
    webhook_secret: Mapped[str] = mapped_column(Text)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", index=True
    )  # pending/delivered/failed
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, nullable=True
    )
    last_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, nullable=True
    )
    response_status_code: Mapped[int | None] = mapped_column(Integer, default=None)
    response_body: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<WebhookQueueEntry {self.status} attempts={self.attempts}>"


class WebhookDelivery(UUIDMixin, Base):
    """Append-only record of one delivery attempt."""

    __tablename__ = "webhook_delivery"

    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("business.id", ondelete="CASCADE"), index=True
    )
    queue_entry_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("webhook_queue.id", ondelete="SET NULL"), nullable=True, index=True
    )
    attempt_number: Mapped[int] = mapped_column(Integer)
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    status_code: Mapped[int] = mapped_column(Integer, default=0)
    response_body: Mapped[str | None] = mapped_column(Text, default=None)
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
