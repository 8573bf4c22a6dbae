"""Business and API key models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDMixin


class Business(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "business"

    name: Mapped[str] = mapped_column(String(255))
    webhook_url: Mapped[str | None] = mapped_column(Text, default=None)
    webhook_secret: Mapped[str | None] = mapped_column(Text, default=None)

    api_keys: Mapped[list["ApiKey"]] = relationship(
        back_populates="business", cascade="all, delete-orphan"
    )

    @property
    def webhook_configured(self) -> bool:
        return bool(self.webhook_url and self.webhook_secret)

    def __repr__(self) -> str:
        return f"<Business {self.name}>"


class ApiKey(UUIDMixin, TimestampMixin, Base):
    """Hashed API key; the plain token is only shown once at creation."""

    __tablename__ = "api_key"

    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("business.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    key_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    key_preview: Mapped[str] = mapped_column(String(32))
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, nullable=True
    )

    business: Mapped[Business] = relationship(back_populates="api_keys")
