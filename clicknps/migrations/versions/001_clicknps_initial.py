"""Initial ClickNPS schema.

Revision ID: 001_clicknps_initial
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_clicknps_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PENDING_ONLY = sa.text("status = 'pending'")


def _has_table(bind, name: str) -> bool:
    return sa.inspect(bind).has_table(name)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "business"):
        op.create_table(
            "business",
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("webhook_url", sa.Text(), nullable=True),
            sa.Column("webhook_secret", sa.Text(), nullable=True),
            sa.Column("id", sa.Uuid(), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _has_table(bind, "api_key"):
        op.create_table(
            "api_key",
            sa.Column("business_id", sa.Uuid(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("key_hash", sa.String(length=64), nullable=False),
            sa.Column("key_preview", sa.String(length=32), nullable=False),
            sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("id", sa.Uuid(), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(["business_id"], ["business.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_api_key_business_id", "api_key", ["business_id"])
        op.create_index("ix_api_key_key_hash", "api_key", ["key_hash"], unique=True)

    if not _has_table(bind, "survey"):
        op.create_table(
            "survey",
            sa.Column("business_id", sa.Uuid(), nullable=False),
            sa.Column("survey_id", sa.String(length=255), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("default_ttl_days", sa.Integer(), nullable=False, server_default="30"),
            sa.Column("redirect_url", sa.Text(), nullable=True),
            sa.Column("redirect_timing", sa.String(length=20), nullable=False, server_default="none"),
            sa.Column("id", sa.Uuid(), nullable=False),
            *_timestamps(),
            sa.CheckConstraint(
                "default_ttl_days >= 1 AND default_ttl_days <= 365", name="ck_survey_ttl_days"
            ),
            sa.ForeignKeyConstraint(["business_id"], ["business.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("business_id", "survey_id", name="uq_survey_business_slug"),
        )
        op.create_index("ix_survey_business_id", "survey", ["business_id"])

    if not _has_table(bind, "survey_link"):
        op.create_table(
            "survey_link",
            sa.Column("token", sa.String(length=64), nullable=False),
            sa.Column("survey_id", sa.Uuid(), nullable=False),
            sa.Column("respondent_id", sa.String(length=255), nullable=False),
            sa.Column("score", sa.Integer(), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.CheckConstraint("score >= 0 AND score <= 10", name="ck_survey_link_score"),
            sa.ForeignKeyConstraint(["survey_id"], ["survey.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_survey_link_token", "survey_link", ["token"], unique=True)
        op.create_index("ix_survey_link_survey_id", "survey_link", ["survey_id"])
        op.create_index("ix_survey_link_expires_at", "survey_link", ["expires_at"])

    if not _has_table(bind, "response"):
        op.create_table(
            "response",
            sa.Column("survey_link_id", sa.Uuid(), nullable=False),
            sa.Column("survey_id", sa.Uuid(), nullable=False),
            sa.Column("respondent_id", sa.String(length=255), nullable=False),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.ForeignKeyConstraint(["survey_link_id"], ["survey_link.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["survey_id"], ["survey.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("survey_id", "respondent_id", name="uq_response_survey_respondent"),
        )
        op.create_index("ix_response_survey_link_id", "response", ["survey_link_id"])
        op.create_index("ix_response_responded_at", "response", ["responded_at"])

    if not _has_table(bind, "webhook_queue"):
        op.create_table(
            "webhook_queue",
            sa.Column("business_id", sa.Uuid(), nullable=False),
            sa.Column("survey_id", sa.String(length=255), nullable=False),
            sa.Column("respondent_id", sa.String(length=255), nullable=False),
            sa.Column("score", sa.Integer(), nullable=False),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("webhook_url", sa.Text(), nullable=False),
            sa.Column("webhook_secret", sa.Text(), nullable=False),
            sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("response_status_code", sa.Integer(), nullable=True),
            sa.Column("response_body", sa.Text(), nullable=True),
            sa.Column("id", sa.Uuid(), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(["business_id"], ["business.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_webhook_queue_business_id", "webhook_queue", ["business_id"])
        op.create_index("ix_webhook_queue_scheduled_for", "webhook_queue", ["scheduled_for"])
        op.create_index("ix_webhook_queue_status", "webhook_queue", ["status"])
        op.create_index(
            "uq_webhook_queue_pending_key",
            "webhook_queue",
            ["business_id", "survey_id", "respondent_id"],
            unique=True,
            sqlite_where=PENDING_ONLY,
            postgresql_where=PENDING_ONLY,
        )

    if not _has_table(bind, "webhook_delivery"):
        op.create_table(
            "webhook_delivery",
            sa.Column("business_id", sa.Uuid(), nullable=False),
            sa.Column("queue_entry_id", sa.Uuid(), nullable=True),
            sa.Column("attempt_number", sa.Integer(), nullable=False),
            sa.Column("success", sa.Boolean(), nullable=False),
            sa.Column("status_code", sa.Integer(), nullable=False),
            sa.Column("response_body", sa.Text(), nullable=True),
            sa.Column("attempted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.ForeignKeyConstraint(["business_id"], ["business.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["queue_entry_id"], ["webhook_queue.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_webhook_delivery_business_id", "webhook_delivery", ["business_id"])
        op.create_index("ix_webhook_delivery_queue_entry_id", "webhook_delivery", ["queue_entry_id"])


def downgrade() -> None:
    bind = op.get_bind()
    for table in (
        "webhook_delivery",
        "webhook_queue",
        "response",
        "survey_link",
        "survey",
        "api_key",
        "business",
    ):
        if _has_table(bind, table):
            op.drop_table(table)
