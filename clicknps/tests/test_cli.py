"""Tests for ClickNPS CLI commands."""

import asyncio
import json
import uuid
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from typer.testing import CliRunner

from clicknps.cli import app
from clicknps.config import settings
from clicknps.models import Base, SurveyLink, WebhookDelivery
from clicknps.services import business_svc, webhook_svc
from clicknps.worker import WebhookDispatcher

from .conftest import WEBHOOK_SECRET, WEBHOOK_URL


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def session_factory(tmp_path):
    """File-backed database; every CLI command runs in its own event loop."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}", poolclass=NullPool)

    async def _create():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    with patch("clicknps.database.async_session_factory", factory):
        yield factory


@pytest.fixture
def business_id(session_factory) -> str:
    async def _create():
        async with session_factory() as db:
            biz = await business_svc.create_business(db, "CLI Cafe")
            await business_svc.update_webhook_settings(db, biz.id, WEBHOOK_URL, WEBHOOK_SECRET)
            return str(biz.id)

    return asyncio.run(_create())


def _count(session_factory, model) -> int:
    async def _query():
        async with session_factory() as db:
            return (await db.execute(select(func.count()).select_from(model))).scalar_one()

    return asyncio.run(_query())


class TestSetupCommands:
    def test_init_db(self, cli_runner, tmp_path, monkeypatch):
        db_path = tmp_path / "init.db"
        monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{db_path}")

        result = cli_runner.invoke(app, ["init-db"])
        assert result.exit_code == 0
        assert "Database is up to date" in result.output
        assert db_path.exists()

    def test_create_business(self, cli_runner, session_factory):
        result = cli_runner.invoke(app, ["create-business", "Corner Shop"])
        assert result.exit_code == 0
        assert "Created business" in result.output
        assert "Corner Shop" in result.output

    def test_create_survey(self, cli_runner, business_id):
        result = cli_runner.invoke(
            app, ["create-survey", business_id, "q1-nps", "--title", "Q1 NPS", "--ttl-days", "14"]
        )
        assert result.exit_code == 0
        assert "Created survey" in result.output
        assert "14 days" in result.output

    def test_create_survey_bad_slug(self, cli_runner, business_id):
        result = cli_runner.invoke(app, ["create-survey", business_id, "bad slug", "--title", "X"])
        assert result.exit_code == 1
        assert "survey_id must contain only" in result.output

    def test_bad_business_id(self, cli_runner, session_factory):
        result = cli_runner.invoke(app, ["create-survey", "not-a-uuid", "q1", "--title", "X"])
        assert result.exit_code == 1
        assert "Not a business id" in result.output

    def test_create_api_key(self, cli_runner, business_id):
        result = cli_runner.invoke(app, ["create-api-key", business_id, "--name", "ci"])
        assert result.exit_code == 0
        assert "Token: ck_" in result.output

    def test_set_and_clear_webhook(self, cli_runner, business_id):
        result = cli_runner.invoke(
            app, ["set-webhook", business_id, "--url", "https://new.example.com/hook"]
        )
        assert result.exit_code == 0
        assert "Secret: whk_" in result.output

        cleared = cli_runner.invoke(app, ["set-webhook", business_id])
        assert cleared.exit_code == 0
        assert "Webhook cleared" in cleared.output


class TestMint:
    def test_mint_json(self, cli_runner, session_factory, business_id):
        cli_runner.invoke(app, ["create-survey", business_id, "q1-nps", "--title", "Q1 NPS"])

        result = cli_runner.invoke(app, ["mint", business_id, "q1-nps", "user_42", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert sorted(data["links"], key=int) == [str(s) for s in range(11)]
        assert _count(session_factory, SurveyLink) == 11

    def test_mint_table(self, cli_runner, business_id):
        cli_runner.invoke(app, ["create-survey", business_id, "q1-nps", "--title", "Q1 NPS"])

        result = cli_runner.invoke(app, ["mint", business_id, "q1-nps", "user_42"])
        assert result.exit_code == 0
        assert "Links for user_42" in result.output

    def test_mint_unknown_survey(self, cli_runner, session_factory, business_id):
        result = cli_runner.invoke(app, ["mint", business_id, "missing", "user_42"])
        assert result.exit_code == 1
        assert "Survey 'missing' not found" in result.output
        assert _count(session_factory, SurveyLink) == 0

    def test_mint_bad_ttl(self, cli_runner, business_id):
        cli_runner.invoke(app, ["create-survey", business_id, "q1-nps", "--title", "Q1 NPS"])

        result = cli_runner.invoke(app, ["mint", business_id, "q1-nps", "user_42", "--ttl-days", "0"])
        assert result.exit_code == 1
        assert "ttl_days must be an integer" in result.output


class TestDispatch:
    def test_dispatch_delivers_due_entries(self, cli_runner, session_factory, business_id):
        async def _queue():
            async with session_factory() as db:
                business = await business_svc.get_business(db, uuid.UUID(business_id))
                await webhook_svc.schedule_webhook(db, business, "q1-nps", "user_1", 9, delay_seconds=0)

        asyncio.run(_queue())

        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(200)

        dispatcher = WebhookDispatcher(
            session_factory=session_factory,
            client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        with patch("clicknps.worker.dispatcher", dispatcher):
            result = cli_runner.invoke(app, ["dispatch"])

        assert result.exit_code == 0
        assert "Processed 1 webhook(s)." in result.output
        assert received[0]["score"] == 9
        assert _count(session_factory, WebhookDelivery) == 1

    def test_dispatch_nothing_due(self, cli_runner, session_factory):
        dispatcher = WebhookDispatcher(session_factory=session_factory)
        with patch("clicknps.worker.dispatcher", dispatcher):
            result = cli_runner.invoke(app, ["dispatch"])
        assert result.exit_code == 0
        assert "Processed 0 webhook(s)." in result.output
