"""Async test fixtures for ClickNPS tests using SQLite."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clicknps.database import get_db
from clicknps.models import Base
from clicknps.services import business_svc, survey_svc

WEBHOOK_URL = "https://hooks.example.com/nps"
WEBHOOK_SECRET = "whk_test_secret"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(engine):
    """HTTPX async test client against the ClickNPS app."""
    from clicknps.app import app

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def business(db: AsyncSession):
    biz = await business_svc.create_business(db, "Acme Coffee")
    return await business_svc.update_webhook_settings(db, biz.id, WEBHOOK_URL, WEBHOOK_SECRET)


@pytest_asyncio.fixture
async def quiet_business(db: AsyncSession):
    """A business with no webhook configured."""
    return await business_svc.create_business(db, "Quiet Tea")


@pytest_asyncio.fixture
async def survey(db: AsyncSession, business):
    created = await survey_svc.create_survey(db, business.id, "q1-nps", "Q1 NPS")
    return await survey_svc.find_survey(db, business.id, created.survey_id)


@pytest_asyncio.fixture
async def api_token(db: AsyncSession, business) -> str:
    _, token = await business_svc.create_api_key(db, business.id, "tests")
    return token


def token_of(url: str) -> str:
    return url.rsplit("/r/", 1)[1]
