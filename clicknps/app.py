"""FastAPI application for ClickNPS."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import settings
from .errors import NPSError
from .worker import dispatcher

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Auto-create tables for SQLite (local dev)
    if "sqlite" in settings.database_url:
        from .database import engine
        from .models import Base
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    if settings.is_production and not settings.crypto_pepper:
        raise RuntimeError(
            "NPS_CRYPTO_PEPPER must be set in production. "
            "API keys are hashed with it and cannot be verified without it."
        )
    dispatcher.start()
    yield
    await dispatcher.stop()


app = FastAPI(title=settings.app_title, lifespan=lifespan)


@app.exception_handler(NPSError)
async def nps_error_handler(request: Request, exc: NPSError):
    if exc.status_code >= 500:
        logger.error("Request to %s failed: %s", request.url.path, exc.detail)
    if request.url.path.startswith("/api/"):
        detail = exc.public_message if exc.status_code >= 500 else exc.detail
        return JSONResponse({"detail": detail}, status_code=exc.status_code)
    # Respondents only ever see the fixed public message.
    return PlainTextResponse(exc.public_message, status_code=exc.status_code)


# Import and register routers
from .routers import api, health, responses, webhooks  # noqa: E402

app.include_router(responses.router)
app.include_router(api.router)
app.include_router(webhooks.router)
app.include_router(health.router)
