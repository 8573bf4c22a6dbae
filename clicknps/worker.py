"""Background dispatcher that delivers due webhook queue entries."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

import httpx

from .config import settings
from .database import async_session_factory
from .services.dispatch_svc import process_due

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """Polls the webhook queue and delivers entries whose time has come."""

    def __init__(
        self,
        session_factory=None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ) -> None:
        self._session_factory = session_factory or async_session_factory
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=settings.webhook_timeout_seconds)
        )
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._processing = False

    @property
    def running(self) -> bool:
        return self._task is not None

    def status(self) -> dict:
        return {"running": self.running, "processing": self._processing}

    def start(self) -> None:
        if self._task is not None or not settings.dispatch_worker_enabled:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="webhook-dispatcher")
        logger.info("Webhook dispatcher started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
            logger.info("Webhook dispatcher stopped")

    async def run_once(self) -> int:
        """Process one batch of due entries. Overlapping calls are skipped."""
        if self._processing:
            return 0
        self._processing = True
        try:
            async with self._session_factory() as db, self._client_factory() as client:
                return await process_due(db, client=client)
        finally:
            self._processing = False

    async def run_forever(self) -> None:
        self._stop_event.clear()
        await self._run_loop()

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Webhook dispatcher loop failed")

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=settings.dispatch_poll_interval_seconds
                )
            except asyncio.TimeoutError:
                pass


dispatcher = WebhookDispatcher()
