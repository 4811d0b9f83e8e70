"""
Source polling scheduler.

Background task that periodically fetches every active source that is due.
"""

import asyncio
import logging
from datetime import datetime

from .domain.events import utcnow
from .services import FetchOrchestrator

logger = logging.getLogger(__name__)


class PollingScheduler:
    """
    Background scheduler for source polling.

    Each tick asks the orchestrator to fetch all active sources; sources
    whose polling interval has not elapsed are skipped by the orchestrator.
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        interval_seconds: int = 300,
        initial_delay: float = 10,
    ):
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.initial_delay = initial_delay
        self._task: asyncio.Task | None = None
        self._running = False
        self.last_poll_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the polling scheduler."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Polling scheduler started (interval: {self.interval_seconds} seconds)")

    async def stop(self):
        """Stop the polling scheduler."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Polling scheduler stopped")

    async def poll_now(self):
        """Trigger an immediate poll."""
        logger.info("Triggering immediate source poll")
        return await self._do_poll()

    async def _poll_loop(self):
        """Main polling loop."""
        # Initial delay to let the server fully start
        await asyncio.sleep(self.initial_delay)

        while self._running:
            await self._do_poll()
            await asyncio.sleep(self.interval_seconds)

    async def _do_poll(self):
        """Perform a single poll operation."""
        self.last_poll_at = utcnow()
        logger.debug(f"Polling sources at {self.last_poll_at.isoformat()}")
        try:
            return await self.orchestrator.fetch_all()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Source poll error: {e}")
            return []
