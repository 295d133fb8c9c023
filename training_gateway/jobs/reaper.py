"""Background sweep that fails jobs whose callback never arrived.

Off unless STALE_JOB_TIMEOUT_MINUTES is set. Without it a job whose
workflow trigger was lost stays in `training` until the process exits.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from training_gateway.jobs.service import JobService

logger = logging.getLogger(__name__)


class StaleJobReaper:
    """Periodically expires jobs stuck in training via JobService."""

    def __init__(self, service: JobService, timeout: timedelta, interval: float = 60.0):
        self._service = service
        self._timeout = timeout
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "Stale job reaper started (timeout %s, every %.0fs)", self._timeout, self._interval
        )

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def sweep(self) -> int:
        return len(self._service.expire_stale_jobs(self._timeout))

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break
            try:
                self.sweep()
            except Exception:
                logger.exception("Stale job sweep failed")
