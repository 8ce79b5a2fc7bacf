"""Polling loop that dispatches due workflows to the runner."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Optional

from .constants import DEFAULT_BATCH_SIZE, DEFAULT_IDLE_INTERVAL, DEFAULT_LEASE_TTL

if TYPE_CHECKING:
    from .engine import WorkflowEngine

logger = logging.getLogger(__name__)


class SchedulerLoop:
    """Claims due workflow records and runs them, sleeping when idle.

    Several loops, in one process or many, can share a repository: the
    lease stamped by ``claim_due`` keeps them from running the same record
    at the same time.
    """

    def __init__(
        self,
        engine: "WorkflowEngine",
        idle_interval: timedelta = DEFAULT_IDLE_INTERVAL,
        lease_ttl: timedelta = DEFAULT_LEASE_TTL,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._engine = engine
        self.idle_interval = idle_interval
        self.lease_ttl = lease_ttl
        self.batch_size = batch_size
        self._wake = asyncio.Event()

    def wake(self) -> None:
        """Cut the current idle sleep short; running work is not affected."""
        self._wake.set()

    async def process_once(self) -> int:
        repository = self._engine.repository
        pending = await repository.claim_due(
            repository.clock.utc_now, self.lease_ttl, self.batch_size
        )
        for record in pending:
            try:
                await self._engine.runner.run(record)
            except Exception:
                logger.exception(f"Failed to process workflow {record.id}")
        return len(pending)

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Poll until ``stop`` is set; the batch in progress always finishes."""
        stop = stop or asyncio.Event()
        logger.info("Started executing workflow jobs")
        while not stop.is_set():
            self._wake.clear()
            try:
                total = await self.process_once()
                if total > 0:
                    # keep draining while there is due work
                    continue
            except Exception:
                logger.exception("Failed to poll for due workflows")
            await self._sleep(stop)
        logger.info("Stopped executing workflow jobs")

    async def _sleep(self, stop: asyncio.Event) -> None:
        waiters = {
            asyncio.ensure_future(self._wake.wait()),
            asyncio.ensure_future(stop.wait()),
        }
        try:
            await asyncio.wait(
                waiters,
                timeout=self.idle_interval.total_seconds(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                waiter.cancel()
