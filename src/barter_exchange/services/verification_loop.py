"""Background scheduling for the verification service.

Two asyncio tasks run for the lifetime of the application: one checks the
mempool every ``verification_interval`` seconds, the other expires stale
pending transactions every ``cleanup_interval`` seconds. Each awaits a full
run before sleeping, so runs of the same job never overlap. A failing run
is logged and the next one still happens.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from barter_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from barter_exchange.services.verification_service import VerificationService

logger = get_logger(__name__)


class VerificationLoop:
    """Starts and stops the periodic verification and cleanup tasks.

    Usage:
        loop = VerificationLoop(service, verification_interval=30, cleanup_interval=3600)
        loop.start()
        ...
        await loop.stop()
    """

    def __init__(
        self,
        service: VerificationService,
        verification_interval: float = 30.0,
        cleanup_interval: float = 3600.0,
    ) -> None:
        self._service = service
        self._verification_interval = verification_interval
        self._cleanup_interval = cleanup_interval
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        """Schedule both jobs on the running event loop. Calling it twice is a no-op."""
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(
                self._run_forever("verification", self._service.run_tick, self._verification_interval),
                name="verification-tick",
            ),
            asyncio.create_task(
                self._run_forever("stale_cleanup", self._service.cleanup_stale, self._cleanup_interval),
                name="verification-stale-cleanup",
            ),
        ]
        logger.info(
            "verification.loop_started",
            verification_interval=self._verification_interval,
            cleanup_interval=self._cleanup_interval,
        )

    async def stop(self) -> None:
        """Cancel both tasks and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("verification.loop_stopped")

    async def _run_forever(
        self,
        job_name: str,
        job: Callable[[], Awaitable[Any]],
        interval: float,
    ) -> None:
        run = 0
        while True:
            run += 1
            with structlog.contextvars.bound_contextvars(job=job_name, run=run):
                try:
                    await job()
                except Exception:
                    logger.exception("verification.run_failed")
            await asyncio.sleep(interval)
