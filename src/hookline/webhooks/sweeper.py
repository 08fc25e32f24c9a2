"""Retry sweeper.

Retries are poll-based: a failed attempt only stores ``next_retry_at``,
and the sweeper re-drives every ``retrying`` delivery whose time has come.
Because the schedule lives in the ledger, pending retries survive a
process restart.

Usage::

    sweeper = RetrySweeper(storage, sender, interval_seconds=5.0)
    await sweeper.start()
    ...
    await sweeper.stop()
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from hookline.logging import get_logger
from hookline.models import utcnow

if TYPE_CHECKING:
    from hookline.storage import HooklineStorage

    from .sender import WebhookSender

logger = get_logger(__name__)


class RetrySweeper:
    """Periodically re-attempts due deliveries and purges old ones.

    Passes within one process are serialized by a lock. The loop is
    resilient: an error in one pass is logged and the next pass runs on
    schedule.
    """

    def __init__(
        self,
        storage: HooklineStorage,
        sender: WebhookSender,
        batch_size: int = 100,
        interval_seconds: float = 5.0,
        retention_days: int = 30,
        purge_interval_seconds: float = 3600.0,
    ) -> None:
        self._storage = storage
        self._sender = sender
        self.batch_size = batch_size
        self.interval_seconds = interval_seconds
        self.retention_days = retention_days
        self.purge_interval_seconds = purge_interval_seconds
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._last_purge: datetime | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self, batch_size: int | None = None, now: datetime | None = None) -> int:
        """Attempt every due ``retrying`` delivery, oldest due first.

        Args:
            batch_size: Maximum deliveries this pass. Defaults to the sweeper's.
            now: Reference time for due-ness. Defaults to the current time.

        Returns:
            Number of deliveries attempted. Never raises.
        """
        limit = batch_size or self.batch_size
        async with self._lock:
            try:
                due = await self._storage.get_due_retries(now or utcnow(), limit=limit)
            except Exception:
                logger.exception("Failed to load due retries")
                return 0

            if not due:
                logger.debug("No retries due")
                return 0

            results = await asyncio.gather(
                *(self._sender.attempt(delivery) for delivery in due),
                return_exceptions=True,
            )

        attempted = 0
        for delivery, result in zip(due, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Retry attempt errored",
                    delivery_id=delivery.id,
                    subscription_id=delivery.subscription_id,
                    exc_info=result,
                )
            else:
                attempted += 1

        logger.info("Retry sweep finished", due=len(due), attempted=attempted)
        return attempted

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete terminal deliveries older than the retention window.

        Returns:
            Number of deliveries deleted.
        """
        now = now or utcnow()
        cutoff = now - timedelta(days=self.retention_days)
        purged = await self._storage.purge_deliveries(cutoff)
        self._last_purge = now
        if purged:
            logger.info("Purged expired deliveries", purged=purged, cutoff=cutoff.isoformat())
        return purged

    def _purge_due(self, now: datetime) -> bool:
        if self._last_purge is None:
            return True
        return (now - self._last_purge).total_seconds() >= self.purge_interval_seconds

    async def start(self) -> None:
        """Start the background loop (no-op if already running)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="hookline-retry-sweeper")

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self) -> None:
        logger.info(
            "Retry sweeper started",
            interval_seconds=self.interval_seconds,
            batch_size=self.batch_size,
        )
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.sweep()

                now = utcnow()
                if self._purge_due(now):
                    await self.purge_expired(now)
            except asyncio.CancelledError:
                logger.info("Retry sweeper stopped")
                raise
            except Exception:
                logger.exception("Retry sweeper pass failed")
