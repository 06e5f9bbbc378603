"""Periodic background eviction of expired attachments and tokens."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from services.attachment_manager import AttachmentManager, CleanupReport

logger = logging.getLogger(__name__)


class EvictionSweeper:
    """Cancellable asyncio task that sweeps an ``AttachmentManager`` on a fixed period.

    ``start`` runs one pass before scheduling the loop, ``stop`` cancels the
    loop and waits at most ``stop_timeout`` seconds for it to finish.
    """

    def __init__(
        self,
        manager: AttachmentManager,
        *,
        interval_seconds: float = 600.0,
        stop_timeout: float = 5.0,
        purge_orphans_on_start: bool = False,
    ) -> None:
        self.manager = manager
        self.interval_seconds = max(interval_seconds, 0.01)
        self.stop_timeout = stop_timeout
        self.purge_orphans_on_start = purge_orphans_on_start
        self._task: Optional[asyncio.Task] = None
        self.passes_completed = 0
        self.last_report: Optional[CleanupReport] = None

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running():
            await self.stop()
            if self.is_running():
                logger.warning("Previous eviction loop is still running; not starting another")
                return

        logger.info("Attachment eviction sweeper started (interval=%ss)", self.interval_seconds)
        await self.run_once(purge_orphans=self.purge_orphans_on_start)
        self._task = asyncio.create_task(self._loop(), name="attachment-eviction-sweeper")

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        if task.done():
            self._task = None
            return
        task.cancel()
        done, _ = await asyncio.wait({task}, timeout=self.stop_timeout)
        if not done:
            # Still tracked until the loop actually exits
            logger.warning(
                "Attachment eviction sweeper did not stop within %ss", self.stop_timeout
            )
            return
        self._task = None
        logger.info("Attachment eviction sweeper stopped")

    async def run_once(self, *, purge_orphans: bool = False) -> Optional[CleanupReport]:
        """Run a single pass. Failures are logged and reported as None."""
        try:
            report = await self.manager.run_cleanup(purge_orphans=purge_orphans)
        except Exception as exc:
            logger.exception("Attachment eviction pass failed: %s", exc)
            return None

        self.passes_completed += 1
        self.last_report = report
        if report.total:
            logger.info(
                "Eviction pass removed %d attachment(s), %d token(s), %d orphan blob(s), %d partial write(s)",
                report.attachments_removed,
                report.tokens_removed,
                report.orphans_removed,
                report.partials_removed,
            )
        return report

    async def _loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once()
        except asyncio.CancelledError:
            logger.debug("Attachment eviction loop cancelled")
            raise
