"""Background retention sweeper for the checkpoint store."""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from ..exceptions import CheckpointError
from ..models.checkpoint_models import CleanupReport

if TYPE_CHECKING:
    from .checkpoint_service import TieredCheckpointStore

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """
    Periodically applies the store's retention policy.

    Runs as an independent asyncio task. Failures are logged and never reach
    foreground callers; the next sweep runs on schedule regardless.
    """

    def __init__(self, store: "TieredCheckpointStore", interval_seconds: float):
        """
        Initialize the sweeper.

        Args:
            store: Store to sweep
            interval_seconds: Delay between sweeps
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.store = store
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self.last_report: Optional[CleanupReport] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Retention sweeper started (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Retention sweeper stopped")

    async def run_once(self) -> Optional[CleanupReport]:
        """
        Run a single sweep.

        Returns:
            Sweep report, or None if the sweep could not run
        """
        try:
            report = await self.store.cleanup()
        except CheckpointError as e:
            logger.error(f"Retention sweep failed: {e}")
            return None

        self.last_report = report
        if report.failed_threads:
            logger.warning(
                f"Retention sweep skipped {len(report.failed_threads)} thread(s): "
                f"{sorted(report.failed_threads)}"
            )
        return report

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()
