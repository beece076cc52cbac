"""
Background sweep that deletes expired refresh-token sessions.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from portal.adapters.sessions import SessionStore
from portal.models.schemas import utcnow
from portal.observability.metrics import get_metrics_collector

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 24 * 60 * 60


class SessionCleanupScheduler:
    """Runs one sweep on start, then one every ``interval_seconds``."""

    def __init__(
        self,
        sessions: SessionStore,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.sessions = sessions
        self.interval_seconds = interval_seconds
        self.clock = clock or utcnow
        self.last_sweep_at: Optional[datetime] = None
        self.last_deleted_count: int = 0
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.metrics = get_metrics_collector()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sweep loop. Calling it while running is a no-op."""
        if self._running:
            logger.debug("Session cleanup already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        self.metrics.set_cleanup_running(True)
        logger.info(f"Session cleanup started (interval {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the sweep loop. Safe to call when not running."""
        if not self._running and self._task is None:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.metrics.set_cleanup_running(False)
        logger.info("Session cleanup stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await self.run_sweep()
            await asyncio.sleep(self.interval_seconds)

    async def run_sweep(self) -> int:
        """
        Delete every session whose expiry has passed.

        Store failures are logged and reported as zero deletions; they never
        propagate to the caller.

        Returns:
            Number of sessions deleted
        """
        now = self.clock()
        try:
            deleted = await self.sessions.delete_expired_sessions(now)
        except Exception as e:
            logger.error(f"Session cleanup failed: {e}", exc_info=True)
            self.metrics.record_cleanup(False)
            return 0

        self.last_sweep_at = now
        self.last_deleted_count = deleted
        self.metrics.record_cleanup(True, deleted)
        if deleted:
            logger.info(f"Cleaned up {deleted} expired sessions")
        return deleted

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self._running,
            "last_sweep_at": self.last_sweep_at.isoformat() if self.last_sweep_at else None,
            "last_deleted_count": self.last_deleted_count,
        }
