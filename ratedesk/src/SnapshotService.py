"""SnapshotService: Read side used by whatever serves quotes to clients.

Clients always get the last durable snapshot. When that snapshot is older
than its cacheTtlSeconds, a background refresh is scheduled and the stale
snapshot is returned anyway; the refreshed data is visible on the next call.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from .RateRecord import parse_iso
from .RefreshCoordinator import RefreshCoordinator, RefreshOutcome
from .SnapshotStore import Snapshot, SnapshotStore

logger = logging.getLogger(__name__)


class SnapshotService:
    """Serving façade over the snapshot store and refresh coordinator.

    :ivar store: Store the snapshot is read from.
    :ivar coordinator: Coordinator asked for background refreshes.
    """

    def __init__(self, store: SnapshotStore, coordinator: RefreshCoordinator) -> None:
        self.store = store
        self.coordinator = coordinator
        self._snapshot: Snapshot | None = None
        self._mtime_ns: int | None = None
        self._background: asyncio.Task | None = None

    def get_snapshot(self) -> Snapshot:
        """Return the current snapshot, scheduling a refresh if it is stale."""
        snapshot = self._current()
        if self.is_stale(snapshot):
            self._schedule_refresh()
        return snapshot

    def render(self) -> dict[str, Any]:
        """Return the snapshot as a JSON-serializable response body."""
        return self.get_snapshot().to_document()

    async def force_refresh_now(self) -> RefreshOutcome | None:
        """Refresh immediately, ignoring min interval and source backoff.

        :returns: The cycle's outcome, or None if a refresh was already running.
        """
        outcome = await self.coordinator.trigger(force=True)
        self._mtime_ns = None
        return outcome

    @staticmethod
    def is_stale(snapshot: Snapshot, now: datetime | None = None) -> bool:
        """Check whether a snapshot is older than its TTL (or was never saved)."""
        generated = parse_iso(snapshot.generated_at)
        if generated is None:
            return True
        now = now or datetime.now(timezone.utc)
        return (now - generated).total_seconds() > snapshot.cache_ttl_seconds

    def _current(self) -> Snapshot:
        """Reload from disk only when the file changed since the last read."""
        try:
            mtime_ns: int | None = self.store.path.stat().st_mtime_ns
        except OSError:
            mtime_ns = None

        if self._snapshot is None or mtime_ns is None or mtime_ns != self._mtime_ns:
            self._snapshot = self.store.load()
            self._mtime_ns = mtime_ns
        return self._snapshot

    def _schedule_refresh(self) -> None:
        if self._background is not None and not self._background.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Snapshot is stale but no event loop is running")
            return
        logger.debug("Snapshot is stale, scheduling background refresh")
        self._background = loop.create_task(self.coordinator.trigger())
        self._background.add_done_callback(self._log_refresh_failure)

    @staticmethod
    def _log_refresh_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.exception("Background refresh crashed", exc_info=error)
