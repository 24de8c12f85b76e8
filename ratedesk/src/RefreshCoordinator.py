"""RefreshCoordinator: Single-flight refresh of every source into the snapshot.

State machine:
    IDLE --(timer, or on-demand trigger past min_interval)--> REFRESHING
    REFRESHING --(all sources settled, snapshot saved)--> IDLE

Triggers arriving while REFRESHING are dropped. Because only one cycle runs
at a time, each source is always reconciled against its own last saved map.

A cycle:
    1. Loads the last saved snapshot
    2. Fetches all active sources concurrently, each bounded by its timeout
    3. Reconciles every successful fetch against that source's saved map
    4. Saves once; failed sources keep their saved records
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from .fetchers import BaseFetcher, get_fetcher
from .RateReconciler import RateReconciler
from .RateRecord import IncomingQuote
from .SnapshotStore import SnapshotStore
from .SourceConfig import SourceConfig
from .SourceHealth import SourceHealth

logger = logging.getLogger(__name__)


class RefreshState(Enum):
    """Refresh lifecycle state of a RefreshCoordinator."""

    IDLE = "idle"
    REFRESHING = "refreshing"


@dataclass
class SourceOutcome:
    """What happened to one source during a cycle.

    :ivar ok: True if quotes were fetched and reconciled.
    :ivar skipped: True if the source was in backoff and not fetched.
    :ivar quotes: Number of quotes received.
    :ivar created: Codes seen for the first time.
    :ivar changed: Codes whose buy or sell moved.
    :ivar error: Failure description, if any.
    """

    ok: bool = False
    skipped: bool = False
    quotes: int = 0
    created: int = 0
    changed: int = 0
    error: str | None = None


@dataclass
class RefreshOutcome:
    """Summary of one refresh cycle.

    :ivar started_at: Unix timestamp the cycle began.
    :ivar finished_at: Unix timestamp the cycle ended.
    :ivar saved: True if the snapshot file was written.
    :ivar sources: Per-source outcome, in configured order.
    """

    started_at: float
    finished_at: float = 0.0
    saved: bool = False
    sources: dict[str, SourceOutcome] = field(default_factory=dict)

    @property
    def failed_sources(self) -> list[str]:
        """Sources that were fetched this cycle but failed or timed out."""
        return [
            name
            for name, outcome in self.sources.items()
            if not outcome.ok and not outcome.skipped
        ]


class RefreshCoordinator:
    """Owns the refresh state and drives fetch → reconcile → save.

    :ivar store: Snapshot store written once per cycle.
    :ivar sources: Configured sources, in snapshot order.
    :ivar fetchers: Source name -> fetcher instance.
    :ivar min_interval: Minimum seconds between on-demand refreshes.
    """

    def __init__(
        self,
        store: SnapshotStore,
        sources: list[SourceConfig],
        fetchers: dict[str, BaseFetcher] | None = None,
        min_interval: float = 15.0,
        reconciler: RateReconciler | None = None,
        health: SourceHealth | None = None,
    ) -> None:
        """Initialize the coordinator.

        :param store: Snapshot store for the configured sources.
        :param sources: Source configurations.
        :param fetchers: Optional prebuilt fetchers by source name
            (default: built from each SourceConfig).
        :param min_interval: Seconds an on-demand trigger must wait after the
            previous refresh (default: 15).
        :param reconciler: Reconciler to use (default: local-time clock).
        :param health: Source health tracker (default: fresh tracker).
        :raises ConfigError: If a source's fetcher cannot be built.
        """
        self.store = store
        self.sources = list(sources)
        self.min_interval = min_interval
        self.reconciler = reconciler or RateReconciler()
        self.health = health or SourceHealth([s.name for s in self.sources])

        if fetchers is None:
            fetchers = {config.name: get_fetcher(config) for config in self.sources}
        self.fetchers = fetchers

        self._state = RefreshState.IDLE
        self._last_refresh = 0.0

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def last_refresh(self) -> float:
        """Unix timestamp of the last completed refresh (0 if none)."""
        return self._last_refresh

    async def trigger(
        self, *, force: bool = False, scheduled: bool = False
    ) -> RefreshOutcome | None:
        """Run a refresh cycle unless one is running or one ran too recently.

        :param force: Ignore min_interval and source backoff (admin use).
        :param scheduled: Timer-driven; ignores min_interval.
        :returns: The cycle's outcome, or None if the trigger was dropped.
        """
        if self._state is RefreshState.REFRESHING:
            logger.debug("Refresh already in progress, trigger dropped")
            return None

        if not (force or scheduled):
            elapsed = time.time() - self._last_refresh
            if elapsed < self.min_interval:
                logger.debug(
                    f"Last refresh {elapsed:.1f}s ago (< {self.min_interval}s), "
                    "trigger dropped"
                )
                return None

        self._state = RefreshState.REFRESHING
        try:
            return await self._refresh(force=force)
        finally:
            self._last_refresh = time.time()
            self._state = RefreshState.IDLE

    async def _refresh(self, *, force: bool) -> RefreshOutcome:
        outcome = RefreshOutcome(started_at=time.time())
        previous = await asyncio.to_thread(self.store.load)

        active: list[SourceConfig] = []
        for config in self.sources:
            if force or self.health.is_source_active(config.name):
                active.append(config)
            else:
                remaining = self.health.get_backoff_remaining(config.name)
                logger.info(f"[{config.name}] In backoff for {remaining:.0f}s, skipping")
                outcome.sources[config.name] = SourceOutcome(skipped=True)

        results = await asyncio.gather(
            *(self._fetch_source(config) for config in active),
            return_exceptions=True,
        )

        updates = {}
        for config, result in zip(active, results, strict=True):
            source_outcome = SourceOutcome()
            outcome.sources[config.name] = source_outcome

            if isinstance(result, BaseException):
                error = self._describe(result, config)
                backoff = self.health.record_failure(config.name, error)
                source_outcome.error = error
                logger.warning(
                    f"[{config.name}] Fetch failed: {error} (backoff {backoff:.0f}s)"
                )
                continue

            self.health.record_success(config.name)
            source_outcome.quotes = len(result)
            if not result:
                logger.warning(f"[{config.name}] Returned no quotes, keeping saved data")
                source_outcome.ok = True
                continue

            merged = self.reconciler.reconcile(
                result, previous.get(config.name), fix_names=config.fix_names
            )
            updates[config.name] = merged.records
            source_outcome.ok = True
            source_outcome.created = len(merged.created)
            source_outcome.changed = len(merged.changed)
            logger.info(
                f"[{config.name}] {len(result)} quotes: "
                f"{len(merged.created)} new, {len(merged.changed)} changed, "
                f"{len(merged.unchanged)} unchanged"
            )

        outcome.saved = await asyncio.to_thread(self.store.save, updates)
        outcome.finished_at = time.time()

        if outcome.saved:
            logger.info(
                f"Refresh done in {outcome.finished_at - outcome.started_at:.2f}s "
                f"(failed: {outcome.failed_sources or 'none'})"
            )
        else:
            logger.error("Refresh failed: snapshot could not be saved")
        return outcome

    async def _fetch_source(self, config: SourceConfig) -> list[IncomingQuote]:
        """Fetch one source, abandoning it after its timeout."""
        fetcher = self.fetchers[config.name]
        return await asyncio.wait_for(fetcher.fetch_quotes(), timeout=config.timeout)

    @staticmethod
    def _describe(error: BaseException, config: SourceConfig) -> str:
        """Render a fetch failure for logs and SourceOutcome.error."""
        if isinstance(error, asyncio.TimeoutError):
            return f"timeout after {config.timeout}s"
        return str(error) or type(error).__name__

    async def run_forever(self, period: float) -> None:
        """Refresh every `period` seconds until cancelled.

        :param period: Seconds between refresh starts (minimum 1).
        """
        period = max(1.0, period)
        logger.info(
            f"Starting refresh loop for {[s.name for s in self.sources]} every {period:.0f}s"
        )
        while True:
            started = time.time()
            try:
                await self.trigger(scheduled=True)
            except Exception:
                logger.exception("Refresh cycle crashed")
            await asyncio.sleep(max(0.0, period - (time.time() - started)))

    async def close(self) -> None:
        """Release fetcher resources and the shared HTTP client."""
        for fetcher in self.fetchers.values():
            await fetcher.close()
        await BaseFetcher.close_shared_client()
