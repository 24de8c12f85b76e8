"""SourceHealth: Per-source failure tracking with exponential backoff.

A source whose fetch fails (error, timeout, unparsable payload) sits out the
next refresh cycles for a growing period: 5 s, 10 s, 20 s ... capped at five
minutes. One successful fetch clears the backoff. Sitting out a cycle means
"no new data", so the source's last saved records stay in the snapshot.

.. code-block:: python

    >>> health = SourceHealth(["Primary", "GoldFeed"])
    >>> health.record_failure("GoldFeed", "HTTP 429: Too Many Requests")
    5.0
    >>> health.is_source_active("GoldFeed")
    False
"""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass
class SourceStatus:
    """Health of a single source.

    :ivar consecutive_failures: Failures since the last success.
    :ivar backoff_until: Unix timestamp when the source may be fetched again.
    :ivar total_failures: Failures since tracking began.
    :ivar total_successes: Successes since tracking began.
    :ivar last_error: Message of the most recent failure.
    :ivar last_success_at: Unix timestamp of the most recent success.
    """

    consecutive_failures: int = 0
    backoff_until: float = 0.0
    total_failures: int = 0
    total_successes: int = 0
    last_error: str | None = None
    last_success_at: float | None = None


class SourceHealth:
    """Tracks source failures and decides which sources to fetch.

    :ivar base_backoff_seconds: Backoff after the first failure.
    :ivar max_backoff_seconds: Upper bound for the backoff.
    """

    DEFAULT_BASE_BACKOFF_SECONDS = 5.0
    DEFAULT_MAX_BACKOFF_SECONDS = 300.0

    def __init__(
        self,
        sources: list[str],
        base_backoff_seconds: float = DEFAULT_BASE_BACKOFF_SECONDS,
        max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS,
    ) -> None:
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self._status: dict[str, SourceStatus] = {s: SourceStatus() for s in sources}

    def _get(self, source: str) -> SourceStatus:
        if source not in self._status:
            self._status[source] = SourceStatus()
        return self._status[source]

    def record_failure(self, source: str, error: str | None = None) -> float:
        """Record a failed fetch and start (or extend) the backoff.

        :param source: Source name.
        :param error: Failure description kept for status reporting.
        :returns: Backoff duration in seconds.
        """
        status = self._get(source)
        status.consecutive_failures += 1
        status.total_failures += 1
        status.last_error = error

        backoff_seconds = min(
            self.base_backoff_seconds * (2 ** (status.consecutive_failures - 1)),
            self.max_backoff_seconds,
        )
        status.backoff_until = time.time() + backoff_seconds
        return backoff_seconds

    def record_success(self, source: str) -> None:
        """Record a successful fetch, clearing any backoff."""
        status = self._get(source)
        status.consecutive_failures = 0
        status.backoff_until = 0.0
        status.total_successes += 1
        status.last_success_at = time.time()

    def is_source_active(self, source: str) -> bool:
        """Check if a source may be fetched now.

        Unknown sources are treated as active.
        """
        status = self._status.get(source)
        if status is None:
            return True
        return time.time() >= status.backoff_until

    def get_backoff_remaining(self, source: str) -> float:
        """Seconds until the source leaves backoff (0 if active)."""
        status = self._status.get(source)
        if status is None:
            return 0.0
        return max(0.0, status.backoff_until - time.time())

    def get_source_status(self, source: str) -> SourceStatus | None:
        return self._status.get(source)
