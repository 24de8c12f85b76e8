"""
ratedesk - Multi-source quote snapshot engine

This module merges currency and precious-metal quotes from several
unreliable upstreams into one persisted snapshot:
- RateRecord: Per-code state with the previous value of each field
- RateReconciler: Non-destructive, idempotent merge of one source's quotes
- SnapshotStore: Partial, atomic saves and legacy-tolerant loads
- RefreshCoordinator: Single-flight concurrent refresh of all sources
- SnapshotService: Read side that schedules refreshes when stale
- fetchers: Source adapter implementations
"""

from .RateReconciler import RateReconciler, ReconcileResult
from .RateRecord import IncomingQuote, RateRecord
from .RefreshCoordinator import RefreshCoordinator, RefreshOutcome, RefreshState
from .SnapshotService import SnapshotService
from .SnapshotStore import Snapshot, SnapshotStore
from .SourceConfig import DEFAULT_SOURCES, SourceConfig
from .SourceHealth import SourceHealth, SourceStatus

__all__ = [
    "DEFAULT_SOURCES",
    "IncomingQuote",
    "RateReconciler",
    "RateRecord",
    "ReconcileResult",
    "RefreshCoordinator",
    "RefreshOutcome",
    "RefreshState",
    "Snapshot",
    "SnapshotService",
    "SnapshotStore",
    "SourceConfig",
    "SourceHealth",
    "SourceStatus",
]
