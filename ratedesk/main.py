#!/usr/bin/env python3
"""ratedesk.

Fetches currency and precious-metal quotes from the primary database and the
bridge, gold and central bank feeds, reconciles them per source and keeps a
durable JSON snapshot that survives partial upstream outages.

Run as a long-lived refresher, or with --once to refresh and print the snapshot.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .src.errors import ConfigError
from .src.RateReconciler import RateReconciler
from .src.RateRecord import now_timestamp
from .src.RefreshCoordinator import RefreshCoordinator
from .src.SnapshotService import SnapshotService
from .src.SnapshotStore import SnapshotStore
from .src.SourceConfig import DEFAULT_SOURCES, build_source_configs, parse_source_names

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser; every option defaults from the environment."""
    parser = argparse.ArgumentParser(
        description="ratedesk: Multi-source quote snapshot refresher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Sources:
  {', '.join(DEFAULT_SOURCES)}

Examples:
  # Refresh every minute into data/snapshot.json
  python -m ratedesk.main

  # One refresh of two sources, print the snapshot
  python -m ratedesk.main --sources goldfeed,centralbank --once

Environment variables (CLI args take precedence):
  SNAPSHOT_PATH, REFRESH_PERIOD, MIN_REFRESH_INTERVAL, CACHE_TTL_SECONDS,
  FETCH_TIMEOUT, SOURCES, TIMEZONE,
  PRIMARY_DB_URL, PRIMARY_DB_TABLE, BRIDGE_FEED_URL, GOLD_FEED_URL, CENTRAL_BANK_URL
""",
    )

    parser.add_argument(
        "--snapshot-path",
        dest="snapshot_path",
        type=str,
        help="Snapshot JSON file (default: data/snapshot.json)",
        default=os.environ.get("SNAPSHOT_PATH") or "data/snapshot.json",
    )

    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated sources. Available: {', '.join(DEFAULT_SOURCES)}",
        default=os.environ.get("SOURCES") or ",".join(DEFAULT_SOURCES),
    )

    parser.add_argument(
        "--refresh-period",
        dest="refresh_period",
        type=int,
        help="Seconds between background refreshes (minimum: 1, default: 60)",
        default=int(os.environ.get("REFRESH_PERIOD") or "60"),
    )

    parser.add_argument(
        "--min-interval",
        dest="min_interval",
        type=float,
        help="Minimum seconds between on-demand refreshes (default: 15)",
        default=float(os.environ.get("MIN_REFRESH_INTERVAL") or "15"),
    )

    parser.add_argument(
        "--cache-ttl",
        dest="cache_ttl",
        type=int,
        help="Seconds clients may treat a snapshot as fresh (default: 60)",
        default=int(os.environ.get("CACHE_TTL_SECONDS") or "60"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for one source fetch in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--timezone",
        type=str,
        help="Timezone for record timestamps (default: system local time)",
        default=os.environ.get("TIMEZONE"),
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single refresh, print the snapshot as JSON and exit",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser


def build_service(args: argparse.Namespace) -> SnapshotService:
    """Wire store, reconciler, coordinator and service from parsed arguments.

    :raises ConfigError: If sources, timeout or timezone are invalid.
    """
    names = parse_source_names(args.sources)
    configs = build_source_configs(names, timeout=args.fetch_timeout)

    tz = None
    if args.timezone:
        try:
            tz = ZoneInfo(args.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown timezone '{args.timezone}'") from e

    # The file always carries every source; unselected ones keep their saved maps.
    store = SnapshotStore(
        args.snapshot_path, list(DEFAULT_SOURCES), cache_ttl_seconds=args.cache_ttl
    )
    coordinator = RefreshCoordinator(
        store=store,
        sources=configs,
        min_interval=args.min_interval,
        reconciler=RateReconciler(clock=lambda: now_timestamp(tz)),
    )
    return SnapshotService(store, coordinator)


async def run_once(service: SnapshotService) -> int:
    """Refresh once and print the snapshot.

    :returns: Process exit status (1 if the snapshot could not be saved).
    """
    try:
        outcome = await service.force_refresh_now()
    finally:
        await service.coordinator.close()
    print(json.dumps(service.render(), ensure_ascii=False, indent=2))
    return 0 if outcome is not None and outcome.saved else 1


async def run_forever(service: SnapshotService, period: int) -> None:
    try:
        await service.coordinator.run_forever(period)
    finally:
        await service.coordinator.close()


def main() -> None:
    """Main entry point for the ratedesk CLI."""
    parser = build_parser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if args.refresh_period < 1:
        parser.error("--refresh-period must be at least 1 second")

    if args.cache_ttl < 0:
        parser.error("--cache-ttl must not be negative")

    if args.min_interval < 0:
        parser.error("--min-interval must not be negative")

    try:
        service = build_service(args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    # Log configuration
    logger.info("=" * 60)
    logger.info("ratedesk - Quote Snapshot Refresher")
    logger.info("=" * 60)
    snapshot = service.store.load()
    state = "empty" if snapshot.is_empty else f"generated {snapshot.generated_at}"
    logger.info(f"Snapshot:          {args.snapshot_path} ({state})")
    for config in service.coordinator.sources:
        logger.info(f"Source:            {config.name} ({config.fetcher})")
    logger.info(f"Refresh Period:    {args.refresh_period}s")
    logger.info(f"Min Interval:      {args.min_interval}s")
    logger.info(f"Cache TTL:         {args.cache_ttl}s")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    logger.info(f"Timezone:          {args.timezone or 'local'}")
    logger.info("=" * 60)

    try:
        if args.once:
            sys.exit(asyncio.run(run_once(service)))
        asyncio.run(run_forever(service, args.refresh_period))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
