"""
Quote source adapters.

Each adapter turns one upstream (relational store, JSON feed, XML feed)
into a list of IncomingQuote for the reconciler.

Usage:
    from ratedesk.src.fetchers import get_fetcher, get_available_fetchers
    from ratedesk.src.SourceConfig import build_source_configs

    # Get list of available fetchers
    available = get_available_fetchers()
    # ['bridgefeed', 'centralbank', 'goldfeed', 'primary']

    # Create a fetcher for a configured source
    config = build_source_configs(["GoldFeed"])[0]
    fetcher = get_fetcher(config)
    quotes = await fetcher.fetch_quotes()
"""

# Import base classes and utilities
from .base import (
    FETCHER_REGISTRY,
    BaseFetcher,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)

# Import all fetcher implementations to trigger registration
from .bridgefeed import BridgeFeedFetcher
from .centralbank import CentralBankFetcher
from .goldfeed import GoldFeedFetcher
from .primary import PrimaryStoreFetcher

__all__ = [
    # Base classes
    "BaseFetcher",
    # Registry functions
    "register_fetcher",
    "get_fetcher",
    "get_available_fetchers",
    "FETCHER_REGISTRY",
    # Fetcher implementations
    "BridgeFeedFetcher",
    "CentralBankFetcher",
    "GoldFeedFetcher",
    "PrimaryStoreFetcher",
]
