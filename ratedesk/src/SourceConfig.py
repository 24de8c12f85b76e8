"""SourceConfig: The set of upstream sources, described as data.

Each source pairs a snapshot name with a registered fetcher and its endpoint.
Endpoints come from environment variables so that deployments can repoint a
source without code changes.

.. code-block:: python

    >>> configs = build_source_configs(["GoldFeed"], env={})
    >>> configs[0].fetcher, configs[0].fix_names
    ('goldfeed', False)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from .errors import ConfigError

# Sources in snapshot order.
DEFAULT_SOURCES: tuple[str, ...] = ("Primary", "BridgeFeed", "GoldFeed", "CentralBank")


@dataclass
class SourceConfig:
    """Configuration for one upstream source.

    :ivar name: Snapshot key for the source (e.g. "GoldFeed").
    :ivar fetcher: Registered fetcher name (e.g. "goldfeed").
    :ivar url: Endpoint URL or database URL.
    :ivar fix_names: Repair mis-encoded display names from this source.
    :ivar timeout: Seconds allowed for one fetch before it is abandoned.
    :ivar options: Extra fetcher keyword arguments.
    """

    name: str
    fetcher: str
    url: str
    fix_names: bool = False
    timeout: float = 10.0
    options: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class _SourceDefaults:
    fetcher: str
    url_env: str
    default_url: str
    fix_names: bool = False


SOURCE_DEFAULTS: dict[str, _SourceDefaults] = {
    "Primary": _SourceDefaults(
        fetcher="primary",
        url_env="PRIMARY_DB_URL",
        default_url="sqlite:///data/primary.db",
    ),
    "BridgeFeed": _SourceDefaults(
        fetcher="bridgefeed",
        url_env="BRIDGE_FEED_URL",
        default_url="http://127.0.0.1:8080/rates.json",
        fix_names=True,
    ),
    "GoldFeed": _SourceDefaults(
        fetcher="goldfeed",
        url_env="GOLD_FEED_URL",
        default_url="https://canlipiyasalar.haremaltin.com/tmp/altin.json?dil_kodu=tr",
    ),
    "CentralBank": _SourceDefaults(
        fetcher="centralbank",
        url_env="CENTRAL_BANK_URL",
        default_url="https://www.tcmb.gov.tr/kurlar/today.xml",
    ),
}


def parse_source_names(value: str | None) -> list[str]:
    """Parse a comma-separated source list, matching names case-insensitively.

    :param value: e.g. "primary,GoldFeed". Empty means all sources.
    :returns: Canonical source names in the order given.
    :raises ConfigError: If a name is unknown or repeated.
    """
    if not value or not value.strip():
        return list(DEFAULT_SOURCES)

    by_lower = {name.lower(): name for name in DEFAULT_SOURCES}
    names: list[str] = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        name = by_lower.get(item.lower())
        if name is None:
            raise ConfigError(
                f"Unknown source '{item}'. Available: {', '.join(DEFAULT_SOURCES)}"
            )
        if name in names:
            raise ConfigError(f"Source '{name}' listed twice")
        names.append(name)
    return names


def build_source_configs(
    names: list[str],
    timeout: float = 10.0,
    env: Mapping[str, str] | None = None,
) -> list[SourceConfig]:
    """Build SourceConfigs for the given sources from the environment.

    Recognized variables: PRIMARY_DB_URL, PRIMARY_DB_TABLE, BRIDGE_FEED_URL,
    GOLD_FEED_URL, CENTRAL_BANK_URL.

    :param names: Canonical source names.
    :param timeout: Per-fetch timeout in seconds.
    :param env: Environment mapping (default: os.environ).
    :returns: One SourceConfig per name.
    :raises ConfigError: If a source is unknown or the timeout is not positive.
    """
    if env is None:
        env = os.environ
    if timeout <= 0:
        raise ConfigError("fetch timeout must be positive")

    configs: list[SourceConfig] = []
    for name in names:
        defaults = SOURCE_DEFAULTS.get(name)
        if defaults is None:
            raise ConfigError(f"No defaults for source '{name}'")
        url = env.get(defaults.url_env) or defaults.default_url
        options: dict[str, str] = {}
        if name == "Primary" and env.get("PRIMARY_DB_TABLE"):
            options["table"] = env["PRIMARY_DB_TABLE"]
        configs.append(
            SourceConfig(
                name=name,
                fetcher=defaults.fetcher,
                url=url,
                fix_names=defaults.fix_names,
                timeout=timeout,
                options=options,
            )
        )
    return configs
