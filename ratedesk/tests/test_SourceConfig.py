"""Unit tests for source configuration."""

import pytest

from ratedesk.src.errors import ConfigError
from ratedesk.src.SourceConfig import (
    DEFAULT_SOURCES,
    build_source_configs,
    parse_source_names,
)


class TestParseSourceNames:
    """Test the comma-separated source list parser."""

    @pytest.mark.parametrize("value", [None, "", "  "])
    def test_empty_means_all(self, value) -> None:
        """An empty list should select every source in snapshot order."""
        assert parse_source_names(value) == list(DEFAULT_SOURCES)

    def test_case_insensitive(self) -> None:
        """Names should match regardless of case and keep the given order."""
        assert parse_source_names("goldfeed, PRIMARY") == ["GoldFeed", "Primary"]

    def test_trailing_comma(self) -> None:
        """Blank items should be ignored."""
        assert parse_source_names("centralbank,") == ["CentralBank"]

    def test_unknown_source(self) -> None:
        """Unknown names should be rejected."""
        with pytest.raises(ConfigError, match="Unknown source 'coinfeed'"):
            parse_source_names("primary,coinfeed")

    def test_duplicate_source(self) -> None:
        """A source listed twice should be rejected."""
        with pytest.raises(ConfigError, match="listed twice"):
            parse_source_names("GoldFeed,goldfeed")


class TestBuildSourceConfigs:
    """Test building SourceConfigs from the environment."""

    def test_defaults(self) -> None:
        """Without overrides each source should use its default endpoint."""
        configs = build_source_configs(list(DEFAULT_SOURCES), env={})

        assert [c.name for c in configs] == list(DEFAULT_SOURCES)
        assert [c.fetcher for c in configs] == [
            "primary",
            "bridgefeed",
            "goldfeed",
            "centralbank",
        ]
        gold = configs[2]
        assert gold.url == "https://canlipiyasalar.haremaltin.com/tmp/altin.json?dil_kodu=tr"
        assert gold.timeout == 10.0

    def test_only_bridge_repairs_names(self) -> None:
        """Name repair should be enabled for the bridge feed only."""
        configs = build_source_configs(list(DEFAULT_SOURCES), env={})
        assert [c.name for c in configs if c.fix_names] == ["BridgeFeed"]

    def test_environment_overrides(self) -> None:
        """Endpoint variables should repoint sources."""
        env = {
            "PRIMARY_DB_URL": "postgresql://quotes@db/quotes",
            "PRIMARY_DB_TABLE": "fx.rates",
            "GOLD_FEED_URL": "https://mirror.test/altin.json",
        }
        primary, gold = build_source_configs(["Primary", "GoldFeed"], timeout=3.5, env=env)

        assert primary.url == "postgresql://quotes@db/quotes"
        assert primary.options == {"table": "fx.rates"}
        assert gold.url == "https://mirror.test/altin.json"
        assert gold.options == {}
        assert gold.timeout == 3.5

    def test_non_positive_timeout(self) -> None:
        """A zero timeout should be rejected."""
        with pytest.raises(ConfigError):
            build_source_configs(["GoldFeed"], timeout=0, env={})

    def test_unknown_name(self) -> None:
        """Names without defaults should be rejected."""
        with pytest.raises(ConfigError):
            build_source_configs(["Nope"], env={})
