"""Unit tests for CLI wiring."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from ratedesk.main import build_parser, build_service, run_once
from ratedesk.src.errors import ConfigError
from ratedesk.src.fetchers import BaseFetcher
from ratedesk.src.RateRecord import IncomingQuote, RateRecord
from ratedesk.src.RefreshCoordinator import RefreshOutcome
from ratedesk.src.SnapshotStore import SnapshotStore
from ratedesk.src.SourceConfig import DEFAULT_SOURCES

T0 = "01.01.2024 10:00:00"


class GoldOnlyFetcher(BaseFetcher):
    name = "goldonly"

    def __init__(self):
        super().__init__(url="memory://")

    async def fetch_quotes(self) -> list[IncomingQuote]:
        return [IncomingQuote("ALTIN", "Has Altın", "2500", "2510")]


class TestBuildParser:
    """Test argument defaults."""

    def test_defaults(self, monkeypatch) -> None:
        """Without env vars the documented defaults should apply."""
        for var in (
            "SNAPSHOT_PATH",
            "SOURCES",
            "REFRESH_PERIOD",
            "MIN_REFRESH_INTERVAL",
            "CACHE_TTL_SECONDS",
            "FETCH_TIMEOUT",
            "TIMEZONE",
        ):
            monkeypatch.delenv(var, raising=False)

        args = build_parser().parse_args([])

        assert args.snapshot_path == "data/snapshot.json"
        assert args.sources == "Primary,BridgeFeed,GoldFeed,CentralBank"
        assert args.refresh_period == 60
        assert args.min_interval == 15.0
        assert args.cache_ttl == 60
        assert args.fetch_timeout == 10.0
        assert args.timezone is None
        assert not args.once

    def test_environment_defaults(self, monkeypatch) -> None:
        """Env vars should provide defaults that CLI args override."""
        monkeypatch.setenv("CACHE_TTL_SECONDS", "30")
        monkeypatch.setenv("SOURCES", "goldfeed")

        args = build_parser().parse_args(["--sources", "primary"])

        assert args.cache_ttl == 30
        assert args.sources == "primary"


class TestBuildService:
    """Test wiring of store, coordinator and service."""

    def test_wires_selected_sources(self, tmp_path) -> None:
        """Only the selected sources should be configured."""
        args = build_parser().parse_args(
            [
                "--snapshot-path", str(tmp_path / "snapshot.json"),
                "--sources", "goldfeed,centralbank",
                "--cache-ttl", "45",
                "--timezone", "Europe/Istanbul",
            ]
        )
        service = build_service(args)

        assert service.store.source_names == list(DEFAULT_SOURCES)
        assert service.store.cache_ttl_seconds == 45
        assert sorted(service.coordinator.fetchers) == ["CentralBank", "GoldFeed"]

    def test_unknown_timezone(self, tmp_path) -> None:
        """An unknown timezone should be a config error."""
        args = build_parser().parse_args(["--timezone", "Mars/Olympus"])
        with pytest.raises(ConfigError, match="Unknown timezone"):
            build_service(args)

    def test_unknown_source(self) -> None:
        """An unknown source should be a config error."""
        args = build_parser().parse_args(["--sources", "coinfeed"])
        with pytest.raises(ConfigError):
            build_service(args)


class TestRunOnce:
    """Test the --once path."""

    def test_prints_snapshot(self, tmp_path, capsys) -> None:
        """run_once should print the snapshot and report success."""
        args = build_parser().parse_args(
            ["--snapshot-path", str(tmp_path / "snapshot.json"), "--sources", "goldfeed"]
        )
        service = build_service(args)
        outcome = RefreshOutcome(started_at=0.0, saved=True)

        with patch.object(
            service.coordinator, "trigger", new=AsyncMock(return_value=outcome)
        ):
            status = asyncio.run(run_once(service))

        body = json.loads(capsys.readouterr().out)
        assert status == 0
        assert body["meta"]["sources"] == list(DEFAULT_SOURCES)
        assert body["data"] == {name: {} for name in DEFAULT_SOURCES}

    def test_failed_save_exit_status(self, tmp_path, capsys) -> None:
        """run_once should return 1 when nothing was saved."""
        args = build_parser().parse_args(
            ["--snapshot-path", str(tmp_path / "snapshot.json"), "--sources", "goldfeed"]
        )
        service = build_service(args)
        outcome = RefreshOutcome(started_at=0.0, saved=False)

        with patch.object(
            service.coordinator, "trigger", new=AsyncMock(return_value=outcome)
        ):
            assert asyncio.run(run_once(service)) == 1


class TestSourceSubset:
    """Test runs that fetch only some sources."""

    def test_unselected_sources_keep_saved_maps(self, tmp_path) -> None:
        """A GoldFeed-only cycle should not erase Primary's records."""
        path = tmp_path / "snapshot.json"
        usd = RateRecord("USD", "US Dollar", "31.10", T0, "31.30", T0)
        SnapshotStore(path, list(DEFAULT_SOURCES)).save({"Primary": {"USD": usd}})

        args = build_parser().parse_args(["--snapshot-path", str(path), "--sources", "goldfeed"])
        service = build_service(args)
        service.coordinator.fetchers = {"GoldFeed": GoldOnlyFetcher()}

        outcome = asyncio.run(service.coordinator.trigger(force=True))
        snapshot = SnapshotStore(path, list(DEFAULT_SOURCES)).load()

        assert outcome.saved
        assert list(outcome.sources) == ["GoldFeed"]
        assert snapshot.get("Primary") == {"USD": usd}
        assert snapshot.get("GoldFeed")["ALTIN"].buy == "2500"
