"""Unit tests for SnapshotService."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

from ratedesk.src.fetchers import BaseFetcher
from ratedesk.src.RateRecord import IncomingQuote, RateRecord
from ratedesk.src.RefreshCoordinator import RefreshCoordinator
from ratedesk.src.SnapshotService import SnapshotService
from ratedesk.src.SnapshotStore import Snapshot, SnapshotStore
from ratedesk.src.SourceConfig import SourceConfig

T0 = "01.01.2024 10:00:00"


class StaticFetcher(BaseFetcher):
    name = "static"

    def __init__(self, quotes):
        super().__init__(url="memory://")
        self.quotes = quotes
        self.calls = 0

    async def fetch_quotes(self) -> list[IncomingQuote]:
        self.calls += 1
        return list(self.quotes)


def make_service(tmp_path, ttl=60):
    store = SnapshotStore(tmp_path / "snapshot.json", ["GoldFeed"], cache_ttl_seconds=ttl)
    fetcher = StaticFetcher([IncomingQuote("ALTIN", "Has Altın", "2500", "2510")])
    coordinator = RefreshCoordinator(
        store,
        [SourceConfig(name="GoldFeed", fetcher="static", url="memory://")],
        fetchers={"GoldFeed": fetcher},
        min_interval=0.0,
    )
    return SnapshotService(store, coordinator), store, fetcher


class TestIsStale:
    """Test TTL evaluation."""

    def test_never_saved_is_stale(self) -> None:
        """A snapshot without generatedAt should be stale."""
        assert SnapshotService.is_stale(Snapshot(sources={}))

    def test_age_against_ttl(self) -> None:
        """Snapshots older than their TTL should be stale."""
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        snapshot = Snapshot(
            sources={}, generated_at="2024-01-01T11:59:30Z", cache_ttl_seconds=60
        )

        assert not SnapshotService.is_stale(snapshot, now=now)
        assert SnapshotService.is_stale(snapshot, now=now + timedelta(seconds=31))

    def test_unparsable_timestamp_is_stale(self) -> None:
        """Garbage in generatedAt should be treated as never saved."""
        assert SnapshotService.is_stale(Snapshot(sources={}, generated_at="yesterday"))


class TestGetSnapshot:
    """Test serving and background refresh scheduling."""

    def test_fresh_snapshot_served_without_refresh(self, tmp_path) -> None:
        """A fresh snapshot should not trigger any fetch."""
        service, store, fetcher = make_service(tmp_path)
        store.save({"GoldFeed": {"USD": RateRecord("USD", "US Dollar", "31", T0, "32", T0)}})

        async def scenario():
            snapshot = service.get_snapshot()
            await asyncio.sleep(0)
            return snapshot

        snapshot = asyncio.run(scenario())

        assert snapshot.get("GoldFeed")["USD"].buy == "31"
        assert fetcher.calls == 0

    def test_stale_snapshot_schedules_one_refresh(self, tmp_path) -> None:
        """A stale read returns old data now and new data on the next read."""
        service, _, fetcher = make_service(tmp_path)

        async def scenario():
            first = service.get_snapshot()
            again = service.get_snapshot()
            await service._background
            return first, again, service.get_snapshot()

        first, again, after = asyncio.run(scenario())

        assert first.is_empty
        assert again.is_empty
        assert fetcher.calls == 1
        assert after.get("GoldFeed")["ALTIN"].buy == "2500"

    def test_background_failure_logged(self, tmp_path, caplog) -> None:
        """A crash inside a background refresh should be logged."""
        service, _, _ = make_service(tmp_path)

        async def scenario():
            service.get_snapshot()
            await asyncio.gather(service._background, return_exceptions=True)

        with patch.object(
            service.coordinator, "trigger", new=AsyncMock(side_effect=RuntimeError("boom"))
        ):
            asyncio.run(scenario())

        assert "Background refresh crashed" in caplog.text
        assert "boom" in caplog.text

    def test_stale_without_event_loop(self, tmp_path) -> None:
        """Outside an event loop a stale read should still be served."""
        service, _, fetcher = make_service(tmp_path)

        assert service.get_snapshot().is_empty
        assert fetcher.calls == 0

    def test_render_document(self, tmp_path) -> None:
        """render() should return the meta/data response body."""
        service, store, _ = make_service(tmp_path, ttl=30)
        store.save({"GoldFeed": {"USD": RateRecord("USD", "US Dollar", "31", T0, "32", T0)}})

        body = service.render()

        assert body["meta"]["cacheTtlSeconds"] == 30
        assert body["meta"]["sources"] == ["GoldFeed"]
        assert body["data"]["GoldFeed"]["USD"]["sell"] == "32"


class TestForceRefresh:
    """Test the admin refresh path."""

    def test_force_refresh_now(self, tmp_path) -> None:
        """A forced refresh should be visible on the next read."""
        service, store, fetcher = make_service(tmp_path)
        store.save({"GoldFeed": {"USD": RateRecord("USD", "US Dollar", "31", T0, "32", T0)}})
        assert "ALTIN" not in service.get_snapshot().get("GoldFeed")

        outcome = asyncio.run(service.force_refresh_now())

        assert outcome.saved
        assert fetcher.calls == 1
        records = service.get_snapshot().get("GoldFeed")
        assert records["ALTIN"].sell == "2510"
        assert records["USD"].buy == "31"
