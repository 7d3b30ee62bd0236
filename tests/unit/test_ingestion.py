"""
Unit tests for TradeMonitor and SeenIndex.

Tests verify:
- Dedup: the same activity is stored once across cycles
- Staleness filter against the clock
- Insertion order by timestamp
- Position upsert
- Seen-index compaction keeps exactly the in-horizon keys
- Failed cycles are logged, not raised
"""
from decimal import Decimal

import pytest

from mimic.core.config import CopySettings
from mimic.domain.market import PositionSnapshot
from mimic.services.ingestion import SeenIndex, TradeMonitor
from tests.fixtures import make_trade

NOW = 1_700_000_000


@pytest.fixture
def monitor(settings, market, store, clock, metrics):
    return TradeMonitor(settings, market, store, clock=clock, metrics=metrics)


class TestPollOnce:
    """Tests for a single ingestion cycle."""

    @pytest.mark.asyncio
    async def test_stores_new_activity(self, monitor, market, store, clock):
        market.activity = [make_trade(timestamp=int(clock.now()) - 10)]

        inserted = await monitor.poll_once()

        assert len(inserted) == 1
        assert inserted[0].id is not None
        stored = await store.get_pending_trades(3)
        assert [t.transaction_hash for t in stored] == [inserted[0].transaction_hash]
        assert stored[0].processed is False
        assert stored[0].attempt_count == 0

    @pytest.mark.asyncio
    async def test_same_activity_stored_once(self, monitor, market, store, clock):
        market.activity = [make_trade(timestamp=int(clock.now()) - 10)]

        first = await monitor.poll_once()
        second = await monitor.poll_once()

        assert len(first) == 1
        assert second == []
        assert len(await store.get_trades()) == 1

    @pytest.mark.asyncio
    async def test_duplicate_within_batch_stored_once(self, monitor, market, store, clock):
        trade = make_trade(timestamp=int(clock.now()) - 10)
        market.activity = [trade, trade]

        inserted = await monitor.poll_once()

        assert len(inserted) == 1

    @pytest.mark.asyncio
    async def test_hashless_activity_deduplicated(self, monitor, market, store, clock):
        market.activity = [make_trade(timestamp=int(clock.now()) - 10, transaction_hash=None)]

        await monitor.poll_once()
        again = await monitor.poll_once()

        assert again == []
        assert len(await store.get_trades()) == 1

    @pytest.mark.asyncio
    async def test_stale_activity_dropped(self, settings, monitor, market, store, clock):
        now = int(clock.now())
        horizon = settings.max_age_seconds
        market.activity = [
            make_trade(timestamp=now - horizon - 1),
            make_trade(timestamp=now - horizon),
            make_trade(timestamp=now - horizon + 1),
        ]

        inserted = await monitor.poll_once()

        assert [t.timestamp for t in inserted] == [now - horizon + 1]

    @pytest.mark.asyncio
    async def test_inserted_oldest_first(self, monitor, market, store, clock):
        now = int(clock.now())
        market.activity = [
            make_trade(timestamp=now - 5),
            make_trade(timestamp=now - 30),
            make_trade(timestamp=now - 15),
        ]

        inserted = await monitor.poll_once()

        assert [t.timestamp for t in inserted] == [now - 30, now - 15, now - 5]
        assert [t.id for t in inserted] == sorted(t.id for t in inserted)

    @pytest.mark.asyncio
    async def test_positions_upserted(self, settings, monitor, market, store):
        market.set_positions(settings.source_wallet, [
            PositionSnapshot(condition_id="0xcond", asset="yes-token", size=Decimal("10")),
        ])
        await monitor.poll_once()

        market.set_positions(settings.source_wallet, [
            PositionSnapshot(condition_id="0xcond", asset="yes-token", size=Decimal("25")),
        ])
        await monitor.poll_once()

        positions = await store.get_positions()
        assert len(positions) == 1
        assert positions[0].size == Decimal("25")

    @pytest.mark.asyncio
    async def test_polls_source_wallet_with_activity_limit(self, settings, monitor, market):
        await monitor.poll_once()

        assert market.position_requests == [settings.source_wallet]
        assert market.activity_requests == [(settings.source_wallet, settings.activity_limit, 0)]

    @pytest.mark.asyncio
    async def test_seen_index_loaded_from_store(self, settings, market, store, clock):
        """A restarted monitor does not re-store what an earlier one stored."""
        trade = make_trade(timestamp=int(clock.now()) - 10)
        await store.insert_trades([trade])
        market.activity = [trade]

        monitor = TradeMonitor(settings, market, store, clock=clock)
        inserted = await monitor.poll_once()

        assert inserted == []
        assert trade.dedup_key in monitor.seen_index


class TestTick:
    """Tests for failure handling in the loop."""

    @pytest.mark.asyncio
    async def test_activity_failure_logged_not_raised(self, monitor, market, metrics):
        market.fail_activity = ConnectionError("data api down")

        await monitor.tick()

        assert metrics.registry.get_sample_value("mimic_ingestion_failures_total") == 1.0
        assert monitor.health().details["failed_cycles"] == 1

    @pytest.mark.asyncio
    async def test_recovers_on_next_tick(self, monitor, market, store, clock):
        market.fail_activity = ConnectionError("data api down")
        await monitor.tick()

        market.fail_activity = None
        market.activity = [make_trade(timestamp=int(clock.now()) - 10)]
        await monitor.tick()

        assert len(await store.get_trades()) == 1

    @pytest.mark.asyncio
    async def test_run_respects_max_ticks(self, settings, monitor, clock):
        await monitor.run(max_ticks=2)

        assert clock.sleeps == [settings.ingestion_interval_seconds] * 2


class TestSeenIndex:
    """Tests for SeenIndex compaction."""

    @pytest.mark.asyncio
    async def test_rebuild_loads_all_keys(self, store):
        await store.insert_trades([make_trade(timestamp=NOW), make_trade(timestamp=NOW + 1)])
        index = SeenIndex(store)

        assert await index.rebuild() == 2
        assert make_trade(timestamp=NOW).dedup_key in index

    @pytest.mark.asyncio
    async def test_compact_keeps_exactly_in_horizon_keys(self, store):
        old = [make_trade(timestamp=NOW - 7200 + i) for i in range(3)]
        fresh = [make_trade(timestamp=NOW - 60 + i) for i in range(2)]
        await store.insert_trades(old + fresh)
        index = SeenIndex(store, threshold=1)
        await index.rebuild()

        assert index.needs_compaction()
        before, after = await index.compact(horizon_start=NOW - 3600)

        assert (before, after) == (5, 2)
        assert all(t.dedup_key in index for t in fresh)
        assert not any(t.dedup_key in index for t in old)

    @pytest.mark.asyncio
    async def test_monitor_compacts_past_threshold(self, market, store, clock):
        now = int(clock.now())
        settings = CopySettings(
            source_wallet="0xsource",
            max_age_hours=1.0,
            compaction_threshold=2,
        )
        await store.insert_trades([make_trade(timestamp=now - 7200 + i) for i in range(3)])
        market.activity = [make_trade(timestamp=now - 10)]
        monitor = TradeMonitor(settings, market, store, clock=clock)

        await monitor.poll_once()

        assert len(monitor.seen_index) == 1
        assert make_trade(timestamp=now - 10).dedup_key in monitor.seen_index

    @pytest.mark.asyncio
    async def test_compacted_keys_still_rejected_by_age(self, market, store, clock):
        """A key dropped by compaction is old enough for the age filter to reject."""
        now = int(clock.now())
        settings = CopySettings(source_wallet="0xsource", compaction_threshold=1)
        old = make_trade(timestamp=now - 7200)
        await store.insert_trades([old, make_trade(timestamp=now - 7100)])
        market.activity = [old]
        monitor = TradeMonitor(settings, market, store, clock=clock)

        await monitor.poll_once()
        inserted = await monitor.poll_once()

        assert old.dedup_key not in monitor.seen_index
        assert inserted == []
