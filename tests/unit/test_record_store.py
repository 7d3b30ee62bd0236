"""
Unit tests for SQLiteRecordStore.

Tests the SQLite persistence layer for trade records and positions.
"""
from decimal import Decimal

import aiosqlite
import pytest

from mimic.core.retry import StoreBusyError
from mimic.domain.market import PositionSnapshot
from mimic.domain.trade import TradeState
from mimic.services.record_store import RecordStore, SQLiteRecordStore
from tests.fixtures import make_trade


class TestConnection:
    """Tests for store connection handling."""

    @pytest.mark.asyncio
    async def test_connect_and_close(self, tmp_path):
        store = SQLiteRecordStore(str(tmp_path / "mimic.db"))

        assert not store.is_connected
        await store.connect()
        assert store.is_connected
        await store.close()
        assert not store.is_connected

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, tmp_path):
        store = SQLiteRecordStore(str(tmp_path / "data" / "deep" / "mimic.db"))

        await store.connect()

        assert (tmp_path / "data" / "deep").exists()
        await store.close()

    @pytest.mark.asyncio
    async def test_in_memory(self):
        store = SQLiteRecordStore(":memory:")
        await store.connect()

        inserted = await store.insert_trades([make_trade()])

        assert len(inserted) == 1
        await store.close()

    @pytest.mark.asyncio
    async def test_operations_require_connection(self, tmp_path):
        store = SQLiteRecordStore(str(tmp_path / "mimic.db"))

        with pytest.raises(RuntimeError, match="not connected"):
            await store.get_pending_trades(3)

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(SQLiteRecordStore(str(tmp_path / "mimic.db")), RecordStore)


class TestTrades:
    """Tests for trade insertion and lifecycle updates."""

    @pytest.mark.asyncio
    async def test_insert_round_trips_decimals(self, store):
        trade = make_trade(size="120.123456", usdc_size="60.0617", price="0.5")

        [inserted] = await store.insert_trades([trade])
        saved = await store.get_trade(inserted.id)

        assert saved.size == Decimal("120.123456")
        assert saved.usdc_size == Decimal("60.0617")
        assert saved.price == Decimal("0.5")
        assert saved.transaction_hash == trade.transaction_hash
        assert saved.title == trade.title
        assert saved.state(3) == TradeState.PENDING

    @pytest.mark.asyncio
    async def test_duplicate_dedup_key_ignored(self, store):
        trade = make_trade()

        first = await store.insert_trades([trade])
        second = await store.insert_trades([trade])

        assert len(first) == 1
        assert second == []
        assert len(await store.get_trades()) == 1

    @pytest.mark.asyncio
    async def test_hashless_trades_keyed_by_fields(self, store):
        a = make_trade(transaction_hash=None, size="10")
        b = make_trade(transaction_hash=None, size="10.0")
        c = make_trade(transaction_hash=None, size="11")

        inserted = await store.insert_trades([a, b, c])

        assert len(inserted) == 2

    @pytest.mark.asyncio
    async def test_pending_ordered_by_timestamp(self, store):
        await store.insert_trades([
            make_trade(timestamp=300),
            make_trade(timestamp=100),
            make_trade(timestamp=200),
        ])

        pending = await store.get_pending_trades(3)

        assert [t.timestamp for t in pending] == [100, 200, 300]

    @pytest.mark.asyncio
    async def test_mark_processed_completes(self, store):
        [trade] = await store.insert_trades([make_trade()])

        await store.mark_processed(trade.id)

        saved = await store.get_trade(trade.id)
        assert saved.processed is True
        assert saved.attempt_count == 0
        assert await store.get_pending_trades(3) == []

    @pytest.mark.asyncio
    async def test_mark_processed_exhausted(self, store):
        [trade] = await store.insert_trades([make_trade()])

        await store.mark_processed(trade.id, attempt_count=3)

        saved = await store.get_trade(trade.id)
        assert saved.attempt_count == 3
        assert saved.state(3) == TradeState.EXHAUSTED

    @pytest.mark.asyncio
    async def test_attempt_count_never_decreases(self, store):
        [trade] = await store.insert_trades([make_trade()])

        await store.mark_processed(trade.id, attempt_count=3)
        await store.mark_processed(trade.id, attempt_count=1)

        saved = await store.get_trade(trade.id)
        assert saved.attempt_count == 3

    @pytest.mark.asyncio
    async def test_get_dedup_keys_since(self, store):
        old, new = make_trade(timestamp=100), make_trade(timestamp=200)
        await store.insert_trades([old, new])

        assert await store.get_dedup_keys() == {old.dedup_key, new.dedup_key}
        assert await store.get_dedup_keys(since=100) == {new.dedup_key}

    @pytest.mark.asyncio
    async def test_count_by_state(self, store):
        trades = await store.insert_trades([make_trade(timestamp=t) for t in (1, 2, 3, 4)])
        await store.mark_processed(trades[0].id)
        await store.mark_processed(trades[1].id, attempt_count=3)

        counts = await store.count_by_state(3)

        assert counts == {
            TradeState.PENDING: 2,
            TradeState.COMPLETED: 1,
            TradeState.EXHAUSTED: 1,
        }

    @pytest.mark.asyncio
    async def test_count_by_state_empty(self, store):
        counts = await store.count_by_state(3)

        assert counts == {state: 0 for state in TradeState}

    @pytest.mark.asyncio
    async def test_survives_reconnect(self, tmp_path):
        path = str(tmp_path / "mimic.db")
        store = SQLiteRecordStore(path)
        await store.connect()
        [trade] = await store.insert_trades([make_trade()])
        await store.close()

        reopened = SQLiteRecordStore(path)
        await reopened.connect()
        saved = await reopened.get_trade(trade.id)
        await reopened.close()

        assert saved is not None
        assert saved.dedup_key == trade.dedup_key


    @pytest.mark.asyncio
    async def test_locked_database_raises_busy(self, tmp_path):
        path = str(tmp_path / "mimic.db")
        store = SQLiteRecordStore(path, busy_timeout_ms=0)
        await store.connect()
        [trade] = await store.insert_trades([make_trade()])
        other = await aiosqlite.connect(path)
        await other.execute("BEGIN EXCLUSIVE")
        try:
            with pytest.raises(StoreBusyError):
                await store.mark_processed(trade.id)
        finally:
            await other.rollback()
            await other.close()

        await store.mark_processed(trade.id)
        saved = await store.get_trade(trade.id)
        await store.close()

        assert saved.processed is True


class TestPositions:
    """Tests for position upserts."""

    @pytest.mark.asyncio
    async def test_upsert_replaces_by_condition_id(self, store):
        await store.upsert_positions([
            PositionSnapshot(condition_id="0xa", asset="yes-a", size=Decimal("10")),
            PositionSnapshot(condition_id="0xb", asset="yes-b", size=Decimal("5")),
        ])
        count = await store.upsert_positions([
            PositionSnapshot(condition_id="0xa", asset="yes-a", size=Decimal("12.5"), avg_price=Decimal("0.41")),
        ])

        positions = {p.condition_id: p for p in await store.get_positions()}
        assert count == 1
        assert len(positions) == 2
        assert positions["0xa"].size == Decimal("12.5")
        assert positions["0xa"].avg_price == Decimal("0.41")
        assert positions["0xb"].size == Decimal("5")

    @pytest.mark.asyncio
    async def test_upsert_nothing(self, store):
        assert await store.upsert_positions([]) == 0
