"""Record Store - async SQLite persistence for trade records and positions.

This service:
- Stores every ingested source-wallet activity as a TradeRecord
- Upserts the source wallet's position snapshots keyed by condition_id
- Serves the pending-trade query used by the execution loop
- Exposes ``mark_processed`` as the only mutation of a stored trade

Decimals are stored as TEXT so repeated reads never pick up float noise.
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional, Protocol, runtime_checkable

import aiosqlite
import structlog

from mimic.core.retry import StoreBusyError
from mimic.domain.market import PositionSnapshot
from mimic.domain.trade import TradeRecord, TradeState

log = structlog.get_logger()

DEFAULT_DB_PATH = "./data/mimic.db"


def _is_busy(error: Exception) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


SCHEMA_SQL = """
-- Source-wallet activity, one row per observed event
CREATE TABLE IF NOT EXISTS trades (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    dedup_key TEXT NOT NULL UNIQUE,
    transaction_hash TEXT,
    condition_id TEXT NOT NULL,
    asset TEXT NOT NULL,
    side TEXT NOT NULL DEFAULT '',
    activity_type TEXT NOT NULL DEFAULT 'TRADE',
    size TEXT NOT NULL,
    usdc_size TEXT NOT NULL,
    price TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    title TEXT DEFAULT '',
    outcome TEXT DEFAULT '',
    slug TEXT DEFAULT '',
    processed INTEGER NOT NULL DEFAULT 0,
    attempt_count INTEGER NOT NULL DEFAULT 0,
    ingested_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    processed_at TIMESTAMP
);

-- Source-wallet positions, last write wins
CREATE TABLE IF NOT EXISTS positions (
    condition_id TEXT PRIMARY KEY,
    asset TEXT NOT NULL,
    size TEXT NOT NULL,
    avg_price TEXT NOT NULL DEFAULT '0',
    outcome TEXT DEFAULT '',
    title TEXT DEFAULT '',
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_trades_pending ON trades(processed, attempt_count);
CREATE INDEX IF NOT EXISTS idx_trades_timestamp ON trades(timestamp);
"""


@runtime_checkable
class RecordStore(Protocol):
    """Durable storage used by ingestion and execution."""

    async def upsert_positions(self, positions: Iterable[PositionSnapshot]) -> int:
        ...

    async def insert_trades(self, trades: Iterable[TradeRecord]) -> list[TradeRecord]:
        ...

    async def get_dedup_keys(self, since: Optional[int] = None) -> set[str]:
        ...

    async def get_pending_trades(self, retry_limit: int) -> list[TradeRecord]:
        ...

    async def mark_processed(self, trade_id: int, attempt_count: Optional[int] = None) -> None:
        ...


class SQLiteRecordStore:
    """aiosqlite-backed RecordStore.

    A single connection is shared; writes are serialized with a lock and
    WAL mode lets reads proceed alongside them.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, busy_timeout_ms: int = 5000):
        """Initialize the store.

        Args:
            db_path: Path to the SQLite file (":memory:" is accepted).
            busy_timeout_ms: How long SQLite waits on a locked database.
        """
        self._db_path = db_path
        self._busy_timeout_ms = busy_timeout_ms
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._log = log.bind(component="record_store")

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """Open the database and create the schema."""
        async with self._lock:
            if self._conn is not None:
                return

            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

            self._conn = await aiosqlite.connect(self._db_path)
            self._conn.row_factory = aiosqlite.Row

            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA synchronous=NORMAL")
            await self._conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
            await self._conn.executescript(SCHEMA_SQL)
            await self._conn.commit()

        self._log.info("record_store_connected", db_path=self._db_path)

    async def close(self) -> None:
        async with self._lock:
            if self._conn is not None:
                await self._conn.close()
                self._conn = None
        self._log.info("record_store_closed")

    def _acquire(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Record store not connected")
        return self._conn

    # ============ Position Operations ============

    async def upsert_positions(self, positions: Iterable[PositionSnapshot]) -> int:
        """Insert-or-replace each position keyed by condition_id."""
        rows = [
            (
                p.condition_id,
                p.asset,
                str(p.size),
                str(p.avg_price),
                p.outcome,
                p.title,
                datetime.now(timezone.utc).isoformat(),
            )
            for p in positions
        ]
        if not rows:
            return 0

        conn = self._acquire()
        async with self._lock:
            await conn.executemany(
                """
                INSERT INTO positions
                (condition_id, asset, size, avg_price, outcome, title, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(condition_id) DO UPDATE SET
                    asset = excluded.asset,
                    size = excluded.size,
                    avg_price = excluded.avg_price,
                    outcome = excluded.outcome,
                    title = excluded.title,
                    updated_at = excluded.updated_at
                """,
                rows,
            )
            await conn.commit()
        return len(rows)

    async def get_positions(self) -> list[PositionSnapshot]:
        conn = self._acquire()
        positions = []
        async with conn.execute("SELECT * FROM positions ORDER BY condition_id") as cursor:
            async for row in cursor:
                positions.append(
                    PositionSnapshot(
                        condition_id=row["condition_id"],
                        asset=row["asset"],
                        size=Decimal(row["size"]),
                        avg_price=Decimal(row["avg_price"]),
                        outcome=row["outcome"] or "",
                        title=row["title"] or "",
                    )
                )
        return positions

    # ============ Trade Operations ============

    async def insert_trades(self, trades: Iterable[TradeRecord]) -> list[TradeRecord]:
        """Insert new trades, ignoring any whose dedup key already exists.

        Returns the records actually inserted, with their store ids, in
        insertion order.
        """
        conn = self._acquire()
        inserted: list[TradeRecord] = []
        async with self._lock:
            for trade in trades:
                cursor = await conn.execute(
                    """
                    INSERT OR IGNORE INTO trades
                    (dedup_key, transaction_hash, condition_id, asset, side,
                     activity_type, size, usdc_size, price, timestamp,
                     title, outcome, slug, processed, attempt_count)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, 0)
                    """,
                    (
                        trade.dedup_key,
                        trade.transaction_hash,
                        trade.condition_id,
                        trade.asset,
                        trade.side,
                        trade.activity_type,
                        str(trade.size),
                        str(trade.usdc_size),
                        str(trade.price),
                        trade.timestamp,
                        trade.title,
                        trade.outcome,
                        trade.slug,
                    ),
                )
                if cursor.rowcount == 1:
                    inserted.append(self._with_id(trade, cursor.lastrowid))
                await cursor.close()
            await conn.commit()

        if inserted:
            self._log.debug("trades_inserted", count=len(inserted))
        return inserted

    @staticmethod
    def _with_id(trade: TradeRecord, trade_id: int) -> TradeRecord:
        return replace(trade, id=trade_id, processed=False, attempt_count=0)

    async def get_trade(self, trade_id: int) -> Optional[TradeRecord]:
        conn = self._acquire()
        async with conn.execute("SELECT * FROM trades WHERE id = ?", (trade_id,)) as cursor:
            row = await cursor.fetchone()
        return self._row_to_trade(row) if row is not None else None

    async def get_trades(self, limit: int = 100) -> list[TradeRecord]:
        """Most recently ingested trades first."""
        conn = self._acquire()
        trades = []
        async with conn.execute(
            "SELECT * FROM trades ORDER BY id DESC LIMIT ?", (limit,)
        ) as cursor:
            async for row in cursor:
                trades.append(self._row_to_trade(row))
        return trades

    async def get_pending_trades(self, retry_limit: int) -> list[TradeRecord]:
        """Trades with processed = false AND attempt_count < retry_limit."""
        conn = self._acquire()
        trades = []
        async with conn.execute(
            """
            SELECT * FROM trades
            WHERE processed = 0 AND attempt_count < ?
            ORDER BY timestamp ASC, id ASC
            """,
            (retry_limit,),
        ) as cursor:
            async for row in cursor:
                trades.append(self._row_to_trade(row))
        return trades

    async def get_dedup_keys(self, since: Optional[int] = None) -> set[str]:
        """Dedup keys of all trades, or of those with timestamp > since."""
        conn = self._acquire()
        if since is None:
            query, params = "SELECT dedup_key FROM trades", ()
        else:
            query, params = "SELECT dedup_key FROM trades WHERE timestamp > ?", (since,)

        keys: set[str] = set()
        async with conn.execute(query, params) as cursor:
            async for row in cursor:
                keys.add(row["dedup_key"])
        return keys

    async def mark_processed(self, trade_id: int, attempt_count: Optional[int] = None) -> None:
        """Close a trade. attempt_count never decreases.

        Raises:
            StoreBusyError: another connection holds the write lock.
        """
        conn = self._acquire()
        now = datetime.now(timezone.utc).isoformat()
        async with self._lock:
            try:
                if attempt_count is None:
                    await conn.execute(
                        "UPDATE trades SET processed = 1, processed_at = ? WHERE id = ?",
                        (now, trade_id),
                    )
                else:
                    await conn.execute(
                        """
                        UPDATE trades
                        SET processed = 1, processed_at = ?,
                            attempt_count = MAX(attempt_count, ?)
                        WHERE id = ?
                        """,
                        (now, attempt_count, trade_id),
                    )
                await conn.commit()
            except aiosqlite.OperationalError as e:
                if _is_busy(e):
                    await conn.rollback()
                    raise StoreBusyError(f"mark_processed({trade_id})", cause=e) from e
                raise

    async def count_by_state(self, retry_limit: int) -> dict[TradeState, int]:
        """Number of trades in each lifecycle state."""
        conn = self._acquire()
        counts = {state: 0 for state in TradeState}
        async with conn.execute(
            """
            SELECT
                SUM(CASE WHEN processed = 0 THEN 1 ELSE 0 END) AS pending,
                SUM(CASE WHEN processed = 1 AND attempt_count >= ? THEN 1 ELSE 0 END) AS exhausted,
                SUM(CASE WHEN processed = 1 AND attempt_count < ? THEN 1 ELSE 0 END) AS completed
            FROM trades
            """,
            (retry_limit, retry_limit),
        ) as cursor:
            row = await cursor.fetchone()
        if row is not None:
            counts[TradeState.PENDING] = row["pending"] or 0
            counts[TradeState.EXHAUSTED] = row["exhausted"] or 0
            counts[TradeState.COMPLETED] = row["completed"] or 0
        return counts

    def _row_to_trade(self, row: aiosqlite.Row) -> TradeRecord:
        return TradeRecord(
            id=row["id"],
            condition_id=row["condition_id"],
            asset=row["asset"],
            side=row["side"],
            activity_type=row["activity_type"],
            size=Decimal(row["size"]),
            usdc_size=Decimal(row["usdc_size"]),
            price=Decimal(row["price"]),
            timestamp=int(row["timestamp"]),
            transaction_hash=row["transaction_hash"],
            title=row["title"] or "",
            outcome=row["outcome"] or "",
            slug=row["slug"] or "",
            processed=bool(row["processed"]),
            attempt_count=int(row["attempt_count"]),
        )
