"""Ingestion - polls the source wallet and stores new trades.

Each cycle:
1. Upserts the source wallet's positions keyed by condition_id
2. Drops activities already in the seen-index and stale ones
3. Inserts the survivors oldest-first as pending trade records
4. Compacts the seen-index once it outgrows its threshold

Writes are idempotent (positions by key, trades by dedup key), so a cycle
that fails halfway is simply repeated on the next tick.
"""

from typing import Optional

import structlog

from mimic.core.clock import Clock, SystemClock
from mimic.core.config import CopySettings
from mimic.core.lifecycle import HealthCheckResult
from mimic.domain.trade import TradeRecord
from mimic.services.gateways import MarketDataGateway
from mimic.services.metrics import MetricsEmitter
from mimic.services.record_store import RecordStore

log = structlog.get_logger()

DEFAULT_COMPACTION_THRESHOLD = 10_000


class SeenIndex:
    """In-memory set of dedup keys already stored.

    Owned by one TradeMonitor. ``rebuild`` loads every key in the store;
    ``compact`` keeps only keys of trades still inside the staleness
    horizon, since anything older is rejected by the age filter anyway.
    """

    def __init__(
        self,
        store: RecordStore,
        threshold: int = DEFAULT_COMPACTION_THRESHOLD,
    ):
        self._store = store
        self._threshold = threshold
        self._keys: set[str] = set()

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def add(self, key: str) -> None:
        self._keys.add(key)

    def needs_compaction(self) -> bool:
        return len(self._keys) > self._threshold

    async def rebuild(self) -> int:
        """Replace the index with every key in the store."""
        self._keys = await self._store.get_dedup_keys()
        return len(self._keys)

    async def compact(self, horizon_start: int) -> tuple[int, int]:
        """Replace the index with keys of trades newer than horizon_start.

        Returns (size_before, size_after).
        """
        before = len(self._keys)
        self._keys = await self._store.get_dedup_keys(since=horizon_start)
        return before, len(self._keys)


class TradeMonitor:
    """Polls the source wallet's feeds into the record store."""

    def __init__(
        self,
        settings: CopySettings,
        market_data: MarketDataGateway,
        store: RecordStore,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsEmitter] = None,
    ):
        """Initialize the monitor.

        Args:
            settings: Copy-trading settings (wallet, horizon, interval).
            market_data: Source of positions and activity.
            store: Record store the trades are written to.
            clock: Time source; real time by default.
            metrics: Optional metrics emitter.
        """
        self._settings = settings
        self._market_data = market_data
        self._store = store
        self._clock = clock or SystemClock()
        self._metrics = metrics
        self._seen = SeenIndex(store, threshold=settings.compaction_threshold)
        self._initialized = False
        self._cycles = 0
        self._failed_cycles = 0
        self._log = log.bind(component="trade_monitor", source_wallet=settings.source_wallet)

    @property
    def seen_index(self) -> SeenIndex:
        return self._seen

    async def initialize(self) -> None:
        """Load the seen-index from the store. Runs once before polling."""
        loaded = await self._seen.rebuild()
        self._initialized = True
        self._publish_index_size()
        self._log.info("seen_index_loaded", keys=loaded)

    async def poll_once(self) -> list[TradeRecord]:
        """Run one ingestion cycle. Returns the trades inserted."""
        if not self._initialized:
            await self.initialize()

        wallet = self._settings.source_wallet
        positions = await self._market_data.get_positions(wallet)
        activities = await self._market_data.get_activity(
            wallet, limit=self._settings.activity_limit, offset=0
        )

        if positions:
            await self._store.upsert_positions(positions)

        now = self._clock.now()
        candidates = self._select_new(activities, now)

        inserted: list[TradeRecord] = []
        if candidates:
            inserted = await self._store.insert_trades(candidates)
            for trade in inserted:
                self._seen.add(trade.dedup_key)
                self._log.info(
                    "trade_ingested",
                    trade_id=trade.id,
                    side=trade.side,
                    activity_type=trade.activity_type,
                    asset=trade.asset,
                    size=str(trade.size),
                    usdc_size=str(trade.usdc_size),
                    price=str(trade.price),
                    title=trade.title,
                )
            if self._metrics:
                self._metrics.record_ingested(len(inserted))

        if self._seen.needs_compaction():
            before, after = await self._seen.compact(
                horizon_start=int(now) - self._settings.max_age_seconds
            )
            self._log.info("seen_index_compacted", before=before, after=after)

        self._publish_index_size()
        return inserted

    def _select_new(self, activities: list[TradeRecord], now: float) -> list[TradeRecord]:
        """Drop seen and stale activities, then order oldest first."""
        max_age = self._settings.max_age_seconds
        batch_keys: set[str] = set()
        fresh: list[TradeRecord] = []
        for activity in activities:
            key = activity.dedup_key
            if key in self._seen or key in batch_keys:
                continue
            if activity.is_stale(now, max_age):
                continue
            batch_keys.add(key)
            fresh.append(activity)

        fresh.sort(key=lambda t: t.timestamp)
        return fresh

    def _publish_index_size(self) -> None:
        if self._metrics:
            self._metrics.set_seen_index_size(len(self._seen))

    async def tick(self) -> None:
        """One loop iteration: poll, logging instead of raising on failure."""
        self._cycles += 1
        try:
            await self.poll_once()
        except Exception as e:
            self._failed_cycles += 1
            if self._metrics:
                self._metrics.record_ingestion_failure()
            self._log.error(
                "ingestion_cycle_failed",
                error=str(e),
                error_type=type(e).__name__,
            )

    async def run(self, max_ticks: Optional[int] = None) -> None:
        """Poll forever (or max_ticks times) on the configured interval."""
        self._log.info(
            "trade_monitor_running",
            interval_seconds=self._settings.ingestion_interval_seconds,
            max_age_hours=self._settings.max_age_hours,
        )
        while not self._initialized:
            try:
                await self.initialize()
            except Exception as e:
                self._log.error("seen_index_load_failed", error=str(e))
                await self._clock.sleep(self._settings.ingestion_interval_seconds)

        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            await self.tick()
            ticks += 1
            await self._clock.sleep(self._settings.ingestion_interval_seconds)

    def health(self) -> HealthCheckResult:
        details = {
            "cycles": self._cycles,
            "failed_cycles": self._failed_cycles,
            "seen_index_size": len(self._seen),
        }
        if not self._initialized:
            return HealthCheckResult.degraded("Seen-index not loaded", **details)
        return HealthCheckResult.healthy(**details)
