"""Execution loop - drains pending trades through the copy engine.

Each tick reads the pending set (unprocessed, under the retry limit),
processes it strictly oldest-first and one at a time, and looks up the
copying wallet's position fresh before every trade since earlier fills in
the same tick change it.

A trade whose orders went out but whose status write failed is never
executed again: its report is held and only the write is retried.
"""

from typing import Optional

import structlog

from mimic.core.clock import Clock, SystemClock
from mimic.core.config import CopySettings
from mimic.core.lifecycle import HealthCheckResult
from mimic.domain.market import PositionSnapshot
from mimic.domain.trade import TradeRecord
from mimic.services.gateways import MarketDataGateway
from mimic.services.metrics import MetricsEmitter
from mimic.services.record_store import RecordStore
from mimic.services.strategy import CopyStrategyEngine, ExecutionReport, StatusNotRecordedError

log = structlog.get_logger()


class TradeExecutor:
    """Periodic consumer of the pending-trade queue."""

    def __init__(
        self,
        settings: CopySettings,
        market_data: MarketDataGateway,
        engine: CopyStrategyEngine,
        store: RecordStore,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsEmitter] = None,
    ):
        self._settings = settings
        self._market_data = market_data
        self._engine = engine
        self._store = store
        self._clock = clock or SystemClock()
        self._metrics = metrics
        self._ticks = 0
        self._failed_trades = 0
        self._last_pending = 0
        self._unrecorded: dict[int, ExecutionReport] = {}
        self._log = log.bind(component="trade_executor", own_wallet=settings.own_wallet)

    async def run_once(self) -> list[ExecutionReport]:
        """Process every currently pending trade. Returns the reports."""
        pending = await self._store.get_pending_trades(self._settings.retry_limit)
        self._last_pending = len(pending)
        if self._metrics:
            self._metrics.set_pending_trades(len(pending))
        if not pending:
            return []

        pending.sort(key=lambda t: (t.timestamp, t.id or 0))
        self._log.debug("pending_trades", count=len(pending))

        reports: list[ExecutionReport] = []
        for trade in pending:
            try:
                unrecorded = self._unrecorded.get(trade.id)
                if unrecorded is not None:
                    # Already executed; only the status write is outstanding
                    await self._engine.record_status(trade, unrecorded)
                    del self._unrecorded[trade.id]
                    reports.append(unrecorded)
                    continue

                position = await self._find_position(trade)
                reports.append(await self._engine.execute(trade, position))
            except StatusNotRecordedError as e:
                self._unrecorded[trade.id] = e.report
                self._failed_trades += 1
                self._log.error(
                    "trade_status_deferred",
                    trade_id=trade.id,
                    outcome=e.report.outcome.value,
                    orders=e.report.orders_accepted,
                )
            except Exception as e:
                # Left pending; retried next tick
                self._failed_trades += 1
                self._log.error(
                    "trade_execution_failed",
                    trade_id=trade.id,
                    asset=trade.asset,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return reports

    async def _find_position(self, trade: TradeRecord) -> Optional[PositionSnapshot]:
        positions = await self._market_data.get_positions(self._settings.own_wallet)
        for position in positions:
            if position.condition_id == trade.condition_id:
                return position
        return None

    async def tick(self) -> None:
        self._ticks += 1
        try:
            await self.run_once()
        except Exception as e:
            self._log.error(
                "execution_cycle_failed",
                error=str(e),
                error_type=type(e).__name__,
            )

    async def run(self, max_ticks: Optional[int] = None) -> None:
        """Drain the queue forever (or max_ticks times) on the configured interval."""
        self._log.info(
            "trade_executor_running",
            interval_seconds=self._settings.execution_interval_seconds,
            retry_limit=self._settings.retry_limit,
        )
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            await self.tick()
            ticks += 1
            await self._clock.sleep(self._settings.execution_interval_seconds)

    def health(self) -> HealthCheckResult:
        details = {
            "ticks": self._ticks,
            "failed_trades": self._failed_trades,
            "pending_trades": self._last_pending,
            "unrecorded_trades": len(self._unrecorded),
        }
        if self._unrecorded:
            return HealthCheckResult.degraded(
                message=f"{len(self._unrecorded)} executed trade(s) awaiting status write",
                **details,
            )
        return HealthCheckResult.healthy(**details)
