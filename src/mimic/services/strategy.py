"""Copy Strategy Engine - mirrors one source trade against the live book.

Strategies, chosen by TradeRecord.strategy:
- buy:   spend usdc_size * copy_ratio USDC against the asks
- sell:  sell size * copy_ratio shares against the bids (needs a position)
- merge: sell the whole own position against the bids

All three share one fill loop. Every attempt re-reads the book, takes the
single best level, and fires a fill-or-kill market order for
min(remaining, level liquidity). A rejected attempt bumps the retry counter
and is retried against a fresh book; an accepted one resets it. The engine
is the only writer of ``processed`` / ``attempt_count``.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

import structlog

from mimic.core.config import CopySettings
from mimic.core.retry import retry_transient
from mimic.domain.market import OrderBookLevel, OrderBookSnapshot, PositionSnapshot
from mimic.domain.order import FillPolicy, MarketOrderRequest, OrderSide
from mimic.domain.trade import CopyStrategy, TradeRecord
from mimic.services.gateways import MarketDataGateway, OrderGateway
from mimic.services.metrics import MetricsEmitter
from mimic.services.record_store import RecordStore

log = structlog.get_logger()

ZERO = Decimal("0")


class ExecutionOutcome(str, Enum):
    """Why the engine stopped working on a trade."""
    FILLED = "filled"
    SKIPPED_BELOW_MINIMUM = "skipped_below_minimum"
    SKIPPED_NO_POSITION = "skipped_no_position"
    SKIPPED_NO_LIQUIDITY = "skipped_no_liquidity"
    SKIPPED_PRICE_MOVED = "skipped_price_moved"
    SKIPPED_UNSUPPORTED = "skipped_unsupported"
    EXHAUSTED = "exhausted"


@dataclass
class ExecutionReport:
    """What happened to one trade."""
    trade_id: int
    strategy: Optional[CopyStrategy]
    outcome: ExecutionOutcome
    target: Decimal = ZERO
    remaining: Decimal = ZERO
    orders_accepted: int = 0
    orders_rejected: int = 0
    retries: int = 0

    @property
    def filled(self) -> Decimal:
        """Amount filled, in the strategy's unit (USDC for buy, shares otherwise)."""
        return self.target - self.remaining


class StatusNotRecordedError(Exception):
    """A trade was executed but its terminal status could not be written."""

    def __init__(self, report: ExecutionReport, cause: Exception):
        super().__init__(f"status of trade {report.trade_id} not recorded: {cause}")
        self.report = report
        self.cause = cause


@dataclass(frozen=True)
class FillPlan:
    """Parameters of one fill loop."""
    side: OrderSide
    token_id: str
    target: Decimal
    # True when target is USDC notional (buy), False for shares
    in_notional: bool
    # Best ask above this aborts the loop (buy only)
    max_price: Optional[Decimal] = None

    def best_level(self, book: OrderBookSnapshot) -> Optional[OrderBookLevel]:
        return book.best_ask() if self.side == OrderSide.BUY else book.best_bid()

    def liquidity(self, level: OrderBookLevel) -> Decimal:
        return level.notional if self.in_notional else level.size


class CopyStrategyEngine:
    """Executes copy trades and records their terminal status."""

    def __init__(
        self,
        settings: CopySettings,
        market_data: MarketDataGateway,
        orders: OrderGateway,
        store: RecordStore,
        metrics: Optional[MetricsEmitter] = None,
    ):
        """Initialize the engine.

        Args:
            settings: Copy ratio, retry limit, minimum notional, slippage guard.
            market_data: Order book source.
            orders: Order signing and submission.
            store: Record store for the status update.
            metrics: Optional metrics emitter.
        """
        self._settings = settings
        self._market_data = market_data
        self._orders = orders
        self._store = store
        self._metrics = metrics
        self._log = log.bind(component="copy_engine")

    async def execute(
        self,
        trade: TradeRecord,
        position: Optional[PositionSnapshot] = None,
    ) -> ExecutionReport:
        """Mirror one trade, then mark it processed.

        Args:
            trade: A pending trade record (must carry a store id).
            position: The copying wallet's position in the trade's market.

        Returns:
            ExecutionReport describing the outcome.
        """
        if trade.id is None:
            raise ValueError("trade must be stored before execution")

        strategy = trade.strategy
        trade_log = self._log.bind(
            trade_id=trade.id,
            strategy=strategy.value if strategy else None,
            side=trade.side,
            asset=trade.asset,
        )
        trade_log.info(
            "copy_trade_started",
            title=trade.title,
            source_size=str(trade.size),
            source_usdc=str(trade.usdc_size),
            source_price=str(trade.price),
            copy_ratio=str(self._settings.copy_ratio),
        )

        plan_or_skip = self._plan(trade, position, strategy)
        if isinstance(plan_or_skip, ExecutionOutcome):
            report = ExecutionReport(trade_id=trade.id, strategy=strategy, outcome=plan_or_skip)
            trade_log.info("copy_trade_skipped", outcome=plan_or_skip.value)
        else:
            report = await self._fill(trade, plan_or_skip, strategy, trade_log)

        if self._metrics:
            self._metrics.record_outcome(
                strategy.value if strategy else "unsupported",
                report.outcome.value,
            )

        await self.record_status(trade, report)
        return report

    async def record_status(self, trade: TradeRecord, report: ExecutionReport) -> None:
        """Write the terminal status of an executed trade.

        Busy-store errors are retried in place. Any other failure raises
        StatusNotRecordedError carrying the report; the caller must record
        that report later instead of executing the trade again.
        """
        trade_log = self._log.bind(trade_id=trade.id, asset=trade.asset)
        try:
            await self._write_status(trade.id, report)
        except Exception as e:
            trade_log.error(
                "trade_status_not_recorded",
                outcome=report.outcome.value,
                orders=report.orders_accepted,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StatusNotRecordedError(report, e) from e

        if report.outcome == ExecutionOutcome.EXHAUSTED:
            trade_log.warning("trade_exhausted", attempts=report.retries, remaining=str(report.remaining))
        else:
            trade_log.info(
                "trade_completed",
                outcome=report.outcome.value,
                filled=str(report.filled),
                orders=report.orders_accepted,
            )

    @retry_transient(
        max_attempts=3,
        min_wait=0.05,
        max_wait=1.0,
        multiplier=0.1,
        log_context={"operation": "mark_processed"},
    )
    async def _write_status(self, trade_id: int, report: ExecutionReport) -> None:
        if report.outcome == ExecutionOutcome.EXHAUSTED:
            await self._store.mark_processed(trade_id, attempt_count=report.retries)
        else:
            await self._store.mark_processed(trade_id)

    def _plan(
        self,
        trade: TradeRecord,
        position: Optional[PositionSnapshot],
        strategy: Optional[CopyStrategy],
    ) -> FillPlan | ExecutionOutcome:
        """Size the order, or return the skip outcome."""
        settings = self._settings
        has_position = position is not None and position.size > 0

        if strategy == CopyStrategy.BUY:
            target = trade.usdc_size * settings.copy_ratio
            if target < settings.min_order_usd:
                return ExecutionOutcome.SKIPPED_BELOW_MINIMUM
            return FillPlan(
                side=OrderSide.BUY,
                token_id=trade.asset,
                target=target,
                in_notional=True,
                max_price=trade.price + settings.slippage_guard,
            )

        if strategy == CopyStrategy.SELL:
            if not has_position:
                return ExecutionOutcome.SKIPPED_NO_POSITION
            target = trade.size * settings.copy_ratio
            if target * trade.price < settings.min_order_usd:
                return ExecutionOutcome.SKIPPED_BELOW_MINIMUM
            return FillPlan(
                side=OrderSide.SELL,
                token_id=trade.asset,
                target=target,
                in_notional=False,
            )

        if strategy == CopyStrategy.MERGE:
            if not has_position:
                return ExecutionOutcome.SKIPPED_NO_POSITION
            return FillPlan(
                side=OrderSide.SELL,
                token_id=position.asset,
                target=position.size,
                in_notional=False,
            )

        return ExecutionOutcome.SKIPPED_UNSUPPORTED

    async def _fill(
        self,
        trade: TradeRecord,
        plan: FillPlan,
        strategy: Optional[CopyStrategy],
        trade_log: structlog.stdlib.BoundLogger,
    ) -> ExecutionReport:
        """Walk the book until the target is filled or retries run out."""
        retry_limit = self._settings.retry_limit
        report = ExecutionReport(
            trade_id=trade.id,
            strategy=strategy,
            outcome=ExecutionOutcome.FILLED,
            target=plan.target,
            remaining=plan.target,
        )
        retry = 0

        while report.remaining > 0 and retry < retry_limit:
            try:
                book = await self._market_data.get_order_book(plan.token_id)
            except Exception as e:
                retry += 1
                trade_log.warning("order_book_fetch_failed", retry=retry, error=str(e))
                continue

            level = plan.best_level(book)
            if level is None or level.price <= 0:
                report.outcome = ExecutionOutcome.SKIPPED_NO_LIQUIDITY
                trade_log.info("no_liquidity", book_side="asks" if plan.side == OrderSide.BUY else "bids")
                break

            if plan.max_price is not None and level.price > plan.max_price:
                report.outcome = ExecutionOutcome.SKIPPED_PRICE_MOVED
                trade_log.info(
                    "price_moved_too_far",
                    best_ask=str(level.price),
                    source_price=str(trade.price),
                    max_price=str(plan.max_price),
                )
                break

            amount = min(report.remaining, plan.liquidity(level))
            request = MarketOrderRequest(
                side=plan.side,
                token_id=plan.token_id,
                amount=amount,
                price=level.price,
            )

            if await self._submit(request, trade_log):
                retry = 0
                report.orders_accepted += 1
                report.remaining -= amount
            else:
                retry += 1
                report.orders_rejected += 1
                trade_log.warning("order_failed_retrying", retry=retry, retry_limit=retry_limit)

        report.retries = retry
        if retry >= retry_limit:
            report.outcome = ExecutionOutcome.EXHAUSTED
        return report

    async def _submit(
        self,
        request: MarketOrderRequest,
        trade_log: structlog.stdlib.BoundLogger,
    ) -> bool:
        """Sign and post one FOK order. Any error counts as a rejection."""
        try:
            signed = await self._orders.create_market_order(request)
            result = await self._orders.post_order(signed, FillPolicy.FOK)
        except Exception as e:
            trade_log.warning(
                "order_submission_error",
                amount=str(request.amount),
                price=str(request.price),
                error=str(e),
                error_type=type(e).__name__,
            )
            success = False
        else:
            success = result.success
            trade_log.info(
                "order_submitted" if success else "order_rejected",
                order_side=request.side.value,
                amount=str(request.amount),
                price=str(request.price),
                order_id=result.order_id,
                status=result.status,
                error=result.error_message,
            )

        if self._metrics:
            self._metrics.record_order(request.side.value, success)
        return success
