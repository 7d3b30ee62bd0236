"""Domain models - pure data structures with no I/O dependencies."""

from mimic.domain.market import OrderBookLevel, OrderBookSnapshot, PositionSnapshot
from mimic.domain.order import FillPolicy, MarketOrderRequest, OrderSide, SubmissionResult
from mimic.domain.trade import ActivityType, CopyStrategy, TradeRecord, TradeSide, TradeState

__all__ = [
    # Market models
    "OrderBookLevel",
    "OrderBookSnapshot",
    "PositionSnapshot",
    # Order models
    "FillPolicy",
    "MarketOrderRequest",
    "OrderSide",
    "SubmissionResult",
    # Trade models
    "ActivityType",
    "CopyStrategy",
    "TradeRecord",
    "TradeSide",
    "TradeState",
]
