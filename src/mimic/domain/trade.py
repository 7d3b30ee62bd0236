"""
Trade record domain model and its lifecycle.

A TradeRecord is one activity event observed on the source wallet. Only
``processed`` and ``attempt_count`` ever change after ingestion, and only
the execution side changes them.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class TradeSide(str, Enum):
    """Side reported by the activity feed."""
    BUY = "BUY"
    SELL = "SELL"


class ActivityType(str, Enum):
    """Polymarket data-API activity types."""
    TRADE = "TRADE"
    MERGE = "MERGE"
    SPLIT = "SPLIT"
    REDEEM = "REDEEM"
    REWARD = "REWARD"
    CONVERSION = "CONVERSION"


class CopyStrategy(str, Enum):
    """How a record is mirrored."""
    BUY = "buy"
    SELL = "sell"
    MERGE = "merge"


class TradeState(str, Enum):
    """Lifecycle state derived from ``processed`` and ``attempt_count``.

    PENDING -> COMPLETED   engine finished (filled or deliberately skipped)
    PENDING -> EXHAUSTED   fill loop ran out of retries
    Both terminal states are final.
    """
    PENDING = "pending"
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"


def _decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


@dataclass(frozen=True)
class TradeRecord:
    """One observed activity event from the source wallet."""
    condition_id: str
    asset: str
    side: str
    size: Decimal
    usdc_size: Decimal
    price: Decimal
    timestamp: int
    transaction_hash: Optional[str] = None
    activity_type: str = ActivityType.TRADE.value
    title: str = ""
    outcome: str = ""
    slug: str = ""
    processed: bool = False
    attempt_count: int = 0
    id: Optional[int] = None

    @property
    def dedup_key(self) -> str:
        """Key used by the seen-index and the store's unique constraint.

        Hashless events fall back to a composite of their immutable fields.
        """
        if self.transaction_hash:
            return self.transaction_hash
        return (
            f"cmp:{self.asset}:{self.side}:{self.timestamp}:"
            f"{self.size.normalize()}:{self.price.normalize()}"
        )

    @property
    def notional(self) -> Decimal:
        return self.usdc_size

    @property
    def strategy(self) -> Optional[CopyStrategy]:
        """Copy strategy for this record, or None when unsupported."""
        side = (self.side or "").upper()
        if side == TradeSide.BUY.value:
            return CopyStrategy.BUY
        if side == TradeSide.SELL.value:
            return CopyStrategy.SELL
        if (self.activity_type or "").upper() == ActivityType.MERGE.value:
            return CopyStrategy.MERGE
        return None

    def state(self, retry_limit: int) -> TradeState:
        if not self.processed:
            return TradeState.PENDING
        if self.attempt_count >= retry_limit:
            return TradeState.EXHAUSTED
        return TradeState.COMPLETED

    def is_stale(self, now: float, max_age_seconds: int) -> bool:
        return self.timestamp + max_age_seconds <= now

    @classmethod
    def from_activity(cls, data: dict[str, Any]) -> "TradeRecord":
        """Build a fresh, unprocessed record from a data-API activity dict."""
        return cls(
            condition_id=str(data.get("conditionId", "")),
            asset=str(data.get("asset", "")),
            side=str(data.get("side") or ""),
            size=_decimal(data.get("size")),
            usdc_size=_decimal(data.get("usdcSize")),
            price=_decimal(data.get("price")),
            timestamp=int(data.get("timestamp") or 0),
            transaction_hash=data.get("transactionHash") or None,
            activity_type=str(data.get("type") or ActivityType.TRADE.value),
            title=str(data.get("title") or ""),
            outcome=str(data.get("outcome") or ""),
            slug=str(data.get("slug") or ""),
        )
