"""
Market domain models.

Order book levels arrive unordered from the exchange; best-price selection
scans them instead of trusting the order.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional


@dataclass(frozen=True)
class OrderBookLevel:
    """Single level in an order book (price + size)."""
    price: Decimal
    size: Decimal

    def __post_init__(self) -> None:
        if self.price < 0 or self.price > 1:
            raise ValueError(f"price must be between 0 and 1, got {self.price}")
        if self.size < 0:
            raise ValueError(f"size must be non-negative, got {self.size}")

    @property
    def notional(self) -> Decimal:
        """USDC value of the whole level."""
        return self.price * self.size


@dataclass(frozen=True)
class OrderBookSnapshot:
    """Point-in-time bids and asks for one outcome token."""
    asset: str
    bids: tuple[OrderBookLevel, ...] = ()
    asks: tuple[OrderBookLevel, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def best_bid(self) -> Optional[OrderBookLevel]:
        """Highest-priced non-empty bid; the first one encountered wins ties."""
        best: Optional[OrderBookLevel] = None
        for level in self.bids:
            if level.size <= 0:
                continue
            if best is None or level.price > best.price:
                best = level
        return best

    def best_ask(self) -> Optional[OrderBookLevel]:
        """Lowest-priced non-empty ask; the first one encountered wins ties."""
        best: Optional[OrderBookLevel] = None
        for level in self.asks:
            if level.size <= 0:
                continue
            if best is None or level.price < best.price:
                best = level
        return best


@dataclass(frozen=True)
class PositionSnapshot:
    """Current holding of one wallet in one market."""
    condition_id: str
    asset: str
    size: Decimal
    avg_price: Decimal = Decimal("0")
    outcome: str = ""
    title: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "PositionSnapshot":
        """Build from a data-API ``/positions`` entry."""
        return cls(
            condition_id=str(data.get("conditionId", "")),
            asset=str(data.get("asset", "")),
            size=Decimal(str(data.get("size") or 0)),
            avg_price=Decimal(str(data.get("avgPrice") or 0)),
            outcome=str(data.get("outcome") or ""),
            title=str(data.get("title") or ""),
        )
