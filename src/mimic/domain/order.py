"""
Order domain models.

Mimic only sends market orders under fill-or-kill: each submission is
either filled at the requested amount or rejected outright.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class OrderSide(str, Enum):
    """Order side (buy or sell)."""
    BUY = "BUY"
    SELL = "SELL"


class FillPolicy(str, Enum):
    """Order time-in-force policy."""
    FOK = "FOK"  # Fill or Kill
    GTC = "GTC"  # Good til Cancelled


@dataclass(frozen=True)
class MarketOrderRequest:
    """A market order against one outcome token.

    ``amount`` is USDC notional for BUY and shares for SELL, matching the
    exchange's market-order convention.
    """
    side: OrderSide
    token_id: str
    amount: Decimal
    price: Decimal

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError(f"amount must be positive, got {self.amount}")
        if not (0 < self.price <= 1):
            raise ValueError(f"price must be in (0, 1], got {self.price}")


@dataclass
class SubmissionResult:
    """Binary accept/reject from the order gateway."""
    success: bool
    order_id: Optional[str] = None
    status: Optional[str] = None
    error_message: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, response: Any) -> "SubmissionResult":
        """Parse a ``post_order`` response (dict or object form)."""
        if isinstance(response, dict):
            data = response
        else:
            data = getattr(response, "__dict__", {}) or {}
        return cls(
            success=data.get("success") is True,
            order_id=data.get("orderID") or data.get("orderId") or None,
            status=data.get("status"),
            error_message=data.get("errorMsg") or data.get("error") or None,
            raw=dict(data),
        )

    @classmethod
    def rejected(cls, error_message: str) -> "SubmissionResult":
        return cls(success=False, error_message=error_message)
