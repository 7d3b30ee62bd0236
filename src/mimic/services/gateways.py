"""Seams to the exchange.

The loops and the copy engine depend on these protocols only. Production
wiring combines the Data API (wallet feeds) and the CLOB (order books,
orders); tests pass in fakes.
"""

from typing import Any, Protocol, runtime_checkable

from mimic.domain.market import OrderBookSnapshot, PositionSnapshot
from mimic.domain.order import FillPolicy, MarketOrderRequest, SubmissionResult
from mimic.domain.trade import TradeRecord
from mimic.integrations.polymarket.clob import CLOBClient
from mimic.integrations.polymarket.data_api import DataAPIClient


@runtime_checkable
class MarketDataGateway(Protocol):
    """Read access to wallet feeds and order books."""

    async def get_positions(self, wallet_address: str) -> list[PositionSnapshot]:
        ...

    async def get_activity(
        self, wallet_address: str, limit: int = 100, offset: int = 0
    ) -> list[TradeRecord]:
        ...

    async def get_order_book(self, asset: str) -> OrderBookSnapshot:
        ...


@runtime_checkable
class OrderGateway(Protocol):
    """Signs and submits orders."""

    async def create_market_order(self, request: MarketOrderRequest) -> Any:
        ...

    async def post_order(
        self, signed_order: Any, fill_policy: FillPolicy = FillPolicy.FOK
    ) -> SubmissionResult:
        ...


class PolymarketMarketData:
    """MarketDataGateway backed by the Data API and the CLOB."""

    def __init__(self, data_api: DataAPIClient, clob: CLOBClient):
        self._data_api = data_api
        self._clob = clob

    async def get_positions(self, wallet_address: str) -> list[PositionSnapshot]:
        return await self._data_api.get_positions(wallet_address)

    async def get_activity(
        self, wallet_address: str, limit: int = 100, offset: int = 0
    ) -> list[TradeRecord]:
        return await self._data_api.get_activity(wallet_address, limit=limit, offset=offset)

    async def get_order_book(self, asset: str) -> OrderBookSnapshot:
        return await self._clob.get_order_book(asset)
