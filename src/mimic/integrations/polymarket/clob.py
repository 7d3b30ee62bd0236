"""Polymarket CLOB client for order books and market orders.

Wraps the synchronous py-clob-client library with asyncio support by
running its calls in a thread pool. Submissions are reported as a binary
accept/reject; the copy engine never relies on partial-fill reporting.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mimic.core.retry import (
    GatewayError,
    NetworkError,
    OrderRejectedError,
    TransientError,
    wrap_external_error,
)
from mimic.domain.market import OrderBookLevel, OrderBookSnapshot
from mimic.domain.order import FillPolicy, MarketOrderRequest, OrderSide, SubmissionResult
from mimic.integrations.polymarket.types import POLYGON_CHAIN_ID, PolymarketSettings

log = structlog.get_logger()

# Retry configuration for book reads
RETRY_ATTEMPTS = 3
RETRY_WAIT_MIN = 0.5
RETRY_WAIT_MAX = 5


class CLOBClientError(GatewayError):
    """Base error from the CLOB client."""


class CLOBClient:
    """Async client for the Polymarket CLOB.

    In dry-run mode order books are still read from the exchange but
    ``post_order`` accepts every order locally without sending it.
    """

    def __init__(
        self,
        settings: PolymarketSettings,
        dry_run: bool = True,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """Initialize the CLOB client.

        Args:
            settings: Polymarket connection settings including credentials.
            dry_run: If True, never send orders to the exchange.
            executor: Optional thread pool for the synchronous library.
        """
        self._settings = settings
        self._dry_run = dry_run
        self._executor = executor or ThreadPoolExecutor(max_workers=2)
        self._client: Any = None  # py-clob-client ClobClient instance
        self._log = log.bind(component="clob_client", dry_run=dry_run)
        self._connected = False
        self._dry_run_seq = 0

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    async def connect(self) -> None:
        """Create the underlying ClobClient and set up L2 credentials."""
        if self._connected:
            return

        from py_clob_client.client import ClobClient
        from py_clob_client.clob_types import ApiCreds

        settings = self._settings
        can_sign = bool(settings.private_key)
        if not can_sign and not self._dry_run:
            raise CLOBClientError("POLYMARKET_PRIVATE_KEY is required for live trading")

        def create_client() -> Any:
            if not can_sign:
                # L0 only: order books, no signing
                return ClobClient(host=settings.clob_url.rstrip("/"))

            client = ClobClient(
                host=settings.clob_url.rstrip("/"),
                key=settings.private_key,
                chain_id=POLYGON_CHAIN_ID,
                signature_type=settings.signature_type,
                funder=settings.proxy_wallet or None,
            )
            if settings.has_api_creds:
                creds = ApiCreds(
                    api_key=settings.api_key,
                    api_secret=settings.api_secret,
                    api_passphrase=settings.api_passphrase,
                )
            else:
                creds = client.create_or_derive_api_creds()
            client.set_api_creds(creds)
            return client

        self._client = await self._run_sync(create_client)
        self._connected = True
        self._log.info("clob_client_connected", url=settings.clob_url, can_sign=can_sign)

    async def close(self) -> None:
        self._client = None
        self._connected = False
        self._executor.shutdown(wait=False)
        self._log.info("clob_client_closed")

    def _ensure_connected(self) -> Any:
        if not self._connected or self._client is None:
            raise CLOBClientError("Client not connected. Call connect() first.")
        return self._client

    async def _run_sync(self, func, *args, **kwargs):
        """Run a synchronous function in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor, lambda: func(*args, **kwargs)
        )

    # =========================================================================
    # Market data
    # =========================================================================

    @retry(
        stop=stop_after_attempt(RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=RETRY_WAIT_MIN, max=RETRY_WAIT_MAX),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
    )
    async def get_order_book(self, asset: str) -> OrderBookSnapshot:
        """Fresh order book for an outcome token.

        Levels are kept in the order the exchange returned them.
        """
        client = self._ensure_connected()
        try:
            raw_book = await self._run_sync(client.get_order_book, asset)
        except (ConnectionError, TimeoutError, OSError) as e:
            raise NetworkError(f"order book fetch failed for {asset}", cause=e) from e
        except Exception as e:
            raise wrap_external_error(e, f"order book fetch failed for {asset}") from e

        if isinstance(raw_book, dict):
            raw_bids, raw_asks = raw_book.get("bids"), raw_book.get("asks")
        else:
            raw_bids, raw_asks = getattr(raw_book, "bids", None), getattr(raw_book, "asks", None)

        return OrderBookSnapshot(
            asset=asset,
            bids=self._parse_book_levels(raw_bids),
            asks=self._parse_book_levels(raw_asks),
            timestamp=datetime.now(timezone.utc),
        )

    def _parse_book_levels(self, levels) -> tuple[OrderBookLevel, ...]:
        """Parse levels from dicts or OrderSummary objects, dropping empty ones."""
        if not levels:
            return ()

        result = []
        for level in levels:
            if isinstance(level, dict):
                price = Decimal(str(level.get("price", 0)))
                size = Decimal(str(level.get("size", 0)))
            else:
                price = Decimal(str(getattr(level, "price", 0)))
                size = Decimal(str(getattr(level, "size", 0)))

            if size > 0:
                result.append(OrderBookLevel(price=price, size=size))

        return tuple(result)

    # =========================================================================
    # Orders
    # =========================================================================

    async def create_market_order(self, request: MarketOrderRequest) -> Any:
        """Sign a market order. Returns the library's signed order object."""
        if self._dry_run:
            return request

        from py_clob_client.clob_types import MarketOrderArgs
        from py_clob_client.order_builder.constants import BUY, SELL

        client = self._ensure_connected()
        order_args = MarketOrderArgs(
            token_id=request.token_id,
            amount=float(request.amount),
            side=BUY if request.side == OrderSide.BUY else SELL,
            price=float(request.price),
        )
        try:
            return await self._run_sync(client.create_market_order, order_args)
        except Exception as e:
            raise OrderRejectedError(f"signing failed for {request.token_id}", cause=e) from e

    async def post_order(
        self,
        signed_order: Any,
        fill_policy: FillPolicy = FillPolicy.FOK,
    ) -> SubmissionResult:
        """Submit a signed order. Exchange-side rejections come back as
        ``success=False``; transport errors propagate."""
        if self._dry_run:
            self._dry_run_seq += 1
            self._log.info(
                "dry_run_order",
                side=signed_order.side.value,
                token_id=signed_order.token_id,
                amount=str(signed_order.amount),
                price=str(signed_order.price),
            )
            return SubmissionResult(
                success=True,
                order_id=f"dry-run-{self._dry_run_seq}",
                status="DRY_RUN",
            )

        from py_clob_client.clob_types import OrderType
        from py_clob_client.exceptions import PolyApiException

        client = self._ensure_connected()
        order_type = OrderType.FOK if fill_policy == FillPolicy.FOK else OrderType.GTC
        try:
            response = await self._run_sync(client.post_order, signed_order, order_type)
        except PolyApiException as e:
            # FOK orders that cannot fill come back as HTTP 400
            self._log.warning("order_rejected_by_exchange", error=str(e))
            return SubmissionResult.rejected(str(e))
        return SubmissionResult.from_response(response)
