"""Polymarket Data API client for wallet positions and activity.

The Data API is public and read-only. It is polled every ingestion tick for
the source wallet and once per trade for the copying wallet, so transient
failures are retried briefly and then surfaced to the calling loop.
"""

from typing import Any, Optional

import httpx
import structlog

from mimic.core.retry import (
    GatewayError,
    NetworkError,
    RateLimitError,
    ServiceUnavailableError,
    retry_transient,
)
from mimic.domain.market import PositionSnapshot
from mimic.domain.trade import TradeRecord
from mimic.integrations.polymarket.types import PolymarketSettings

log = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 10.0


class DataAPIClient:
    """Async HTTP client for ``data-api.polymarket.com``."""

    def __init__(
        self,
        settings: PolymarketSettings,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            settings: Polymarket connection settings.
            timeout: HTTP request timeout in seconds.
            transport: Optional transport override (tests use MockTransport).
        """
        self._base_url = settings.data_api_url.rstrip("/")
        self._timeout = timeout
        self._proxy = settings.http_proxy
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._log = log.bind(component="data_api")

    async def connect(self) -> None:
        if self._client is not None:
            return

        transport = self._transport
        if transport is None and self._proxy:
            transport = httpx.AsyncHTTPTransport(proxy=self._proxy)

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._log.info("data_api_connected", base_url=self._base_url)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._log.info("data_api_closed")

    async def __aenter__(self) -> "DataAPIClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_connected(self) -> httpx.AsyncClient:
        if self._client is None:
            raise GatewayError("Client not connected. Call connect() first.")
        return self._client

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        """GET and decode JSON, mapping failures onto the error hierarchy."""
        client = self._ensure_connected()
        try:
            response = await client.get(path, params=params)
        except httpx.TransportError as e:
            raise NetworkError(f"GET {path} failed", cause=e) from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"GET {path} rate limited",
                retry_after=float(retry_after) if retry_after else None,
            )
        if response.status_code >= 500:
            raise ServiceUnavailableError(f"GET {path} returned {response.status_code}")
        if response.status_code >= 400:
            raise GatewayError(f"GET {path} returned {response.status_code}: {response.text[:200]}")

        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(f"GET {path} returned invalid JSON", cause=e) from e

    @retry_transient(max_attempts=3, log_context={"component": "data_api"})
    async def get_positions(self, wallet_address: str) -> list[PositionSnapshot]:
        """Current positions held by a wallet."""
        data = await self._get_json("/positions", {"user": wallet_address})
        if not isinstance(data, list):
            raise GatewayError(f"Unexpected /positions payload: {type(data).__name__}")
        return [PositionSnapshot.from_api(item) for item in data if isinstance(item, dict)]

    @retry_transient(max_attempts=3, log_context={"component": "data_api"})
    async def get_activity(
        self,
        wallet_address: str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TradeRecord]:
        """Most recent activity events of a wallet, newest first."""
        data = await self._get_json(
            "/activity",
            {"user": wallet_address, "limit": limit, "offset": offset},
        )
        if not isinstance(data, list):
            raise GatewayError(f"Unexpected /activity payload: {type(data).__name__}")

        records = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                records.append(TradeRecord.from_activity(item))
            except (ValueError, ArithmeticError) as e:
                self._log.warning(
                    "activity_unparseable",
                    transaction_hash=item.get("transactionHash"),
                    error=str(e),
                )
        return records
