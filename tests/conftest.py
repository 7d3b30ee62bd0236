"""Shared pytest fixtures for Mimic tests.

- Copy settings with small, test-friendly values
- A connected SQLite record store on tmp_path
- Fake clock / market data / order gateway
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from mimic.core.config import CopySettings
from mimic.services.metrics import MetricsEmitter
from mimic.services.record_store import SQLiteRecordStore
from tests.fixtures import FakeClock, FakeMarketData, FakeOrderGateway

SOURCE_WALLET = "0x1111111111111111111111111111111111111111"
OWN_WALLET = "0x2222222222222222222222222222222222222222"


@pytest.fixture
def settings() -> CopySettings:
    return CopySettings(
        source_wallet=SOURCE_WALLET,
        own_wallet=OWN_WALLET,
        copy_ratio=Decimal("0.1"),
        retry_limit=3,
        min_order_usd=Decimal("1"),
        slippage_guard=Decimal("0.05"),
        max_age_hours=1.0,
        compaction_threshold=10_000,
    )


@pytest_asyncio.fixture
async def store(tmp_path):
    """Connected record store, closed after the test."""
    record_store = SQLiteRecordStore(str(tmp_path / "mimic.db"))
    await record_store.connect()
    yield record_store
    await record_store.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def market() -> FakeMarketData:
    return FakeMarketData()


@pytest.fixture
def orders() -> FakeOrderGateway:
    return FakeOrderGateway()


@pytest.fixture
def metrics() -> MetricsEmitter:
    return MetricsEmitter()
