"""Mimic services - ingestion, execution and their collaborators."""

from mimic.services.execution_loop import TradeExecutor
from mimic.services.gateways import MarketDataGateway, OrderGateway, PolymarketMarketData
from mimic.services.ingestion import SeenIndex, TradeMonitor
from mimic.services.metrics import MetricsEmitter
from mimic.services.record_store import RecordStore, SQLiteRecordStore
from mimic.services.strategy import (
    CopyStrategyEngine,
    ExecutionOutcome,
    ExecutionReport,
    StatusNotRecordedError,
)

__all__ = [
    "CopyStrategyEngine",
    "ExecutionOutcome",
    "ExecutionReport",
    "MarketDataGateway",
    "MetricsEmitter",
    "OrderGateway",
    "PolymarketMarketData",
    "RecordStore",
    "SQLiteRecordStore",
    "SeenIndex",
    "StatusNotRecordedError",
    "TradeExecutor",
    "TradeMonitor",
]
