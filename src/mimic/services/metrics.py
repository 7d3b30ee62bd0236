"""
Prometheus metrics emission for Mimic.

All metrics use the 'mimic_' prefix and live in a private registry so
several emitters can coexist in one test process.
"""
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Info,
    generate_latest,
    start_http_server,
)

from mimic import __version__


class MetricsEmitter:
    """Prometheus metrics emission (emit only, no reading).

    Usage:
        emitter = MetricsEmitter()
        emitter.record_ingested(3)
        emitter.record_outcome("buy", "filled")
        text = emitter.get_metrics()
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self._registry = registry or CollectorRegistry()

        self._info = Info(
            "mimic",
            "Mimic copy-trading bot information",
            registry=self._registry,
        )
        self._info.info({"version": __version__})

        self._uptime = Gauge(
            "mimic_uptime_seconds",
            "Process uptime in seconds",
            registry=self._registry,
        )

        # Ingestion
        self._trades_ingested = Counter(
            "mimic_trades_ingested_total",
            "Source-wallet activities stored as new trade records",
            registry=self._registry,
        )
        self._ingestion_failures = Counter(
            "mimic_ingestion_failures_total",
            "Ingestion cycles that raised",
            registry=self._registry,
        )
        self._seen_index_size = Gauge(
            "mimic_seen_index_size",
            "Dedup keys held in memory",
            registry=self._registry,
        )

        # Execution
        self._outcomes = Counter(
            "mimic_execution_outcomes_total",
            "Terminal outcomes of copied trades",
            ["strategy", "outcome"],
            registry=self._registry,
        )
        self._orders = Counter(
            "mimic_orders_total",
            "Orders submitted to the exchange",
            ["side", "status"],
            registry=self._registry,
        )
        self._pending_trades = Gauge(
            "mimic_pending_trades",
            "Trades awaiting execution at the last tick",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def update_uptime(self, seconds: float) -> None:
        self._uptime.set(seconds)

    def record_ingested(self, count: int) -> None:
        if count > 0:
            self._trades_ingested.inc(count)

    def record_ingestion_failure(self) -> None:
        self._ingestion_failures.inc()

    def set_seen_index_size(self, size: int) -> None:
        self._seen_index_size.set(size)

    def record_outcome(self, strategy: str, outcome: str) -> None:
        self._outcomes.labels(strategy=strategy, outcome=outcome).inc()

    def record_order(self, side: str, success: bool) -> None:
        self._orders.labels(side=side, status="accepted" if success else "rejected").inc()

    def set_pending_trades(self, count: int) -> None:
        self._pending_trades.set(count)

    def get_metrics(self) -> bytes:
        """Prometheus text exposition of the registry."""
        return generate_latest(self._registry)

    def serve(self, port: int) -> None:
        """Expose the registry over HTTP on a background thread."""
        start_http_server(port, registry=self._registry)
