"""
Mimic application lifecycle and component wiring.

Builds the services from configuration, then runs the two independent
loops as asyncio tasks until SIGINT/SIGTERM:
- TradeMonitor: source wallet -> record store
- TradeExecutor: record store -> copy engine -> exchange

Shutdown order: cancel both loops, close the exchange clients, close the
record store.
"""
import asyncio
import signal
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from mimic import __version__
from mimic.core.config import ConfigManager, CopySettings
from mimic.core.lifecycle import BaseComponent, HealthCheckResult, HealthStatus
from mimic.core.logging import get_logger, setup_logging
from mimic.domain.trade import TradeState
from mimic.integrations.polymarket.clob import CLOBClient
from mimic.integrations.polymarket.data_api import DataAPIClient
from mimic.integrations.polymarket.types import PolymarketSettings
from mimic.services.execution_loop import TradeExecutor
from mimic.services.gateways import PolymarketMarketData
from mimic.services.ingestion import TradeMonitor
from mimic.services.metrics import MetricsEmitter
from mimic.services.record_store import DEFAULT_DB_PATH, SQLiteRecordStore
from mimic.services.strategy import CopyStrategyEngine


class MimicApp(BaseComponent):
    """Main Mimic application.

    Usage:
        app = MimicApp(ConfigManager(Path("config/default.toml")))
        await app.run_forever()  # until SIGTERM/SIGINT
    """

    def __init__(
        self,
        config: Optional[ConfigManager] = None,
        polymarket: Optional[PolymarketSettings] = None,
        configure_logging: bool = True,
    ) -> None:
        """Initialize Mimic application.

        Args:
            config: Behaviour configuration (TOML + MIMIC_* env)
            polymarket: Wallet and API settings; read from POLYMARKET_* env
                (and .env) when omitted
            configure_logging: Set up structlog from the config
        """
        super().__init__(name="MimicApp")

        load_dotenv()
        self._config = config or ConfigManager()
        self._polymarket = polymarket or PolymarketSettings()
        self._dry_run = self._config.get_bool("mimic.dry_run", True)

        if configure_logging:
            setup_logging(
                level=str(self._config.get("mimic.log_level", "INFO")),
                json_output=self._config.get_bool("mimic.log_json", False),
            )
        self._log = get_logger("app")

        self._settings = CopySettings.from_config(
            self._config, own_wallet=self._polymarket.proxy_wallet
        )

        self._metrics = MetricsEmitter()
        self._store = SQLiteRecordStore(
            str(self._config.get("database.path", DEFAULT_DB_PATH))
        )
        self._data_api = DataAPIClient(self._polymarket)
        self._clob = CLOBClient(self._polymarket, dry_run=self._dry_run)
        self._market_data = PolymarketMarketData(self._data_api, self._clob)

        self._monitor = TradeMonitor(
            self._settings, self._market_data, self._store, metrics=self._metrics
        )
        self._engine = CopyStrategyEngine(
            self._settings, self._market_data, self._clob, self._store, metrics=self._metrics
        )
        self._executor = TradeExecutor(
            self._settings, self._market_data, self._engine, self._store, metrics=self._metrics
        )

        self._tasks: list[asyncio.Task] = []
        self._shutdown_event = asyncio.Event()

    @property
    def config(self) -> ConfigManager:
        return self._config

    @property
    def settings(self) -> CopySettings:
        return self._settings

    @property
    def metrics(self) -> MetricsEmitter:
        return self._metrics

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    async def _do_start(self) -> None:
        """Connect everything and launch both loops."""
        self._log.info(
            "starting_mimic",
            version=__version__,
            dry_run=self._dry_run,
            source_wallet=self._settings.source_wallet,
            own_wallet=self._settings.own_wallet,
            copy_ratio=str(self._settings.copy_ratio),
        )

        await self._store.connect()
        await self._data_api.connect()
        await self._clob.connect()

        metrics_port = self._config.get_int("metrics.port", 0)
        if metrics_port > 0:
            self._metrics.serve(metrics_port)
            self._log.info("metrics_server_started", port=metrics_port)

        self._tasks = [
            asyncio.create_task(self._monitor.run(), name="trade_monitor"),
            asyncio.create_task(self._executor.run(), name="trade_executor"),
        ]
        self._log.info("mimic_started", dry_run=self._dry_run)

    async def _do_stop(self) -> None:
        self._log.info("stopping_mimic")
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        await self._clob.close()
        await self._data_api.close()
        await self._store.close()
        self._metrics.update_uptime(self.uptime_seconds)
        self._log.info("mimic_stopped", uptime_seconds=self.uptime_seconds)

    async def _do_health_check(self) -> HealthCheckResult:
        issues = []
        for task in self._tasks:
            if task.done():
                issues.append(f"{task.get_name()}_stopped")

        for name, result in (
            ("trade_monitor", self._monitor.health()),
            ("trade_executor", self._executor.health()),
        ):
            if result.status != HealthStatus.HEALTHY:
                issues.append(f"{name}_{result.status.value}")

        if issues:
            return HealthCheckResult.degraded(
                message=f"Issues: {', '.join(issues)}",
                uptime_seconds=self.uptime_seconds,
            )
        return HealthCheckResult.healthy(
            uptime_seconds=self.uptime_seconds,
            dry_run=self._dry_run,
        )

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)
        self._log.info("signal_handlers_installed", signals=["SIGTERM", "SIGINT"])

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.remove_signal_handler(sig)
            except (ValueError, RuntimeError):
                pass

    def _handle_signal(self, sig: signal.Signals) -> None:
        self._log.info("shutdown_signal_received", signal=sig.name)
        self.request_shutdown()

    async def run_forever(self) -> None:
        """Run until a shutdown signal (or request_shutdown) arrives."""
        await self.start()
        self._install_signal_handlers()
        try:
            while not self._shutdown_event.is_set():
                self._metrics.update_uptime(self.uptime_seconds)
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=1.0)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._remove_signal_handlers()
            await self.stop()


async def trade_status(config: ConfigManager) -> dict[TradeState, int]:
    """Count stored trades per lifecycle state without starting the loops."""
    retry_limit = config.get_int("copy.retry_limit", 3)
    store = SQLiteRecordStore(str(config.get("database.path", DEFAULT_DB_PATH)))
    await store.connect()
    try:
        return await store.count_by_state(retry_limit)
    finally:
        await store.close()


def default_config_path() -> Optional[Path]:
    """First existing config file from the usual locations."""
    for path in (Path("config/default.toml"), Path("mimic.toml")):
        if path.exists():
            return path
    return None
