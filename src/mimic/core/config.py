"""
Configuration management with TOML + environment variable support.

Configuration hierarchy (later overrides earlier):
1. Default values in code
2. TOML file
3. Environment variables (MIMIC_* prefix)

The copy-trading knobs are collected into a typed ``CopySettings`` so the
services never read raw keys themselves.
"""
import os
import tomllib
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from mimic.core.retry import ConfigError


class ConfigManager:
    """Centralized configuration with TOML + env var support.

    Usage:
        config = ConfigManager(Path("config/default.toml"))
        ratio = config.get_decimal("copy.ratio", Decimal("0.1"))
        wallet = config.get("copy.source_wallet")
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        env_prefix: str = "MIMIC_",
        overrides: Optional[dict[str, Any]] = None,
    ) -> None:
        """Initialize ConfigManager.

        Args:
            config_path: Path to TOML config file (optional)
            env_prefix: Prefix for environment variable overrides
            overrides: Dot-notation values that win over env and TOML
                (used for command-line flags)
        """
        self._data: dict[str, Any] = {}
        self._env_prefix = env_prefix
        self._config_path = config_path
        self._overrides: dict[str, Any] = dict(overrides or {})

        if config_path and config_path.exists():
            self._load_toml(config_path)

    def _load_toml(self, path: Path) -> None:
        with open(path, "rb") as f:
            self._data = tomllib.load(f)

    def _get_nested(self, key: str) -> tuple[bool, Any]:
        """Walk dot-notation key through the TOML data."""
        current: Any = self._data
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return False, None
            current = current[part]
        return True, current

    def env_key(self, key: str) -> str:
        """Map "copy.retry_limit" to "MIMIC_COPY_RETRY_LIMIT"."""
        return self._env_prefix + key.upper().replace(".", "_")

    def _get_env_value(self, key: str) -> tuple[bool, Any]:
        env_key = self.env_key(key)
        if env_key in os.environ:
            return True, self._parse_env_value(os.environ[env_key])
        return False, None

    def _parse_env_value(self, value: str) -> Any:
        """Parse environment variable string to appropriate type."""
        lowered = value.lower()
        if lowered in ("true", "yes", "on"):
            return True
        if lowered in ("false", "no", "off"):
            return False

        # Wallet addresses are hex strings, never numbers
        if lowered.startswith("0x"):
            return value

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value with dot notation.

        Overrides win, then environment variables, then TOML.
        """
        if key in self._overrides:
            return self._overrides[key]

        found, value = self._get_env_value(key)
        if found:
            return value

        found, value = self._get_nested(key)
        if found:
            return value

        return default

    def get_decimal(self, key: str, default: Decimal = Decimal("0")) -> Decimal:
        """Get value as Decimal, going through str to avoid float artifacts."""
        value = self.get(key)
        if value is None:
            return default
        try:
            return Decimal(str(value))
        except ArithmeticError as e:
            raise ConfigError(f"{key} is not a decimal: {value!r}", cause=e)

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self.get(key)
        if value is None:
            return default
        return float(value)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key)
        if value is None:
            return default
        return int(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    @property
    def config_path(self) -> Optional[Path]:
        return self._config_path


@dataclass(frozen=True)
class CopySettings:
    """Copy-trading parameters consumed by ingestion and execution."""

    source_wallet: str
    own_wallet: str = ""
    copy_ratio: Decimal = Decimal("0.1")
    retry_limit: int = 3
    min_order_usd: Decimal = Decimal("1")
    slippage_guard: Decimal = Decimal("0.05")
    max_age_hours: float = 1.0
    ingestion_interval_seconds: float = 1.0
    execution_interval_seconds: float = 1.0
    activity_limit: int = 100
    compaction_threshold: int = 10_000

    @property
    def max_age_seconds(self) -> int:
        return int(self.max_age_hours * 3600)

    @classmethod
    def from_config(cls, config: ConfigManager, own_wallet: str = "") -> "CopySettings":
        """Build settings from a ConfigManager and validate them."""
        settings = cls(
            source_wallet=str(config.get("copy.source_wallet", "") or ""),
            own_wallet=own_wallet or str(config.get("copy.own_wallet", "") or ""),
            copy_ratio=config.get_decimal("copy.ratio", Decimal("0.1")),
            retry_limit=config.get_int("copy.retry_limit", 3),
            min_order_usd=config.get_decimal("copy.min_order_usd", Decimal("1")),
            slippage_guard=config.get_decimal("copy.slippage_guard", Decimal("0.05")),
            max_age_hours=config.get_float("ingestion.max_age_hours", 1.0),
            ingestion_interval_seconds=config.get_float("ingestion.interval_seconds", 1.0),
            execution_interval_seconds=config.get_float("execution.interval_seconds", 1.0),
            activity_limit=config.get_int("ingestion.activity_limit", 100),
            compaction_threshold=config.get_int("ingestion.compaction_threshold", 10_000),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise ConfigError on values the loops cannot run with."""
        if not self.source_wallet:
            raise ConfigError("copy.source_wallet is required")
        if not self.own_wallet:
            raise ConfigError(
                "own wallet is required (POLYMARKET_PROXY_WALLET or copy.own_wallet)"
            )
        if self.copy_ratio <= 0:
            raise ConfigError(f"copy.ratio must be positive, got {self.copy_ratio}")
        if self.retry_limit < 1:
            raise ConfigError(f"copy.retry_limit must be >= 1, got {self.retry_limit}")
        if self.min_order_usd < 0:
            raise ConfigError("copy.min_order_usd must be non-negative")
        if self.slippage_guard < 0:
            raise ConfigError("copy.slippage_guard must be non-negative")
        if self.max_age_hours <= 0:
            raise ConfigError("ingestion.max_age_hours must be positive")
        if self.compaction_threshold < 1:
            raise ConfigError("ingestion.compaction_threshold must be >= 1")
