"""
Unit tests for ConfigManager and CopySettings.

Tests verify:
- TOML loading
- Environment variable overrides
- Command-line overrides
- Type-specific getters
- CopySettings validation
"""
from decimal import Decimal
from pathlib import Path

import pytest

from mimic.core.config import ConfigManager, CopySettings
from mimic.core.retry import ConfigError

TOML = """
[mimic]
dry_run = true
log_level = "DEBUG"

[copy]
source_wallet = "0xsource"
ratio = 0.25
retry_limit = 5
min_order_usd = 2.0
slippage_guard = 0.02

[ingestion]
max_age_hours = 2
compaction_threshold = 500
"""


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "mimic.toml"
    path.write_text(TOML)
    return path


class TestConfigBasics:
    """Tests for basic ConfigManager functionality."""

    def test_empty_config(self):
        config = ConfigManager()
        assert config.get("any.key") is None
        assert config.get("any.key", "default") == "default"

    def test_missing_file_is_empty(self, tmp_path):
        config = ConfigManager(tmp_path / "missing.toml")
        assert config.get("mimic.log_level") is None

    def test_load_toml_file(self, config_file):
        config = ConfigManager(config_file)

        assert config.get("mimic.log_level") == "DEBUG"
        assert config.get("mimic.dry_run") is True
        assert config.get("copy.retry_limit") == 5
        assert config.config_path == config_file

    def test_get_decimal_avoids_float_noise(self, config_file):
        config = ConfigManager(config_file)

        assert config.get_decimal("copy.ratio") == Decimal("0.25")
        assert config.get_decimal("copy.slippage_guard") == Decimal("0.02")
        assert config.get_decimal("missing", Decimal("0.1")) == Decimal("0.1")

    def test_get_decimal_invalid(self):
        config = ConfigManager(overrides={"copy.ratio": "a lot"})

        with pytest.raises(ConfigError, match="copy.ratio"):
            config.get_decimal("copy.ratio")


class TestOverrides:
    """Tests for env var and command-line overrides."""

    def test_env_key(self):
        assert ConfigManager().env_key("copy.retry_limit") == "MIMIC_COPY_RETRY_LIMIT"

    def test_env_overrides_toml(self, config_file, monkeypatch):
        monkeypatch.setenv("MIMIC_COPY_RETRY_LIMIT", "1")
        monkeypatch.setenv("MIMIC_MIMIC_DRY_RUN", "false")

        config = ConfigManager(config_file)

        assert config.get("copy.retry_limit") == 1
        assert config.get_bool("mimic.dry_run") is False

    def test_env_wallet_stays_string(self, monkeypatch):
        monkeypatch.setenv("MIMIC_COPY_SOURCE_WALLET", "0x0000000000000000000000000000000000000001")

        assert ConfigManager().get("copy.source_wallet") == "0x0000000000000000000000000000000000000001"

    def test_env_float(self, monkeypatch):
        monkeypatch.setenv("MIMIC_COPY_RATIO", "0.5")

        assert ConfigManager().get_decimal("copy.ratio") == Decimal("0.5")

    def test_overrides_win(self, config_file, monkeypatch):
        monkeypatch.setenv("MIMIC_MIMIC_DRY_RUN", "true")

        config = ConfigManager(config_file, overrides={"mimic.dry_run": False})

        assert config.get_bool("mimic.dry_run") is False


class TestCopySettings:
    """Tests for CopySettings construction and validation."""

    def test_from_config(self, config_file):
        settings = CopySettings.from_config(ConfigManager(config_file), own_wallet="0xown")

        assert settings.source_wallet == "0xsource"
        assert settings.own_wallet == "0xown"
        assert settings.copy_ratio == Decimal("0.25")
        assert settings.retry_limit == 5
        assert settings.min_order_usd == Decimal("2.0")
        assert settings.max_age_seconds == 7200
        assert settings.compaction_threshold == 500

    def test_defaults(self):
        settings = CopySettings.from_config(
            ConfigManager(overrides={"copy.source_wallet": "0xsource"}), own_wallet="0xown"
        )

        assert settings.copy_ratio == Decimal("0.1")
        assert settings.retry_limit == 3
        assert settings.min_order_usd == Decimal("1")
        assert settings.slippage_guard == Decimal("0.05")
        assert settings.max_age_seconds == 3600
        assert settings.activity_limit == 100

    def test_source_wallet_required(self):
        with pytest.raises(ConfigError, match="source_wallet"):
            CopySettings.from_config(ConfigManager(), own_wallet="0xown")

    def test_own_wallet_required(self):
        config = ConfigManager(overrides={"copy.source_wallet": "0xsource"})

        with pytest.raises(ConfigError, match="POLYMARKET_PROXY_WALLET"):
            CopySettings.from_config(config)

    def test_own_wallet_from_config(self):
        config = ConfigManager(
            overrides={"copy.source_wallet": "0xsource", "copy.own_wallet": "0xown"}
        )

        assert CopySettings.from_config(config).own_wallet == "0xown"

    @pytest.mark.parametrize(
        "key,value",
        [
            ("copy.ratio", 0),
            ("copy.retry_limit", 0),
            ("copy.min_order_usd", -1),
            ("copy.slippage_guard", -0.01),
            ("ingestion.max_age_hours", 0),
            ("ingestion.compaction_threshold", 0),
        ],
    )
    def test_invalid_values_rejected(self, key, value):
        config = ConfigManager(overrides={"copy.source_wallet": "0xsource", key: value})

        with pytest.raises(ConfigError, match=key):
            CopySettings.from_config(config, own_wallet="0xown")
