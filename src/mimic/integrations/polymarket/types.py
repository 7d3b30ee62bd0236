"""Polymarket connection settings.

Secrets come from the environment (``POLYMARKET_*``) rather than the TOML
file so the config file can be committed.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

POLYGON_CHAIN_ID = 137


class PolymarketSettings(BaseSettings):
    """Polymarket API and wallet configuration."""

    # Wallet Configuration
    private_key: str = Field(default="", description="Polygon wallet private key")
    proxy_wallet: str = Field(default="", description="Polymarket proxy wallet address (the copying account)")
    signature_type: int = Field(default=1, description="0=EOA, 1=Magic, 2=Browser")

    # API Credentials (derived from private key when absent)
    api_key: Optional[str] = Field(default=None, description="CLOB API key")
    api_secret: Optional[str] = Field(default=None, description="CLOB API secret")
    api_passphrase: Optional[str] = Field(default=None, description="CLOB API passphrase")

    # Network Configuration
    clob_url: str = Field(
        default="https://clob.polymarket.com",
        description="CLOB HTTP API URL",
    )
    data_api_url: str = Field(
        default="https://data-api.polymarket.com",
        description="Data API URL for positions and activity",
    )

    # HTTP Proxy (for routing through VPN)
    http_proxy: Optional[str] = Field(
        default=None,
        description="HTTP proxy URL (e.g., http://gluetun:8888)",
    )

    model_config = SettingsConfigDict(env_prefix="POLYMARKET_", extra="ignore")

    @property
    def has_api_creds(self) -> bool:
        return bool(self.api_key and self.api_secret and self.api_passphrase)
