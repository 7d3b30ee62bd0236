"""External system adapters."""

from mimic.integrations.polymarket import CLOBClient, DataAPIClient, PolymarketSettings

__all__ = [
    "PolymarketSettings",
    "DataAPIClient",
    "CLOBClient",
]
