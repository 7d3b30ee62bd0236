# Polymarket Integration Layer
# Data API (positions, activity) and CLOB (order books, orders)

from mimic.integrations.polymarket.clob import CLOBClient, CLOBClientError
from mimic.integrations.polymarket.data_api import DataAPIClient
from mimic.integrations.polymarket.types import POLYGON_CHAIN_ID, PolymarketSettings

__all__ = [
    "PolymarketSettings",
    "POLYGON_CHAIN_ID",
    "DataAPIClient",
    "CLOBClient",
    "CLOBClientError",
]
