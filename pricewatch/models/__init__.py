"""Data models for PriceWatch."""

from pricewatch.models.alert import CONDITIONS, Alert, AlertCondition
from pricewatch.models.market_price import MarketPrice

__all__ = [
    "Alert",
    "AlertCondition",
    "CONDITIONS",
    "MarketPrice",
]
