"""Persistence layer for PriceWatch."""

from pricewatch.db.base import AlertStore, PriceStore
from pricewatch.db.store import DataStore

__all__ = [
    "AlertStore",
    "DataStore",
    "PriceStore",
]
