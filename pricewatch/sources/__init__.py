"""Price sources for PriceWatch."""

from pricewatch.sources.base import PriceSource
from pricewatch.sources.simulated import SimulatedPriceSource

__all__ = [
    "PriceSource",
    "SimulatedPriceSource",
]
