"""Simulated price source using a bounded random walk."""

import logging
import random
from datetime import datetime
from typing import Callable, Iterable, Optional

from pricewatch.db.base import PriceStore
from pricewatch.errors import PersistenceFailure, SourceUnavailable
from pricewatch.models import MarketPrice
from pricewatch.sources.base import PriceSource
from pricewatch.timeutil import as_utc, utc_now

logger = logging.getLogger(__name__)


# Starting prices used when a tracked symbol has no stored price yet
DEFAULT_SEED_PRICES = {
    "AAPL": 178.50,
    "MSFT": 378.90,
    "GOOGL": 141.80,
    "AMZN": 178.25,
    "TSLA": 248.50,
    "NVDA": 495.20,
    "META": 353.40,
}

MIN_PRICE = 0.01


class SimulatedPriceSource(PriceSource):
    """Price source that moves each symbol by a small random step.

    Every refresh multiplies the stored price by ``1 + N(0, volatility)``,
    floored at ``MIN_PRICE`` so prices stay positive.
    """

    DEFAULT_VOLATILITY = 0.002
    DEFAULT_FALLBACK_PRICE = 100.0

    def __init__(
        self,
        price_store: PriceStore,
        symbols: Iterable[str],
        volatility: float = DEFAULT_VOLATILITY,
        seed: Optional[int] = None,
        initial_prices: Optional[dict[str, float]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the simulated source.

        Args:
            price_store: Store that receives the prices.
            symbols: Symbols to track.
            volatility: Standard deviation of each step as a fraction.
            seed: Optional random seed for repeatable walks.
            initial_prices: Starting prices by symbol.
            clock: Timestamp source for written prices. Naive values are
                taken as UTC.
        """
        if volatility < 0:
            raise ValueError("volatility must not be negative")
        self._store = price_store
        self._symbols = [s.strip().upper() for s in symbols if s.strip()]
        self._volatility = volatility
        self._random = random.Random(seed)
        self._initial_prices = {
            k.upper(): v for k, v in (initial_prices or DEFAULT_SEED_PRICES).items()
        }
        self._clock = clock

    @property
    def symbols(self) -> list[str]:
        """Tracked symbols."""
        return list(self._symbols)

    def _initial_price(self, symbol: str) -> float:
        return self._initial_prices.get(symbol, self.DEFAULT_FALLBACK_PRICE)

    def _step(self, price: float) -> float:
        change = self._random.gauss(0, self._volatility)
        return max(MIN_PRICE, round(price * (1 + change), 2))

    def seed_prices(self) -> int:
        """Write a starting price for tracked symbols that have none.

        Returns:
            Number of symbols seeded.
        """
        seeded = 0
        try:
            for symbol in self._symbols:
                if self._store.get_price(symbol) is None:
                    self._store.set_price(symbol, self._initial_price(symbol), as_utc(self._clock()))
                    seeded += 1
        except PersistenceFailure as e:
            raise SourceUnavailable(f"Failed to seed prices: {e}") from e

        if seeded:
            logger.info("Seeded %d symbol(s)", seeded)
        return seeded

    def _timestamp(self, symbol: str, current: Optional[MarketPrice]) -> datetime:
        """Timestamp for a new price, never earlier than the stored one."""
        now = as_utc(self._clock())
        if current is None:
            return now
        stored = as_utc(current.updated_at)
        if now < stored:
            logger.warning(
                "Clock is behind the stored %s price (%s < %s), reusing its timestamp",
                symbol,
                now.isoformat(),
                stored.isoformat(),
            )
            return stored
        return now

    def refresh_all(self) -> None:
        """Move every tracked symbol one random step and store it."""
        rejected = []
        try:
            for symbol in self._symbols:
                current = self._store.get_price(symbol)
                base = current.price if current else self._initial_price(symbol)
                new_price = self._step(base)
                if self._store.set_price(symbol, new_price, self._timestamp(symbol, current)):
                    logger.debug("%s: %.2f -> %.2f", symbol, base, new_price)
                else:
                    rejected.append(symbol)
        except PersistenceFailure as e:
            raise SourceUnavailable(f"Failed to refresh prices: {e}") from e

        if rejected:
            logger.warning(
                "Store kept newer prices for %d symbol(s): %s",
                len(rejected),
                ", ".join(rejected),
            )
        logger.debug("Refreshed %d symbol(s)", len(self._symbols) - len(rejected))

    def reset_daily_stats(self) -> None:
        """Reset day open/high/low to the current price."""
        try:
            count = self._store.reset_daily_stats()
        except PersistenceFailure as e:
            raise SourceUnavailable(f"Failed to reset daily stats: {e}") from e
        logger.info("Daily stats reset for %d symbol(s)", count)
