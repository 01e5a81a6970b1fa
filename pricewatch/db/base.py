"""Store interfaces consumed by the evaluation cycle."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from pricewatch.models import Alert, MarketPrice


class PriceStore(ABC):
    """Durable mapping of symbol to last known price.

    Implementations hold at most one record per symbol and never move
    a symbol's ``updated_at`` backwards.
    """

    @abstractmethod
    def get_price(self, symbol: str) -> Optional[MarketPrice]:
        """Get the latest price for a symbol.

        Args:
            symbol: Ticker symbol.

        Returns:
            MarketPrice if one is stored, None otherwise.

        Raises:
            PersistenceFailure: If the read fails.
        """
        pass

    @abstractmethod
    def set_price(self, symbol: str, price: float, timestamp: datetime) -> bool:
        """Store a new price for a symbol.

        Args:
            symbol: Ticker symbol.
            price: New price, must be positive.
            timestamp: Time the price was observed.

        Returns:
            True if the price was written, False if it was older than the
            stored one and ignored.

        Raises:
            PersistenceFailure: If the write fails.
        """
        pass

    @abstractmethod
    def get_prices(self) -> list[MarketPrice]:
        """Get all stored prices."""
        pass

    @abstractmethod
    def reset_daily_stats(self) -> int:
        """Reset day open/high/low to the current price for every symbol.

        Returns:
            Number of symbols reset.
        """
        pass


class AlertStore(ABC):
    """Durable collection of alerts as seen by the evaluation cycle."""

    @abstractmethod
    def get_pending_alerts(self) -> list[Alert]:
        """Get every alert that has not triggered yet.

        Raises:
            PersistenceFailure: If the read fails.
        """
        pass

    @abstractmethod
    def get_alerts_by_symbol(self, symbol: str) -> list[Alert]:
        """Get all alerts watching a symbol."""
        pass

    @abstractmethod
    def commit_triggered(self, alert_id: int) -> bool:
        """Persist the pending -> triggered transition for one alert.

        The transition is one-way. Committing an alert that is already
        triggered, or no longer exists, changes nothing.

        Args:
            alert_id: Alert ID.

        Returns:
            True if this call performed the transition, False otherwise.

        Raises:
            PersistenceFailure: If the write fails.
        """
        pass
