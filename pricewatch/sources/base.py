"""Base price source interface for PriceWatch."""

from abc import ABC, abstractmethod


class PriceSource(ABC):
    """Abstract base class for price sources.

    A price source writes fresh prices for its tracked symbols into a
    price store. Implementations own their own timeouts; any failure is
    reported by raising.
    """

    @abstractmethod
    def refresh_all(self) -> None:
        """Refresh the price of every tracked symbol.

        Raises:
            SourceUnavailable: If prices could not be refreshed.
        """
        pass

    @abstractmethod
    def reset_daily_stats(self) -> None:
        """Start a new trading day for every tracked symbol.

        Raises:
            SourceUnavailable: If the reset could not be applied.
        """
        pass
