"""Alert evaluation against the latest stored prices.

One evaluation pass takes a snapshot of the pending alerts, reads the
current price of each distinct symbol once, decides every alert on its
own ``(condition, target_price)`` and commits the ones that fire.
Each alert yields an :class:`AlertOutcome`, so a failure on one alert
never stops the rest of the batch.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from pricewatch.db.base import AlertStore, PriceStore
from pricewatch.models import Alert, MarketPrice

logger = logging.getLogger(__name__)


OutcomeStatus = Literal[
    "triggered",
    "pending",
    "missing_price",
    "already_triggered",
    "failed",
]


class AlertOutcome(BaseModel):
    """Result of evaluating one alert in a pass."""

    alert_id: Optional[int] = Field(..., description="Alert ID")
    symbol: str = Field(..., description="Ticker symbol")
    status: OutcomeStatus = Field(..., description="What happened to the alert")
    price: Optional[float] = Field(default=None, description="Price the alert was checked against")
    error: Optional[str] = Field(default=None, description="Error message for failed outcomes")

    model_config = {"frozen": True}


class EvaluationReport(BaseModel):
    """Outcomes of one evaluation pass, in snapshot order."""

    outcomes: list[AlertOutcome] = Field(default_factory=list)

    model_config = {"frozen": True}

    def _with_status(self, status: str) -> list[AlertOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def triggered_ids(self) -> list[int]:
        return [o.alert_id for o in self._with_status("triggered")]

    @property
    def triggered_count(self) -> int:
        return len(self._with_status("triggered"))

    @property
    def failed_count(self) -> int:
        return len(self._with_status("failed"))

    @property
    def missing_price_count(self) -> int:
        return len(self._with_status("missing_price"))

    @property
    def evaluated_count(self) -> int:
        return len(self.outcomes)


def should_trigger(condition: str, target_price: float, price: float) -> bool:
    """Decide whether an alert condition holds at a price.

    Both conditions are strict: a price equal to the target never fires.

    Args:
        condition: "GT" or "LT".
        target_price: Alert threshold.
        price: Current price.

    Returns:
        True if the alert should fire.
    """
    if condition == "GT":
        return price > target_price
    elif condition == "LT":
        return price < target_price
    return False


# Price lookup result for one symbol: the price, None if absent, or the read error
_PriceEntry = Union[MarketPrice, None, Exception]


class AlertEvaluator:
    """Commits the pending -> triggered transition for alerts that fire."""

    def __init__(
        self,
        alert_store: AlertStore,
        price_store: PriceStore,
        max_workers: int = 1,
    ):
        """Initialize the evaluator.

        Args:
            alert_store: Source of pending alerts and target of commits.
            price_store: Source of current prices, only read.
            max_workers: Threads used to evaluate alerts. 1 evaluates
                sequentially on the caller's thread.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._alert_store = alert_store
        self._price_store = price_store
        self._max_workers = max_workers

    def _snapshot_prices(self, alerts: list[Alert]) -> dict[str, _PriceEntry]:
        """Read the current price of every symbol referenced by the batch."""
        prices: dict[str, _PriceEntry] = {}
        for alert in alerts:
            if alert.symbol in prices:
                continue
            try:
                prices[alert.symbol] = self._price_store.get_price(alert.symbol)
            except Exception as e:
                logger.error("Failed to read price for %s: %s", alert.symbol, e)
                prices[alert.symbol] = e
        return prices

    def evaluate_alert(self, alert: Alert, entry: _PriceEntry) -> AlertOutcome:
        """Evaluate one alert against its symbol's price entry.

        Args:
            alert: Alert from the pending snapshot.
            entry: MarketPrice, None when no price exists, or the
                exception raised while reading it.

        Returns:
            Outcome for this alert. Never raises.
        """
        if alert.triggered:
            return AlertOutcome(alert_id=alert.id, symbol=alert.symbol, status="already_triggered")

        if isinstance(entry, Exception):
            return AlertOutcome(
                alert_id=alert.id,
                symbol=alert.symbol,
                status="failed",
                error=str(entry),
            )

        if entry is None:
            return AlertOutcome(alert_id=alert.id, symbol=alert.symbol, status="missing_price")

        price = entry.price
        if not should_trigger(alert.condition, alert.target_price, price):
            return AlertOutcome(alert_id=alert.id, symbol=alert.symbol, status="pending", price=price)

        try:
            committed = self._alert_store.commit_triggered(alert.id)
        except Exception as e:
            logger.error("Failed to commit triggered alert %s (%s): %s", alert.id, alert.symbol, e)
            return AlertOutcome(
                alert_id=alert.id,
                symbol=alert.symbol,
                status="failed",
                price=price,
                error=str(e),
            )

        if not committed:
            # Another pass got there first
            return AlertOutcome(
                alert_id=alert.id,
                symbol=alert.symbol,
                status="already_triggered",
                price=price,
            )

        logger.info(
            "Alert triggered: %s %s %.2f (current: %.2f)",
            alert.symbol,
            alert.condition,
            alert.target_price,
            price,
        )
        return AlertOutcome(alert_id=alert.id, symbol=alert.symbol, status="triggered", price=price)

    def evaluate(self) -> EvaluationReport:
        """Run one evaluation pass over all pending alerts.

        Returns:
            Report with one outcome per pending alert.

        Raises:
            PersistenceFailure: If the pending alerts cannot be read.
        """
        alerts = self._alert_store.get_pending_alerts()
        if not alerts:
            return EvaluationReport()

        prices = self._snapshot_prices(alerts)

        if self._max_workers == 1 or len(alerts) == 1:
            outcomes = [self.evaluate_alert(a, prices[a.symbol]) for a in alerts]
        else:
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                outcomes = list(
                    executor.map(lambda a: self.evaluate_alert(a, prices[a.symbol]), alerts)
                )

        report = EvaluationReport(outcomes=outcomes)
        if report.triggered_count > 0:
            logger.info("Triggered %d alert(s)", report.triggered_count)
        if report.failed_count > 0:
            logger.warning("%d alert(s) failed to evaluate", report.failed_count)
        return report
