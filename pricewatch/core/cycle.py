"""One price-update-and-evaluate pass."""

import logging
import time
from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel, Field

from pricewatch.core.evaluator import AlertEvaluator, EvaluationReport
from pricewatch.sources.base import PriceSource
from pricewatch.timeutil import utc_now

logger = logging.getLogger(__name__)


class CycleReport(BaseModel):
    """Summary of a completed cycle."""

    started_at: datetime = Field(..., description="Start of the cycle (UTC)")
    duration_seconds: float = Field(..., ge=0, description="Elapsed time of the cycle")
    refresh_error: Optional[str] = Field(default=None, description="Price refresh failure")
    evaluation: Optional[EvaluationReport] = Field(default=None, description="Evaluation outcomes")
    evaluation_error: Optional[str] = Field(default=None, description="Evaluation failure")

    model_config = {"frozen": True}

    @property
    def refresh_ok(self) -> bool:
        return self.refresh_error is None

    @property
    def ok(self) -> bool:
        return self.refresh_error is None and self.evaluation_error is None

    @property
    def triggered_count(self) -> int:
        return self.evaluation.triggered_count if self.evaluation else 0


class CycleRunner:
    """Runs price refresh then alert evaluation, isolating each step.

    A refresh failure does not skip evaluation: alerts are checked
    against whatever prices are already stored. Nothing raised by either
    step escapes :meth:`run_once`.
    """

    def __init__(
        self,
        price_source: PriceSource,
        evaluator: AlertEvaluator,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self._source = price_source
        self._evaluator = evaluator
        self._timer = timer

    def run_once(self) -> CycleReport:
        """Run a single cycle.

        Returns:
            CycleReport with timing and the outcome of each step.
        """
        started_at = utc_now()
        start = self._timer()
        logger.info("Starting price update cycle...")

        refresh_error = None
        try:
            self._source.refresh_all()
        except Exception as e:
            logger.error("Price refresh failed, evaluating with stored prices: %s", e)
            refresh_error = str(e) or type(e).__name__

        evaluation = None
        evaluation_error = None
        try:
            evaluation = self._evaluator.evaluate()
        except Exception as e:
            logger.exception("Alert evaluation failed")
            evaluation_error = str(e) or type(e).__name__

        duration = max(0.0, self._timer() - start)
        logger.info("Price update cycle complete (%.2fs)", duration)

        return CycleReport(
            started_at=started_at,
            duration_seconds=duration,
            refresh_error=refresh_error,
            evaluation=evaluation,
            evaluation_error=evaluation_error,
        )
