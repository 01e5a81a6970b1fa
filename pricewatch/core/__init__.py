"""Evaluation cycle: evaluator, cycle runner and scheduler."""

from pricewatch.core.cycle import CycleReport, CycleRunner
from pricewatch.core.evaluator import (
    AlertEvaluator,
    AlertOutcome,
    EvaluationReport,
    should_trigger,
)
from pricewatch.core.scheduler import Scheduler, next_daily_run

__all__ = [
    "AlertEvaluator",
    "AlertOutcome",
    "CycleReport",
    "CycleRunner",
    "EvaluationReport",
    "Scheduler",
    "next_daily_run",
    "should_trigger",
]
