"""Wiring of the updater service from settings."""

from dataclasses import dataclass
from typing import Optional

from pricewatch.config import Settings
from pricewatch.core.cycle import CycleRunner
from pricewatch.core.evaluator import AlertEvaluator
from pricewatch.core.scheduler import Scheduler
from pricewatch.db.store import DataStore
from pricewatch.sources.simulated import SimulatedPriceSource


@dataclass
class Service:
    """The updater's collaborators, built from one Settings object."""

    store: DataStore
    source: SimulatedPriceSource
    evaluator: AlertEvaluator
    runner: CycleRunner
    scheduler: Scheduler


def build_service(settings: Settings, store: Optional[DataStore] = None) -> Service:
    """Build the updater service.

    Args:
        settings: Loaded settings.
        store: Existing store to use instead of opening the configured one.

    Returns:
        Service ready to start.
    """
    store = store or DataStore(settings.database.path)
    source = SimulatedPriceSource(
        store,
        symbols=settings.source.symbols,
        volatility=settings.source.volatility,
        seed=settings.source.seed,
    )
    evaluator = AlertEvaluator(store, store, max_workers=settings.scheduler.max_workers)
    runner = CycleRunner(source, evaluator)
    scheduler = Scheduler(
        runner,
        source,
        interval_seconds=settings.scheduler.interval_seconds,
        daily_time=settings.scheduler.daily_reset,
        timezone=settings.scheduler.timezone,
        single_flight=settings.scheduler.single_flight,
    )
    return Service(
        store=store,
        source=source,
        evaluator=evaluator,
        runner=runner,
        scheduler=scheduler,
    )
