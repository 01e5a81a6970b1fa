"""Logging setup for the PriceWatch CLI."""

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: str = "INFO", console: Console | None = None) -> None:
    """Route log records through rich.

    Library modules only create loggers; this is called once by the CLI.

    Args:
        level: Log level name.
        console: Console to write to. Defaults to stderr.
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        log_time_format="[%X]",
    )
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[handler],
        force=True,
    )
