"""CLI commands for PriceWatch.

This package provides the command-line interface: the updater service
and alert management.
"""

from pricewatch.cli.main import cli, main

__all__ = ["cli", "main"]
