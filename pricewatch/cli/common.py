"""Helpers shared by the CLI command modules."""

from datetime import datetime

import click
from rich.console import Console
from rich.panel import Panel

from pricewatch.config import Settings, load_config
from pricewatch.db.store import DataStore
from pricewatch.errors import ConfigError

console = Console()


def print_error(title: str, message: str) -> None:
    """Print an error panel."""
    console.print(Panel(
        f"[red]{message}[/red]",
        title=f"[bold red]{title}[/bold red]",
        border_style="red",
    ))


def format_time(value: datetime, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    """Format a stored UTC timestamp in local time."""
    return value.astimezone().strftime(fmt)


def get_settings(ctx: click.Context) -> Settings:
    """Load settings once per invocation and cache them on the context."""
    obj = ctx.ensure_object(dict)
    if "settings" not in obj:
        try:
            obj["settings"] = load_config(obj.get("config_path"))
        except ConfigError as e:
            print_error("Configuration Error", str(e))
            raise SystemExit(1)
    return obj["settings"]


def get_data_store(settings: Settings) -> DataStore:
    """Get the data store for the configured database."""
    return DataStore(settings.database.path)
