"""Updater service commands for PriceWatch CLI.

Runs the scheduler, single cycles, price seeding and shows stored prices.
"""

import signal

import click
from rich.panel import Panel
from rich.table import Table

from pricewatch.cli.common import console, format_time, get_data_store, get_settings, print_error
from pricewatch.config import create_template_config, resolve_config_path
from pricewatch.core.cycle import CycleReport
from pricewatch.errors import PriceWatchError
from pricewatch.logging_setup import setup_logging
from pricewatch.service import build_service


def _setup_logging(ctx: click.Context) -> None:
    settings = get_settings(ctx)
    setup_logging(ctx.obj.get("log_level") or settings.logging.level)


def _print_cycle_report(report: CycleReport) -> None:
    """Print a cycle summary table."""
    table = Table(
        title=f"Cycle at {format_time(report.started_at, '%H:%M:%S')} ({report.duration_seconds:.2f}s)",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Alert", style="dim", width=6)
    table.add_column("Symbol", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("Outcome")

    styles = {
        "triggered": "[yellow]🔔 triggered[/yellow]",
        "pending": "[green]pending[/green]",
        "missing_price": "[dim]no price[/dim]",
        "already_triggered": "[dim]already triggered[/dim]",
        "failed": "[red]failed[/red]",
    }

    outcomes = report.evaluation.outcomes if report.evaluation else []
    for outcome in outcomes:
        table.add_row(
            str(outcome.alert_id),
            outcome.symbol,
            f"{outcome.price:.2f}" if outcome.price is not None else "-",
            styles[outcome.status] + (f" {outcome.error}" if outcome.error else ""),
        )

    if outcomes:
        console.print(table)
    else:
        console.print("[dim]No pending alerts.[/dim]")

    if report.refresh_error:
        console.print(f"[red]Price refresh failed:[/red] {report.refresh_error}")
    if report.evaluation_error:
        console.print(f"[red]Alert evaluation failed:[/red] {report.evaluation_error}")
    console.print(f"\n[bold]Triggered:[/bold] {report.triggered_count}")


@click.command("run")
@click.pass_context
def run(ctx: click.Context) -> None:
    """Start the price updater service.

    Seeds tracked symbols, runs one cycle immediately, then refreshes
    prices and checks alerts on the configured cadence until Ctrl+C.
    """
    _setup_logging(ctx)
    settings = get_settings(ctx)

    try:
        service = build_service(settings)
        service.source.seed_prices()
    except PriceWatchError as e:
        print_error("Error", f"Failed to start service:\n\n{e}")
        raise SystemExit(1)

    console.print(Panel(
        f"Database:     {settings.database.path}\n"
        f"Symbols:      {', '.join(settings.source.symbols)}\n"
        f"Interval:     every {settings.scheduler.interval_seconds:g}s\n"
        f"Daily reset:  {settings.scheduler.daily_reset.strftime('%H:%M')} "
        f"{settings.scheduler.timezone}\n"
        f"Single-flight: {'on' if settings.scheduler.single_flight else 'off'}",
        title="[bold]🚀 PriceWatch Updater[/bold]",
        border_style="cyan",
    ))

    scheduler = service.scheduler

    def _stop(signum, _frame) -> None:
        console.print("\n[dim]Shutting down price updater service...[/dim]")
        scheduler.stop()

    signal.signal(signal.SIGINT, _stop)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _stop)

    scheduler.start()
    console.print("[dim]Price updater service running. Press Ctrl+C to stop.[/dim]")

    while not scheduler.wait(1.0):
        pass

    console.print("[green]✓ Stopped.[/green]")


@click.command("cycle")
@click.pass_context
def cycle(ctx: click.Context) -> None:
    """Run a single price update cycle and show the outcomes."""
    _setup_logging(ctx)

    try:
        service = build_service(get_settings(ctx))
    except PriceWatchError as e:
        print_error("Error", str(e))
        raise SystemExit(1)

    report = service.runner.run_once()
    _print_cycle_report(report)


@click.command("prices")
@click.pass_context
def prices(ctx: click.Context) -> None:
    """Display the latest stored price of every symbol."""
    try:
        store = get_data_store(get_settings(ctx))
        market_prices = store.get_prices()
        stats = store.get_stats()
    except PriceWatchError as e:
        print_error("Error", f"Failed to read prices:\n\n{e}")
        raise SystemExit(1)

    if not market_prices:
        console.print(Panel(
            "[dim]No prices stored yet. Use 'pricewatch seed' or 'pricewatch run'.[/dim]",
            title="[bold]Prices[/bold]",
            border_style="dim",
        ))
        return

    table = Table(title="Market Prices", show_header=True, header_style="bold cyan")
    table.add_column("Symbol", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("Change %", justify="right")
    table.add_column("Open", justify="right", style="dim")
    table.add_column("High", justify="right", style="green")
    table.add_column("Low", justify="right", style="red")
    table.add_column("Updated", style="dim")

    for mp in market_prices:
        change = mp.day_change_percent
        if change is None:
            change_text = "-"
        else:
            color = "green" if change >= 0 else "red"
            arrow = "▲" if change >= 0 else "▼"
            change_text = f"[{color}]{arrow} {change:+.2f}%[/{color}]"

        table.add_row(
            mp.symbol,
            f"{mp.price:.2f}",
            change_text,
            f"{mp.day_open:.2f}" if mp.day_open else "-",
            f"{mp.day_high:.2f}" if mp.day_high else "-",
            f"{mp.day_low:.2f}" if mp.day_low else "-",
            format_time(mp.updated_at),
        )

    console.print(table)
    console.print(
        f"\n[dim]Tracking {stats['market_prices']} symbol(s), "
        f"{stats['pending_alerts']} of {stats['alerts']} alert(s) pending[/dim]"
    )


@click.command("seed")
@click.pass_context
def seed(ctx: click.Context) -> None:
    """Seed starting prices for tracked symbols that have none."""
    try:
        service = build_service(get_settings(ctx))
        count = service.source.seed_prices()
    except PriceWatchError as e:
        print_error("Error", f"Failed to seed prices:\n\n{e}")
        raise SystemExit(1)

    if count:
        console.print(f"[green]✓ Seeded {count} symbol(s)[/green]")
    else:
        console.print("[dim]All tracked symbols already have prices.[/dim]")


@click.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file.")
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Write a template configuration file."""
    config_path = resolve_config_path(ctx.obj.get("config_path"))
    if config_path.exists() and not force:
        console.print(f"[yellow]Config already exists at {config_path}. Use --force to overwrite.[/yellow]")
        return

    create_template_config(config_path)
    console.print(f"[green]✓ Created config template at {config_path}[/green]")
