"""Alert management commands for PriceWatch CLI.

Handles creating, listing, showing, updating and removing alerts.
Every command acts on behalf of an owner and refuses to touch alerts
that belong to someone else.
"""

from typing import Optional

import click
from pydantic import ValidationError
from rich.panel import Panel
from rich.table import Table

from pricewatch.cli.common import console, format_time, get_data_store, get_settings, print_error
from pricewatch.db.store import DataStore
from pricewatch.errors import PersistenceFailure
from pricewatch.models import CONDITIONS, Alert

CONDITION_LABELS = {
    "GT": "above",
    "LT": "below",
}

owner_option = click.option(
    "--owner",
    default=None,
    help="Owner to act as (default: [alerts] owner from config).",
)


def _resolve_owner(ctx: click.Context, owner: Optional[str]) -> str:
    return owner or get_settings(ctx).alerts.owner


def _get_owned_alert(store: DataStore, alert_id: int, owner: str) -> Alert:
    """Fetch an alert and check that the owner may act on it.

    Raises:
        SystemExit: If the alert is missing or owned by someone else.
    """
    alert = store.get_alert_by_id(alert_id)
    if alert is None:
        print_error("Not Found", f"Alert {alert_id} not found")
        raise SystemExit(1)
    if alert.owner_id != owner:
        print_error("Forbidden", f"Alert {alert_id} belongs to another owner")
        raise SystemExit(1)
    return alert


def describe_alert(alert: Alert) -> str:
    """One-line description of an alert condition."""
    return f"{alert.symbol} {CONDITION_LABELS[alert.condition]} {alert.target_price:.2f}"


def _status_text(alert: Alert) -> str:
    if alert.triggered:
        return "[yellow]✓ Triggered[/yellow]"
    return "[green]● Pending[/green]"


@click.command("alert")
@click.argument("symbol")
@click.argument("condition", type=click.Choice(CONDITIONS, case_sensitive=False))
@click.argument("price", type=float)
@owner_option
@click.pass_context
def create_alert(
    ctx: click.Context,
    symbol: str,
    condition: str,
    price: float,
    owner: Optional[str],
) -> None:
    """Create a price alert.

    SYMBOL is the ticker symbol (e.g., AAPL, TSLA).
    CONDITION is GT (fires when price goes above PRICE) or LT (fires
    when price goes below PRICE). Equality never fires.

    \b
    Examples:
      pricewatch alert AAPL GT 150
      pricewatch alert TSLA LT 200 --owner alice
    """
    owner = _resolve_owner(ctx, owner)

    if price <= 0:
        print_error("Error", f"Invalid price: {price}. Must be greater than 0")
        raise SystemExit(1)

    try:
        alert = Alert(
            owner_id=owner,
            symbol=symbol,
            condition=condition.upper(),
            target_price=price,
        )
    except ValidationError as e:
        print_error("Error", f"Invalid alert:\n\n{e}")
        raise SystemExit(1)

    try:
        store = get_data_store(get_settings(ctx))
        alert_id = store.save_alert(alert)
    except PersistenceFailure as e:
        print_error("Error", f"Failed to create alert:\n\n{e}")
        raise SystemExit(1)

    console.print(Panel(
        f"[bold green]Alert Created[/bold green]\n\n"
        f"ID:        {alert_id}\n"
        f"Owner:     {alert.owner_id}\n"
        f"Symbol:    {alert.symbol}\n"
        f"Condition: {alert.condition} {alert.target_price:.2f}\n"
        f"Fires:     when price goes {describe_alert(alert)}",
        title="[bold]New Alert[/bold]",
        border_style="green",
    ))


@click.command("alerts")
@click.option("--show", "show_id", type=int, default=None, help="Show alert with specified ID.")
@click.option("--remove", "remove_id", type=int, default=None, help="Remove alert with specified ID.")
@owner_option
@click.pass_context
def list_alerts(
    ctx: click.Context,
    show_id: Optional[int],
    remove_id: Optional[int],
    owner: Optional[str],
) -> None:
    """Display or manage your alerts.

    Lists the owner's alerts, newest first. Use --show ID to see one
    alert with its current price, --remove ID to delete one.

    \b
    Examples:
      pricewatch alerts              # List all alerts
      pricewatch alerts --show 3     # Show alert 3
      pricewatch alerts --remove 5   # Remove alert 5
    """
    owner = _resolve_owner(ctx, owner)

    try:
        store = get_data_store(get_settings(ctx))

        if remove_id is not None:
            alert = _get_owned_alert(store, remove_id, owner)
            store.delete_alert(remove_id)
            console.print(f"[green]✓ Removed alert {remove_id} ({describe_alert(alert)})[/green]")
            return

        if show_id is not None:
            alert = _get_owned_alert(store, show_id, owner)
            market_price = store.get_price(alert.symbol)
            current = f"{market_price.price:.2f}" if market_price else "[dim]no price yet[/dim]"
            triggered_at = (
                format_time(alert.triggered_at) if alert.triggered_at else "-"
            )
            console.print(Panel(
                f"ID:           {alert.id}\n"
                f"Owner:        {alert.owner_id}\n"
                f"Symbol:       {alert.symbol}\n"
                f"Condition:    {alert.condition} {alert.target_price:.2f}\n"
                f"Current:      {current}\n"
                f"Status:       {_status_text(alert)}\n"
                f"Created:      {format_time(alert.created_at)}\n"
                f"Triggered at: {triggered_at}",
                title=f"[bold]Alert {alert.id}[/bold]",
                border_style="cyan",
            ))
            return

        alerts = store.get_alerts(owner_id=owner)

        if not alerts:
            console.print(Panel(
                "[dim]No alerts set. Use 'pricewatch alert SYMBOL GT|LT PRICE' to create one.[/dim]",
                title="[bold]Alerts[/bold]",
                border_style="dim",
            ))
            return

        table = Table(
            title=f"Alerts ({owner})",
            show_header=True,
            header_style="bold cyan",
        )

        table.add_column("ID", style="dim", width=6)
        table.add_column("Symbol", style="bold")
        table.add_column("Condition")
        table.add_column("Target", justify="right")
        table.add_column("Created", style="dim")
        table.add_column("Status", justify="center")

        for alert in alerts:
            table.add_row(
                str(alert.id),
                alert.symbol,
                alert.condition,
                f"{alert.target_price:.2f}",
                format_time(alert.created_at, "%Y-%m-%d %H:%M"),
                _status_text(alert),
            )

        console.print(table)
        console.print(f"\n[dim]Total: {len(alerts)} alerts[/dim]")

    except PersistenceFailure as e:
        print_error("Error", f"Failed to read alerts:\n\n{e}")
        raise SystemExit(1)


@click.command("update")
@click.argument("alert_id", type=int)
@click.option("--price", type=float, default=None, help="New target price.")
@click.option(
    "--condition",
    type=click.Choice(CONDITIONS, case_sensitive=False),
    default=None,
    help="New condition.",
)
@click.option(
    "--triggered/--pending",
    default=None,
    help="Mark the alert as triggered, or re-arm it as pending.",
)
@owner_option
@click.pass_context
def update_alert(
    ctx: click.Context,
    alert_id: int,
    price: Optional[float],
    condition: Optional[str],
    triggered: Optional[bool],
    owner: Optional[str],
) -> None:
    """Update an alert's target, condition or status.

    ALERT_ID is the ID shown by 'pricewatch alerts'. Use --pending to
    re-arm an alert that has already fired.

    \b
    Examples:
      pricewatch update 3 --price 155
      pricewatch update 3 --condition LT --pending
    """
    owner = _resolve_owner(ctx, owner)

    if price is None and condition is None and triggered is None:
        print_error("Error", "Nothing to update. Pass --price, --condition or --triggered/--pending")
        raise SystemExit(1)

    if price is not None and price <= 0:
        print_error("Error", f"Invalid price: {price}. Must be greater than 0")
        raise SystemExit(1)

    try:
        store = get_data_store(get_settings(ctx))
        _get_owned_alert(store, alert_id, owner)
        updated = store.update_alert(
            alert_id,
            target_price=price,
            condition=condition.upper() if condition else None,
            triggered=triggered,
        )
    except PersistenceFailure as e:
        print_error("Error", f"Failed to update alert:\n\n{e}")
        raise SystemExit(1)

    if updated is None:
        print_error("Not Found", f"Alert {alert_id} not found")
        raise SystemExit(1)

    console.print(
        f"[green]✓ Updated alert {alert_id}: {describe_alert(updated)} "
        f"({'triggered' if updated.triggered else 'pending'})[/green]"
    )
