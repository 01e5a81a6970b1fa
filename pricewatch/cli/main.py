"""Main CLI entry point for PriceWatch.

This module provides the main click group and lazy loading
of the command modules.
"""

from typing import Optional

import click

from pricewatch.config import LOG_LEVELS


class LazyGroup(click.Group):
    """A click Group that lazily loads commands.

    Command modules are only imported when one of their commands is
    invoked or listed.
    """

    def __init__(self, *args, lazy_subcommands: dict[str, str] | None = None, **kwargs):
        """Initialize the lazy group.

        Args:
            lazy_subcommands: Mapping of command names to module paths.
        """
        super().__init__(*args, **kwargs)
        self._lazy_subcommands = lazy_subcommands or {}

    def list_commands(self, ctx: click.Context) -> list[str]:
        """List all available commands."""
        base = super().list_commands(ctx)
        lazy = list(self._lazy_subcommands.keys())
        return sorted(set(base + lazy))

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        """Get a command by name, lazily loading if needed."""
        if cmd_name in self.commands:
            return self.commands[cmd_name]

        if cmd_name in self._lazy_subcommands:
            return self._lazy_load(cmd_name)

        return None

    def _lazy_load(self, cmd_name: str) -> click.Command:
        """Lazily load a command from its module path."""
        import importlib

        module_path = self._lazy_subcommands[cmd_name]
        module = importlib.import_module(module_path)

        cmd = None
        for attr_name in dir(module):
            attr = getattr(module, attr_name)
            if isinstance(attr, click.Command) and attr.name == cmd_name:
                cmd = attr
                break

        if cmd is None:
            raise click.ClickException(f"Could not find command '{cmd_name}' in {module_path}")

        self.add_command(cmd)
        return cmd


LAZY_SUBCOMMANDS = {
    # Service
    "run": "pricewatch.cli.service",
    "cycle": "pricewatch.cli.service",
    "prices": "pricewatch.cli.service",
    "seed": "pricewatch.cli.service",
    "init": "pricewatch.cli.service",
    # Alert management
    "alert": "pricewatch.cli.alerts",
    "alerts": "pricewatch.cli.alerts",
    "update": "pricewatch.cli.alerts",
}


CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group(cls=LazyGroup, lazy_subcommands=LAZY_SUBCOMMANDS, context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="pricewatch")
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.toml (default: ~/.config/pricewatch/config.toml).",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], log_level: Optional[str]) -> None:
    """PriceWatch - price alert monitoring.

    Refreshes prices for tracked symbols on a fixed cadence and fires
    each price alert once when its condition is met.

    \b
    Quick Start:
      pricewatch init                   # Write a config template
      pricewatch alert AAPL GT 180      # Alert when AAPL > 180
      pricewatch run                    # Start the updater service
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log_level"] = log_level


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
