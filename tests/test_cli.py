"""Tests for the PriceWatch CLI."""

from datetime import datetime
from pathlib import Path

import pytest
from click.testing import CliRunner

from pricewatch.cli.main import cli
from pricewatch.db.store import DataStore


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Config pointing at a temporary database with a flat random walk."""
    path = tmp_path / "config.toml"
    path.write_text(f"""
[database]
path = "{(tmp_path / 'pricewatch.db').as_posix()}"

[source]
symbols = ["AAPL", "TSLA"]
volatility = 0

[alerts]
owner = "alice"

[logging]
level = "WARNING"
""")
    return path


@pytest.fixture
def store(tmp_path: Path, config_file: Path) -> DataStore:
    return DataStore(tmp_path / "pricewatch.db")


def _invoke(config_file: Path, *args: str):
    return CliRunner().invoke(cli, ["--config", str(config_file), *args])


class TestAlertCommands:

    def test_create_and_list(self, config_file: Path, store: DataStore):
        result = _invoke(config_file, "alert", "aapl", "gt", "150")

        assert result.exit_code == 0, result.output
        assert "Alert Created" in result.output
        alerts = store.get_alerts(owner_id="alice")
        assert len(alerts) == 1
        assert (alerts[0].symbol, alerts[0].condition, alerts[0].target_price) == ("AAPL", "GT", 150.0)

        result = _invoke(config_file, "alerts")
        assert result.exit_code == 0, result.output
        assert "AAPL" in result.output
        assert "Total: 1 alerts" in result.output

    def test_list_empty(self, config_file: Path):
        result = _invoke(config_file, "alerts")

        assert result.exit_code == 0
        assert "No alerts set" in result.output

    @pytest.mark.parametrize("price", ["0", "-5"])
    def test_non_positive_price_rejected(self, config_file: Path, store: DataStore, price: str):
        result = _invoke(config_file, "alert", "AAPL", "GT", "--", price)

        assert result.exit_code == 1
        assert store.get_alerts() == []

    def test_unknown_condition_rejected(self, config_file: Path):
        result = _invoke(config_file, "alert", "AAPL", "GTE", "150")
        assert result.exit_code == 2

    def test_show_and_remove(self, config_file: Path, store: DataStore):
        _invoke(config_file, "alert", "TSLA", "LT", "200")
        alert_id = store.get_alerts()[0].id

        result = _invoke(config_file, "alerts", "--show", str(alert_id))
        assert result.exit_code == 0, result.output
        assert "TSLA" in result.output
        assert "no price yet" in result.output

        result = _invoke(config_file, "alerts", "--remove", str(alert_id))
        assert result.exit_code == 0, result.output
        assert store.get_alert_by_id(alert_id) is None

    def test_missing_alert(self, config_file: Path):
        result = _invoke(config_file, "alerts", "--show", "99")

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_other_owner_forbidden(self, config_file: Path, store: DataStore):
        _invoke(config_file, "alert", "AAPL", "GT", "150", "--owner", "bob")
        alert_id = store.get_alerts()[0].id

        for args in (
            ["alerts", "--show", str(alert_id)],
            ["alerts", "--remove", str(alert_id)],
            ["update", str(alert_id), "--price", "10"],
        ):
            result = _invoke(config_file, *args)
            assert result.exit_code == 1
            assert "another owner" in result.output

        assert store.get_alert_by_id(alert_id).target_price == 150.0
        assert _invoke(config_file, "alerts", "--owner", "bob", "--show", str(alert_id)).exit_code == 0

    def test_update_target_and_rearm(self, config_file: Path, store: DataStore):
        _invoke(config_file, "alert", "AAPL", "GT", "150")
        alert_id = store.get_alerts()[0].id
        store.commit_triggered(alert_id)

        result = _invoke(config_file, "update", str(alert_id), "--price", "155", "--condition", "lt", "--pending")

        assert result.exit_code == 0, result.output
        alert = store.get_alert_by_id(alert_id)
        assert (alert.condition, alert.target_price, alert.triggered) == ("LT", 155.0, False)

    def test_update_nothing(self, config_file: Path, store: DataStore):
        _invoke(config_file, "alert", "AAPL", "GT", "150")
        alert_id = store.get_alerts()[0].id

        result = _invoke(config_file, "update", str(alert_id))
        assert result.exit_code == 1
        assert "Nothing to update" in result.output


class TestServiceCommands:

    def test_seed_and_prices(self, config_file: Path, store: DataStore):
        result = _invoke(config_file, "seed")
        assert result.exit_code == 0, result.output
        assert "Seeded 2 symbol(s)" in result.output

        result = _invoke(config_file, "seed")
        assert "already have prices" in result.output

        result = _invoke(config_file, "prices")
        assert result.exit_code == 0, result.output
        assert "AAPL" in result.output
        assert "TSLA" in result.output
        assert "Tracking 2 symbol(s), 0 of 0 alert(s) pending" in result.output

    def test_prices_shows_pending_alerts(self, config_file: Path, store: DataStore):
        _invoke(config_file, "seed")
        _invoke(config_file, "alert", "AAPL", "GT", "150")
        _invoke(config_file, "alert", "TSLA", "GT", "1000")
        store.commit_triggered(store.get_alerts_by_symbol("AAPL")[0].id)

        result = _invoke(config_file, "prices")

        assert result.exit_code == 0, result.output
        assert "Tracking 2 symbol(s), 1 of 2 alert(s) pending" in result.output

    def test_prices_empty(self, config_file: Path):
        result = _invoke(config_file, "prices")

        assert result.exit_code == 0
        assert "No prices stored yet" in result.output

    def test_cycle_triggers_once(self, config_file: Path, store: DataStore):
        _invoke(config_file, "alert", "AAPL", "GT", "150")
        _invoke(config_file, "alert", "TSLA", "GT", "1000")
        store.set_price("AAPL", 151.0, datetime(2024, 1, 2, 9, 30))

        result = _invoke(config_file, "cycle")
        assert result.exit_code == 0, result.output
        assert "Triggered: 1" in result.output

        pending = store.get_pending_alerts()
        assert [a.symbol for a in pending] == ["TSLA"]

        result = _invoke(config_file, "cycle")
        assert result.exit_code == 0, result.output
        assert "Triggered: 0" in result.output

    def test_bad_config_exits(self, tmp_path: Path):
        path = tmp_path / "bad.toml"
        path.write_text('[scheduler]\ntimezone = "Mars/Olympus"\n')

        result = _invoke(path, "alerts")

        assert result.exit_code == 1
        assert "Configuration Error" in result.output

    def test_init(self, tmp_path: Path):
        path = tmp_path / "new" / "config.toml"

        result = _invoke(path, "init")
        assert result.exit_code == 0, result.output
        assert path.exists()

        result = _invoke(path, "init")
        assert "already exists" in result.output

        result = _invoke(path, "init", "--force")
        assert "Created config template" in result.output

    def test_help_lists_commands(self):
        result = CliRunner().invoke(cli, ["--help"])

        assert result.exit_code == 0
        for name in ("alert", "alerts", "update", "run", "cycle", "prices", "seed", "init"):
            assert name in result.output
