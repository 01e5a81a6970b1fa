"""SQLite data store for PriceWatch."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from pricewatch.db.base import AlertStore, PriceStore
from pricewatch.errors import PersistenceFailure
from pricewatch.models import CONDITIONS, Alert, MarketPrice
from pricewatch.timeutil import as_utc, utc_now


def _to_db_time(value: datetime) -> str:
    """Serialize a timestamp so that text order matches time order.

    Stored as naive UTC. Naive inputs are taken as UTC.
    """
    return as_utc(value).replace(tzinfo=None).isoformat(timespec="microseconds")


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(datetime.fromisoformat(value))


class DataStore(PriceStore, AlertStore):
    """SQLite-based store for alerts and market prices.

    Every operation opens its own connection and commits before returning,
    so writes made by one caller are visible to the next read from any
    thread or process.
    """

    REQUIRED_TABLES = [
        "alerts",
        "market_prices",
    ]

    def __init__(self, db_path: Path, timeout: float = 5.0):
        """Initialize the data store.

        Args:
            db_path: Path to the SQLite database file.
            timeout: Seconds to wait on a locked database.
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._ensure_db_dir()
        self._init_schema()

    def _ensure_db_dir(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _cursor(self, action: str) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor, commit on success and always close.

        Args:
            action: Short description used in the error message.

        Raises:
            PersistenceFailure: If SQLite reports an error.
        """
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to {action}: {e}") from e
        try:
            cursor = conn.cursor()
            yield cursor
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceFailure(f"Failed to {action}: {e}") from e
        finally:
            conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema on first run."""
        conditions = ", ".join(f"'{c}'" for c in CONDITIONS)
        with self._cursor("initialize schema") as cursor:
            # Alerts table
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    condition TEXT NOT NULL
                        CHECK (condition IN ({conditions})),
                    target_price REAL NOT NULL CHECK (target_price > 0),
                    triggered INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    triggered_at TEXT
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_alerts_pending ON alerts (triggered, symbol)"
            )

            # Market prices table, one row per symbol
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS market_prices (
                    symbol TEXT PRIMARY KEY,
                    price REAL NOT NULL CHECK (price > 0),
                    updated_at TEXT NOT NULL,
                    day_open REAL,
                    day_high REAL,
                    day_low REAL
                )
            """)

    def get_tables(self) -> list[str]:
        """Get list of all tables in the database."""
        with self._cursor("list tables") as cursor:
            cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
            )
            return [row["name"] for row in cursor.fetchall()]

    # ==================== Market Prices ====================

    @staticmethod
    def _row_to_price(row: sqlite3.Row) -> MarketPrice:
        return MarketPrice(
            symbol=row["symbol"],
            price=row["price"],
            updated_at=_from_db_time(row["updated_at"]),
            day_open=row["day_open"],
            day_high=row["day_high"],
            day_low=row["day_low"],
        )

    def get_price(self, symbol: str) -> Optional[MarketPrice]:
        """Get the latest price for a symbol.

        Args:
            symbol: Ticker symbol.

        Returns:
            MarketPrice if found, None otherwise.
        """
        with self._cursor(f"read price for {symbol}") as cursor:
            cursor.execute(
                """
                SELECT symbol, price, updated_at, day_open, day_high, day_low
                FROM market_prices
                WHERE symbol = ?
                """,
                (symbol.upper(),),
            )
            row = cursor.fetchone()
            if row:
                return self._row_to_price(row)
            return None

    def set_price(self, symbol: str, price: float, timestamp: datetime) -> bool:
        """Save the latest price for a symbol.

        The day high/low follow the new price; the day open is set by the
        first price seen after a reset. A write older than the stored
        ``updated_at`` is ignored.

        Args:
            symbol: Ticker symbol.
            price: New price.
            timestamp: Time the price was observed.

        Returns:
            True if the price was written, False if it was stale.
        """
        if price <= 0:
            raise ValueError(f"price must be positive, got {price}")

        with self._cursor(f"write price for {symbol}") as cursor:
            cursor.execute(
                """
                INSERT INTO market_prices
                (symbol, price, updated_at, day_open, day_high, day_low)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(symbol) DO UPDATE SET
                    price = excluded.price,
                    updated_at = excluded.updated_at,
                    day_open = COALESCE(market_prices.day_open, excluded.price),
                    day_high = MAX(COALESCE(market_prices.day_high, excluded.price), excluded.price),
                    day_low = MIN(COALESCE(market_prices.day_low, excluded.price), excluded.price)
                WHERE excluded.updated_at >= market_prices.updated_at
                """,
                (symbol.upper(), price, _to_db_time(timestamp), price, price, price),
            )
            return cursor.rowcount > 0

    def get_prices(self) -> list[MarketPrice]:
        """Get all stored prices.

        Returns:
            List of prices ordered by symbol.
        """
        with self._cursor("read prices") as cursor:
            cursor.execute(
                """
                SELECT symbol, price, updated_at, day_open, day_high, day_low
                FROM market_prices
                ORDER BY symbol
                """
            )
            return [self._row_to_price(row) for row in cursor.fetchall()]

    def reset_daily_stats(self) -> int:
        """Start a new trading day at the current price for every symbol.

        Returns:
            Number of symbols reset.
        """
        with self._cursor("reset daily stats") as cursor:
            cursor.execute(
                "UPDATE market_prices SET day_open = price, day_high = price, day_low = price"
            )
            return cursor.rowcount

    # ==================== Alerts ====================

    @staticmethod
    def _row_to_alert(row: sqlite3.Row) -> Alert:
        return Alert(
            id=row["id"],
            owner_id=row["owner_id"],
            symbol=row["symbol"],
            condition=row["condition"],
            target_price=row["target_price"],
            triggered=bool(row["triggered"]),
            created_at=_from_db_time(row["created_at"]),
            triggered_at=_from_db_time(row["triggered_at"]),
        )

    _ALERT_COLUMNS = (
        "id, owner_id, symbol, condition, target_price, triggered, created_at, triggered_at"
    )

    def save_alert(self, alert: Alert) -> int:
        """Save a new alert to the database.

        Args:
            alert: Alert to save.

        Returns:
            The ID of the saved alert.
        """
        with self._cursor("save alert") as cursor:
            cursor.execute(
                """
                INSERT INTO alerts
                (owner_id, symbol, condition, target_price, triggered, created_at, triggered_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    alert.owner_id,
                    alert.symbol,
                    alert.condition,
                    alert.target_price,
                    1 if alert.triggered else 0,
                    _to_db_time(alert.created_at),
                    _to_db_time(alert.triggered_at) if alert.triggered_at else None,
                ),
            )
            return cursor.lastrowid or 0

    def get_alerts(self, owner_id: Optional[str] = None) -> list[Alert]:
        """Get alerts, newest first.

        Args:
            owner_id: Optional owner filter. If None, returns all alerts.

        Returns:
            List of alerts.
        """
        with self._cursor("read alerts") as cursor:
            if owner_id is not None:
                cursor.execute(
                    f"""
                    SELECT {self._ALERT_COLUMNS}
                    FROM alerts
                    WHERE owner_id = ?
                    ORDER BY created_at DESC, id DESC
                    """,
                    (owner_id,),
                )
            else:
                cursor.execute(
                    f"""
                    SELECT {self._ALERT_COLUMNS}
                    FROM alerts
                    ORDER BY created_at DESC, id DESC
                    """
                )
            return [self._row_to_alert(row) for row in cursor.fetchall()]

    def get_alert_by_id(self, alert_id: int) -> Optional[Alert]:
        """Get an alert by ID.

        Args:
            alert_id: Alert ID.

        Returns:
            Alert if found, None otherwise.
        """
        with self._cursor(f"read alert {alert_id}") as cursor:
            cursor.execute(
                f"SELECT {self._ALERT_COLUMNS} FROM alerts WHERE id = ?",
                (alert_id,),
            )
            row = cursor.fetchone()
            if row:
                return self._row_to_alert(row)
            return None

    def get_pending_alerts(self) -> list[Alert]:
        """Get all alerts that have not triggered, oldest first."""
        with self._cursor("read pending alerts") as cursor:
            cursor.execute(
                f"""
                SELECT {self._ALERT_COLUMNS}
                FROM alerts
                WHERE triggered = 0
                ORDER BY id
                """
            )
            return [self._row_to_alert(row) for row in cursor.fetchall()]

    def get_alerts_by_symbol(self, symbol: str) -> list[Alert]:
        """Get all alerts watching a symbol, oldest first."""
        with self._cursor(f"read alerts for {symbol}") as cursor:
            cursor.execute(
                f"""
                SELECT {self._ALERT_COLUMNS}
                FROM alerts
                WHERE symbol = ?
                ORDER BY id
                """,
                (symbol.upper(),),
            )
            return [self._row_to_alert(row) for row in cursor.fetchall()]

    def commit_triggered(self, alert_id: int) -> bool:
        """Mark a pending alert as triggered.

        The update only matches rows that are still pending, so concurrent
        passes over the same alert commit it at most once.

        Args:
            alert_id: Alert ID.

        Returns:
            True if this call triggered the alert.
        """
        with self._cursor(f"commit triggered alert {alert_id}") as cursor:
            cursor.execute(
                """
                UPDATE alerts SET triggered = 1, triggered_at = ?
                WHERE id = ? AND triggered = 0
                """,
                (_to_db_time(utc_now()), alert_id),
            )
            return cursor.rowcount == 1

    def update_alert(
        self,
        alert_id: int,
        target_price: Optional[float] = None,
        condition: Optional[str] = None,
        triggered: Optional[bool] = None,
    ) -> Optional[Alert]:
        """Update the mutable fields of an alert.

        This is the management path and the only one allowed to reset
        ``triggered`` back to False.

        Args:
            alert_id: Alert ID.
            target_price: New target price.
            condition: New condition (GT or LT).
            triggered: New triggered status.

        Returns:
            The updated alert, or None if it does not exist.
        """
        existing = self.get_alert_by_id(alert_id)
        if existing is None:
            return None

        # Validates the new values through the model
        updated = Alert(
            **{
                **existing.model_dump(),
                **({"target_price": target_price} if target_price is not None else {}),
                **({"condition": condition} if condition is not None else {}),
                **({"triggered": triggered} if triggered is not None else {}),
            }
        )
        triggered_at = existing.triggered_at
        if not updated.triggered:
            triggered_at = None
        elif triggered_at is None:
            triggered_at = utc_now()

        with self._cursor(f"update alert {alert_id}") as cursor:
            cursor.execute(
                """
                UPDATE alerts
                SET target_price = ?, condition = ?, triggered = ?, triggered_at = ?
                WHERE id = ?
                """,
                (
                    updated.target_price,
                    updated.condition,
                    1 if updated.triggered else 0,
                    _to_db_time(triggered_at) if triggered_at else None,
                    alert_id,
                ),
            )
        return self.get_alert_by_id(alert_id)

    def delete_alert(self, alert_id: int) -> bool:
        """Delete an alert.

        Args:
            alert_id: ID of the alert to delete.

        Returns:
            True if an alert was deleted.
        """
        with self._cursor(f"delete alert {alert_id}") as cursor:
            cursor.execute("DELETE FROM alerts WHERE id = ?", (alert_id,))
            return cursor.rowcount > 0

    # ==================== Stats ====================

    def get_stats(self) -> dict:
        """Get database statistics.

        Returns:
            Dictionary with table record counts and pending alert count.
        """
        with self._cursor("read stats") as cursor:
            stats = {}
            for table in self.REQUIRED_TABLES:
                cursor.execute(f"SELECT COUNT(*) as count FROM {table}")
                stats[table] = cursor.fetchone()["count"]
            cursor.execute("SELECT COUNT(*) as count FROM alerts WHERE triggered = 0")
            stats["pending_alerts"] = cursor.fetchone()["count"]
            return stats
