"""SQLite alert store for coinwatch."""

import sqlite3
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional, Union

from coinwatch.errors import (
    ALERT_ALREADY_ACTIVE,
    ALERT_ALREADY_INACTIVE,
    AlertAlreadyExistsError,
    AlertNotFoundError,
    AlertStateError,
    AlertStoreError,
    UserNotFoundError,
)
from coinwatch.models import SYMBOL_PATTERN, Alert, AlertWithOwner, Direction, User

PriceLike = Union[Decimal, float, int, str]


def normalize_symbol(symbol: str) -> str:
    """Uppercase and validate a ticker.

    Raises:
        ValueError: If the symbol is not alphanumeric.
    """
    normalized = symbol.strip().upper()
    if not SYMBOL_PATTERN.match(normalized):
        raise ValueError(f"Invalid symbol: {symbol!r}")
    return normalized


def canonical_price(value: PriceLike) -> str:
    """Render a target price in the canonical text form used for storage.

    ``45000``, ``45000.0`` and ``"45000.00"`` all map to ``"45000"`` so that
    the active-alert uniqueness check compares prices by value.

    Raises:
        ValueError: If the value is not a positive finite number.
    """
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid price: {value!r}") from None
    if not price.is_finite() or price <= 0:
        raise ValueError(f"Price must be a positive number: {value!r}")
    return format(price.normalize(), "f")


class AlertStore:
    """SQLite-based store for users and their price alerts."""

    REQUIRED_TABLES = ["users", "alerts"]

    _ALERT_COLUMNS = """
        a.id, a.user_id, a.symbol, a.price, a.direction, a.active,
        a.last_notified_at, a.created_at, a.updated_at
    """

    def __init__(self, db_path: Path):
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._ensure_db_dir()
        self._init_schema()

    def _ensure_db_dir(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_schema(self) -> None:
        """Initialize database schema on first run."""
        conn = self._get_connection()
        try:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    device_token TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS alerts (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    symbol TEXT NOT NULL,
                    price TEXT NOT NULL,
                    direction TEXT NOT NULL,
                    active INTEGER NOT NULL DEFAULT 1,
                    last_notified_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            # At most one active alert per (user, symbol, price, direction)
            cursor.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_alerts_active_unique
                ON alerts (user_id, symbol, price, direction)
                WHERE active = 1
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_alerts_active ON alerts (active)"
            )

            conn.commit()
        finally:
            conn.close()

    def get_tables(self) -> list[str]:
        """Get list of all tables in the database."""
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
            )
            return [row["name"] for row in cursor.fetchall()]
        finally:
            conn.close()

    # ==================== Users ====================

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            device_token=row["device_token"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def create_user(self, name: str, email: str, device_token: Optional[str] = None) -> User:
        """Register a user.

        Raises:
            AlertStoreError: If the e-mail is already registered.
        """
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            email=email.strip().lower(),
            device_token=device_token or None,
        )
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO users (id, name, email, device_token, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user.id, user.name, user.email, user.device_token, user.created_at.isoformat()),
            )
            conn.commit()
        except sqlite3.IntegrityError:
            raise AlertStoreError(f"User already registered: {user.email}") from None
        finally:
            conn.close()
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None
        finally:
            conn.close()

    def get_users(self) -> list[User]:
        conn = self._get_connection()
        try:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at").fetchall()
            return [self._row_to_user(row) for row in rows]
        finally:
            conn.close()

    def set_device_token(self, user_id: str, device_token: Optional[str]) -> User:
        """Register (or clear, with None) the push device of a user."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "UPDATE users SET device_token = ? WHERE id = ?",
                (device_token or None, user_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise UserNotFoundError()
        finally:
            conn.close()
        return self.get_user(user_id)

    # ==================== Alerts ====================

    @staticmethod
    def _alert_fields(row: sqlite3.Row) -> dict:
        return {
            "id": row["id"],
            "user_id": row["user_id"],
            "symbol": row["symbol"],
            "target_price": Decimal(row["price"]),
            "direction": Direction(row["direction"]),
            "active": bool(row["active"]),
            "last_notified_at": (
                datetime.fromisoformat(row["last_notified_at"])
                if row["last_notified_at"]
                else None
            ),
            "created_at": datetime.fromisoformat(row["created_at"]),
            "updated_at": datetime.fromisoformat(row["updated_at"]),
        }

    def _row_to_alert(self, row: sqlite3.Row) -> Alert:
        return Alert(**self._alert_fields(row))

    def _row_to_owned_alert(self, row: sqlite3.Row) -> AlertWithOwner:
        return AlertWithOwner(**self._alert_fields(row), device_token=row["device_token"])

    def _find_active_duplicate(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        symbol: str,
        price: str,
        direction: Direction,
        exclude_id: Optional[str] = None,
    ) -> Optional[str]:
        row = conn.execute(
            """
            SELECT id FROM alerts
            WHERE user_id = ? AND symbol = ? AND price = ? AND direction = ?
            AND active = 1 AND id != ?
            """,
            (user_id, symbol, price, direction.value, exclude_id or ""),
        ).fetchone()
        return row["id"] if row else None

    def _fetch_alert_row(
        self, conn: sqlite3.Connection, alert_id: str, user_id: Optional[str]
    ) -> sqlite3.Row:
        if user_id is None:
            row = conn.execute(
                f"SELECT {self._ALERT_COLUMNS} FROM alerts a WHERE a.id = ?", (alert_id,)
            ).fetchone()
        else:
            row = conn.execute(
                f"SELECT {self._ALERT_COLUMNS} FROM alerts a WHERE a.id = ? AND a.user_id = ?",
                (alert_id, user_id),
            ).fetchone()
        if row is None:
            raise AlertNotFoundError()
        return row

    def create_alert(
        self,
        user_id: str,
        symbol: str,
        target_price: PriceLike,
        direction: Union[Direction, str],
        active: bool = True,
    ) -> Alert:
        """Create a price alert for a user.

        Raises:
            UserNotFoundError: If the user does not exist.
            AlertAlreadyExistsError: If an identical active alert exists.
            ValueError: If the symbol or price is invalid.
        """
        symbol = normalize_symbol(symbol)
        price = canonical_price(target_price)
        direction = Direction(direction)
        now = datetime.now()
        alert_id = str(uuid.uuid4())

        conn = self._get_connection()
        try:
            if conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone() is None:
                raise UserNotFoundError()
            if active and self._find_active_duplicate(conn, user_id, symbol, price, direction):
                raise AlertAlreadyExistsError()
            try:
                conn.execute(
                    """
                    INSERT INTO alerts
                    (id, user_id, symbol, price, direction, active, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        alert_id,
                        user_id,
                        symbol,
                        price,
                        direction.value,
                        1 if active else 0,
                        now.isoformat(),
                        now.isoformat(),
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError:
                raise AlertAlreadyExistsError() from None
            return self._row_to_alert(self._fetch_alert_row(conn, alert_id, None))
        finally:
            conn.close()

    def get_alert(self, alert_id: str, user_id: Optional[str] = None) -> Alert:
        """Get an alert, optionally scoped to its owner.

        Raises:
            AlertNotFoundError: If no such alert exists for the user.
        """
        conn = self._get_connection()
        try:
            return self._row_to_alert(self._fetch_alert_row(conn, alert_id, user_id))
        finally:
            conn.close()

    def list_alerts(
        self,
        user_id: Optional[str] = None,
        symbol: Optional[str] = None,
        active: Optional[bool] = None,
    ) -> list[Alert]:
        """List alerts, newest first, filtered by owner, symbol and state."""
        clauses = []
        params: list = []
        if user_id is not None:
            clauses.append("a.user_id = ?")
            params.append(user_id)
        if symbol:
            clauses.append("a.symbol LIKE ?")
            params.append(f"%{symbol.strip().upper()}%")
        if active is not None:
            clauses.append("a.active = ?")
            params.append(1 if active else 0)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._get_connection()
        try:
            rows = conn.execute(
                f"SELECT {self._ALERT_COLUMNS} FROM alerts a {where} ORDER BY a.created_at DESC",
                params,
            ).fetchall()
            return [self._row_to_alert(row) for row in rows]
        finally:
            conn.close()

    def update_alert(
        self,
        alert_id: str,
        user_id: Optional[str] = None,
        symbol: Optional[str] = None,
        target_price: Optional[PriceLike] = None,
        direction: Optional[Union[Direction, str]] = None,
    ) -> Alert:
        """Change the symbol, price or direction of an alert.

        Raises:
            AlertNotFoundError: If no such alert exists for the user.
            AlertAlreadyExistsError: If the alert is active and the new values
                collide with another active alert.
        """
        conn = self._get_connection()
        try:
            row = self._fetch_alert_row(conn, alert_id, user_id)
            new_symbol = normalize_symbol(symbol) if symbol else row["symbol"]
            new_price = canonical_price(target_price) if target_price is not None else row["price"]
            new_direction = Direction(direction) if direction else Direction(row["direction"])

            if row["active"] and self._find_active_duplicate(
                conn, row["user_id"], new_symbol, new_price, new_direction, exclude_id=alert_id
            ):
                raise AlertAlreadyExistsError()

            try:
                conn.execute(
                    """
                    UPDATE alerts SET symbol = ?, price = ?, direction = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (new_symbol, new_price, new_direction.value, datetime.now().isoformat(), alert_id),
                )
                conn.commit()
            except sqlite3.IntegrityError:
                raise AlertAlreadyExistsError() from None
            return self._row_to_alert(self._fetch_alert_row(conn, alert_id, None))
        finally:
            conn.close()

    def delete_alert(self, alert_id: str, user_id: Optional[str] = None) -> None:
        """Delete an alert.

        Raises:
            AlertNotFoundError: If no such alert exists for the user.
        """
        conn = self._get_connection()
        try:
            self._fetch_alert_row(conn, alert_id, user_id)
            conn.execute("DELETE FROM alerts WHERE id = ?", (alert_id,))
            conn.commit()
        finally:
            conn.close()

    def activate_alert(self, alert_id: str, user_id: Optional[str] = None) -> Alert:
        """Re-arm an inactive alert.

        Raises:
            AlertNotFoundError: If no such alert exists for the user.
            AlertStateError: If the alert is already active.
            AlertAlreadyExistsError: If an identical alert is already active.
        """
        conn = self._get_connection()
        try:
            row = self._fetch_alert_row(conn, alert_id, user_id)
            if row["active"]:
                raise AlertStateError(ALERT_ALREADY_ACTIVE)
            if self._find_active_duplicate(
                conn,
                row["user_id"],
                row["symbol"],
                row["price"],
                Direction(row["direction"]),
                exclude_id=alert_id,
            ):
                raise AlertAlreadyExistsError()
            try:
                conn.execute(
                    "UPDATE alerts SET active = 1, updated_at = ? WHERE id = ?",
                    (datetime.now().isoformat(), alert_id),
                )
                conn.commit()
            except sqlite3.IntegrityError:
                raise AlertAlreadyExistsError() from None
            return self._row_to_alert(self._fetch_alert_row(conn, alert_id, None))
        finally:
            conn.close()

    def deactivate_alert(self, alert_id: str, user_id: Optional[str] = None) -> Alert:
        """Disarm an active alert at the user's request.

        Raises:
            AlertNotFoundError: If no such alert exists for the user.
            AlertStateError: If the alert is already inactive.
        """
        conn = self._get_connection()
        try:
            row = self._fetch_alert_row(conn, alert_id, user_id)
            if not row["active"]:
                raise AlertStateError(ALERT_ALREADY_INACTIVE)
            conn.execute(
                "UPDATE alerts SET active = 0, updated_at = ? WHERE id = ?",
                (datetime.now().isoformat(), alert_id),
            )
            conn.commit()
            return self._row_to_alert(self._fetch_alert_row(conn, alert_id, None))
        finally:
            conn.close()

    def touch_last_notified(self, alert_id: str, user_id: Optional[str] = None) -> Alert:
        """Record a notification time without changing the alert's state."""
        conn = self._get_connection()
        try:
            self._fetch_alert_row(conn, alert_id, user_id)
            now = datetime.now().isoformat()
            conn.execute(
                "UPDATE alerts SET last_notified_at = ?, updated_at = ? WHERE id = ?",
                (now, now, alert_id),
            )
            conn.commit()
            return self._row_to_alert(self._fetch_alert_row(conn, alert_id, None))
        finally:
            conn.close()

    # ==================== Evaluation ====================

    def find_active_alerts(self) -> list[AlertWithOwner]:
        """Get all active alerts joined with their owner's device token."""
        conn = self._get_connection()
        try:
            rows = conn.execute(
                f"""
                SELECT {self._ALERT_COLUMNS}, u.device_token
                FROM alerts a
                LEFT JOIN users u ON u.id = a.user_id
                WHERE a.active = 1
                ORDER BY a.symbol, a.created_at
                """
            ).fetchall()
            return [self._row_to_owned_alert(row) for row in rows]
        finally:
            conn.close()

    def find_alert(self, alert_id: str) -> Optional[AlertWithOwner]:
        """Get one alert joined with its owner's device token."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                f"""
                SELECT {self._ALERT_COLUMNS}, u.device_token
                FROM alerts a
                LEFT JOIN users u ON u.id = a.user_id
                WHERE a.id = ?
                """,
                (alert_id,),
            ).fetchone()
            return self._row_to_owned_alert(row) if row else None
        finally:
            conn.close()

    def deactivate_triggered_alert(
        self, alert_id: str, notified_at: Optional[datetime] = None
    ) -> bool:
        """Disarm a fired alert and stamp its notification time.

        Single UPDATE keyed by id; only an active alert is touched, so a
        repeated call is a no-op.

        Returns:
            True if the alert was active and is now inactive.
        """
        notified_at = notified_at or datetime.now()
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                UPDATE alerts SET active = 0, last_notified_at = ?, updated_at = ?
                WHERE id = ? AND active = 1
                """,
                (notified_at.isoformat(), notified_at.isoformat(), alert_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()
