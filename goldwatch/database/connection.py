"""
SQLite database connection and schema management.
"""

import sqlite3
import threading
from pathlib import Path
from typing import Optional


class Database:
    """SQLite database connection manager."""

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory DB.
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        # Scheduler jobs, API workers and channel threads share one connection
        self.lock = threading.RLock()
        self._connect()

    def _connect(self) -> None:
        """Establish database connection."""
        if self.db_path != ":memory:":
            # Ensure parent directory exists
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        # Enable foreign keys
        self._connection.execute("PRAGMA foreign_keys = ON")

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the database connection."""
        if self._connection is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        return self._connection

    def initialize(self) -> None:
        """Create database schema if it doesn't exist."""
        with self.lock:
            cursor = self.connection.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS gold_prices (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    date TIMESTAMP NOT NULL,
                    buy_price REAL NOT NULL CHECK (buy_price > 0),
                    sell_price REAL NOT NULL CHECK (sell_price > 0),
                    price_per_gram REAL NOT NULL CHECK (price_per_gram > 0),
                    high_price REAL,
                    low_price REAL,
                    source TEXT NOT NULL,
                    currency TEXT NOT NULL DEFAULT 'IDR',
                    unit TEXT NOT NULL DEFAULT 'gram'
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS price_alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    alert_type TEXT NOT NULL,
                    target_price REAL,
                    daily_time TEXT,
                    telegram_chat_id TEXT,
                    phone_number TEXT,
                    frequency_hours REAL NOT NULL DEFAULT 24,
                    active INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP NOT NULL,
                    last_triggered TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS investments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    purchase_date TIMESTAMP NOT NULL,
                    weight REAL NOT NULL CHECK (weight > 0),
                    purchase_price REAL NOT NULL CHECK (purchase_price > 0),
                    purity REAL NOT NULL DEFAULT 0.999,
                    notes TEXT,
                    created_at TIMESTAMP NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS notification_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    alert_id INTEGER,
                    channel TEXT NOT NULL,
                    message TEXT NOT NULL,
                    status TEXT NOT NULL,
                    error_message TEXT,
                    sent_at TIMESTAMP NOT NULL,
                    FOREIGN KEY (alert_id) REFERENCES price_alerts(id) ON DELETE SET NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_gold_prices_date ON gold_prices(date)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_gold_prices_source_date
                ON gold_prices(source, date)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_alerts_active ON price_alerts(active)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_logs_sent_at ON notification_logs(sent_at)
            """)

            self.connection.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
