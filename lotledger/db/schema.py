"""SQLite database schema definition."""

import sqlite3
from pathlib import Path

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    account TEXT NOT NULL,
    symbol TEXT NOT NULL,
    transaction_date TEXT NOT NULL,
    action TEXT NOT NULL,
    category TEXT NOT NULL,
    quantity TEXT NOT NULL,
    price TEXT,
    amount TEXT,
    ratio TEXT,
    description TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_transactions_account_symbol
    ON transactions (account, symbol, transaction_date);

CREATE TABLE IF NOT EXISTS lots (
    id TEXT PRIMARY KEY,
    account TEXT NOT NULL,
    symbol TEXT NOT NULL,
    position INTEGER NOT NULL,
    acquisition_date TEXT NOT NULL,
    status TEXT NOT NULL,
    provenance TEXT NOT NULL,
    document TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_lots_account_symbol
    ON lots (account, symbol, position);

CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL DEFAULT (datetime('now')),
    engine TEXT NOT NULL,
    operation TEXT NOT NULL,
    inputs TEXT NOT NULL,
    output TEXT NOT NULL,
    notes TEXT
);
"""


def create_schema(db_path: Path) -> sqlite3.Connection:
    """Create the database schema. Returns the connection."""
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA_SQL)
    conn.execute(
        "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    conn.commit()
    return conn


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get the current schema version from the database."""
    try:
        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row and row[0] else 0
    except sqlite3.OperationalError:
        return 0
