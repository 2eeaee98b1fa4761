"""SQLite connection handling and the receiptsieve schema."""

from __future__ import annotations

import sqlite3
from importlib import resources
from pathlib import Path

from receiptsieve.config import Config, load_config

TABLES = ["sync_state", "merchants", "purchases", "processed_emails", "notifications"]

_PRAGMAS = ("journal_mode=WAL", "foreign_keys=ON", "busy_timeout=5000")

# Columns added after the first release: (table, column, type)
_ADDED_COLUMNS = [
    ("purchases", "currency", "TEXT"),
    ("purchases", "email_metadata", "TEXT"),
    ("notifications", "expires_at", "TEXT"),
    ("sync_state", "total_purchases_synced", "INTEGER DEFAULT 0"),
]


def _db_path(config: Config | None, db_path: str | None) -> str:
    if db_path is not None:
        return db_path
    return (config or load_config()).storage.sqlite_path


def get_db(config: Config | None = None, db_path: str | None = None) -> sqlite3.Connection:
    """Open the purchase database with sqlite3.Row rows and WAL journaling.

    The parent directory of a file database is created when missing.
    """
    path = _db_path(config, db_path)
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, timeout=10)
    conn.row_factory = sqlite3.Row
    for pragma in _PRAGMAS:
        conn.execute(f"PRAGMA {pragma}")
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Create any missing tables and indexes from the packaged schema.sql."""
    conn.executescript(resources.files("receiptsieve").joinpath("schema.sql").read_text())


def reset_db(config: Config | None = None) -> sqlite3.Connection:
    """Delete the database file (with its WAL sidecars) and start empty."""
    path = Path(_db_path(config, None))
    for suffix in ("", "-wal", "-shm"):
        Path(f"{path}{suffix}").unlink(missing_ok=True)

    conn = get_db(db_path=str(path))
    init_db(conn)
    return conn


def _column_names(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}


def migrate_db(conn: sqlite3.Connection) -> list[str]:
    """Add columns that databases from older versions lack.

    Tables that do not exist yet are left to init_db. Returns the actions taken.
    """
    actions: list[str] = []
    for table, column, col_type in _ADDED_COLUMNS:
        columns = _column_names(conn, table)
        if not columns or column in columns:
            continue
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}")
        actions.append(f"Added {table}.{column} ({col_type})")

    if actions:
        conn.commit()
    return actions


def db_stats(conn: sqlite3.Connection) -> dict[str, int]:
    """Row count per table; -1 for a table that does not exist."""
    stats = {}
    for table in TABLES:
        try:
            stats[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        except sqlite3.OperationalError:
            stats[table] = -1
    return stats
