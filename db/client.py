"""SQLite connection helper for the SchemaX store.

Every connection enables WAL mode and foreign keys. Connections are cheap
and short-lived: the storage adapter opens one per operation so it can run
on worker threads.
"""

import sqlite3
from pathlib import Path

DEFAULT_TIMEOUT = 30.0


def get_connection(db_path: str | Path, timeout: float = DEFAULT_TIMEOUT) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode, foreign keys and Row access."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    # WAL allows one writer; concurrent writers wait up to `timeout` seconds.
    conn = sqlite3.connect(str(db_path), timeout=timeout)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn
