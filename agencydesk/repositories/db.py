# Rev 0.3.0

"""SQLite connection & migration runner for the local store (Rev 0.3.0)
- WAL mode
- Applies the ordered MIGRATIONS list below
- Tracks applied names in schema_migrations(filename TEXT PRIMARY KEY, applied_at UTC)
"""
from __future__ import annotations
import sqlite3
from pathlib import Path
from datetime import datetime, timezone


from ..utils.paths import LOCAL_STORE_PATH, ensure_dirs
from ..utils.logging_setup import get_logger


MIGRATIONS: list[tuple[str, str]] = [
    (
        "0001_kv_store.sql",
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at_utc TEXT NOT NULL
        );
        """,
    ),
]


class Database:
    def __init__(self, path: Path | str = LOCAL_STORE_PATH) -> None:
        self.path = Path(path)
        if self.path == LOCAL_STORE_PATH:
            ensure_dirs()
        self._log = get_logger("Database")
        self.conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_migrations (filename TEXT PRIMARY KEY, applied_at TEXT NOT NULL)"
        )
        self._log.info("SQLite open %s", self.path)

    def close(self) -> None:
        self.conn.close()

    def applied(self) -> set[str]:
        rows = self.conn.execute("SELECT filename FROM schema_migrations").fetchall()
        return {r[0] for r in rows}

    def run_migrations(self) -> list[str]:
        applied = self.applied()
        to_apply = [(name, sql) for name, sql in MIGRATIONS if name not in applied]
        for name, sql in to_apply:
            self.conn.executescript(sql)
            self.conn.execute(
                "INSERT INTO schema_migrations(filename, applied_at) VALUES(?, ?)",
                (name, datetime.now(timezone.utc).isoformat()),
            )
        return [name for name, _ in to_apply]
