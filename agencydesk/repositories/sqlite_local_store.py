# Rev 0.3.0
from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from ..models.entities import ProfileChange
from ..utils.logging_setup import get_logger

PROFILE_HISTORY_LIMIT = 15

log = get_logger("LocalStore")


class SQLiteLocalStore:
    """
    Per-user key/value state kept on this machine only.
      - last_read_<user_id>: {channel_id: iso timestamp}
      - profile_history_<user_id>: [ProfileChange, ...] newest first, capped
    Reads never raise on bad content; a corrupt value reads as empty.
    """

    def __init__(self, db_or_conn: Union[sqlite3.Connection, Any]):
        self._db_or_conn = db_or_conn

    def _conn(self) -> sqlite3.Connection:
        if isinstance(self._db_or_conn, sqlite3.Connection):
            return self._db_or_conn
        if hasattr(self._db_or_conn, "conn") and isinstance(self._db_or_conn.conn, sqlite3.Connection):
            return self._db_or_conn.conn
        raise RuntimeError(
            "SQLiteLocalStore: could not obtain sqlite3.Connection "
            "(expected .conn on wrapper or a raw Connection)."
        )

    # -------------------------
    # raw key/value
    # -------------------------
    def get_json(self, key: str, default: Any = None) -> Any:
        try:
            row = self._conn().execute("SELECT value FROM kv_store WHERE key=?", (key,)).fetchone()
        except sqlite3.Error:
            log.warning("local store read failed for %s", key, exc_info=True)
            return default
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except (TypeError, ValueError):
            log.warning("corrupt local value for %s; ignoring", key)
            return default

    def set_json(self, key: str, value: Any) -> None:
        try:
            self._conn().execute(
                """
                INSERT INTO kv_store(key, value, updated_at_utc) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at_utc=excluded.updated_at_utc
                """,
                (key, json.dumps(value), datetime.now(timezone.utc).isoformat()),
            )
        except sqlite3.Error:
            # best-effort; a lost checkpoint reads as "never read"
            log.warning("local store write failed for %s", key, exc_info=True)

    # -------------------------
    # last-read checkpoints
    # -------------------------
    @staticmethod
    def _last_read_key(user_id: str) -> str:
        return f"last_read_{user_id}"

    def load_last_read(self, user_id: str) -> Dict[str, str]:
        data = self.get_json(self._last_read_key(user_id), {})
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def save_last_read(self, user_id: str, channel_id: str, iso_ts: str) -> None:
        data = self.load_last_read(user_id)
        data[channel_id] = iso_ts
        self.set_json(self._last_read_key(user_id), data)

    # -------------------------
    # profile audit log
    # -------------------------
    @staticmethod
    def _history_key(user_id: str) -> str:
        return f"profile_history_{user_id}"

    def load_profile_history(self, user_id: str) -> List[ProfileChange]:
        data = self.get_json(self._history_key(user_id), [])
        if not isinstance(data, list):
            return []
        out: List[ProfileChange] = []
        for d in data:
            if not isinstance(d, dict):
                continue
            out.append(ProfileChange(
                field=str(d.get("field", "")),
                old_value=str(d.get("old_value", "")),
                new_value=str(d.get("new_value", "")),
                timestamp=str(d.get("timestamp", "")),
            ))
        return out

    def append_profile_changes(self, user_id: str, changes: List[ProfileChange],
                               *, limit: int = PROFILE_HISTORY_LIMIT) -> List[ProfileChange]:
        history = list(reversed(changes)) + self.load_profile_history(user_id)
        history = history[:limit]
        self.set_json(self._history_key(user_id), [
            {"field": c.field, "old_value": c.old_value, "new_value": c.new_value, "timestamp": c.timestamp}
            for c in history
        ])
        return history

