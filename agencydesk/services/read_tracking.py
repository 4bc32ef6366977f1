# Rev 0.3.0
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..models.entities import Channel, Message
from ..repositories.sqlite_local_store import SQLiteLocalStore
from ..utils.timefmt import EPOCH, parse_iso, utc_now


class ReadTracker:
    """
    Unread counts from per-user last-read checkpoints.
    unread(channel) = messages in channel, not authored by the user,
    with timestamp strictly after the checkpoint (epoch when never read).
    Checkpoints are local and best-effort; unreadable storage means "never read".
    """

    def __init__(self, store: Optional[SQLiteLocalStore]):
        self._store = store

    def checkpoints(self, user_id: str) -> Dict[str, datetime]:
        if self._store is None:
            return {}
        out: Dict[str, datetime] = {}
        for cid, iso in self._store.load_last_read(user_id).items():
            dt = parse_iso(iso)
            if dt is not None:
                out[cid] = dt
        return out

    def last_read(self, user_id: str, channel_id: str) -> datetime:
        return self.checkpoints(user_id).get(channel_id, EPOCH)

    def mark_read(self, user_id: str, channel_id: str, when: Optional[datetime] = None) -> datetime:
        when = when or utc_now()
        if self._store is not None:
            self._store.save_last_read(user_id, channel_id, when.isoformat())
        return when

    @staticmethod
    def _count(channel_id: str, user_id: str, checkpoint: datetime, messages: Iterable[Message]) -> int:
        n = 0
        for m in messages:
            if m.channel_id != channel_id or m.user_id == user_id:
                continue
            ts = parse_iso(m.full_timestamp)
            if ts is not None and ts > checkpoint:
                n += 1
        return n

    def unread_count(self, user_id: str, channel_id: str, messages: Iterable[Message]) -> int:
        return self._count(channel_id, user_id, self.last_read(user_id, channel_id), messages)

    def with_unread(self, user_id: str, channels: Iterable[Channel], messages: Iterable[Message]) -> List[Channel]:
        marks = self.checkpoints(user_id)
        msgs = list(messages)
        return [
            replace(c, unread=self._count(c.id, user_id, marks.get(c.id, EPOCH), msgs))
            for c in channels
        ]
