# Rev 0.3.0
"""Everything one signed-in session knows: caches, presence, channel selection.

Built when a session starts and disposed when it ends; collaborators receive
it explicitly instead of reaching for module-level state.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional

from PySide6.QtCore import QObject, Signal

from ..models.entities import Channel
from ..utils.timefmt import parse_iso, utc_now
from .entity_cache import EntityCache
from .read_tracking import ReadTracker

DEFAULT_CHANNEL = "general"


class WorkspaceState(QObject):
    currentChannelChanged = Signal(str)
    presenceChanged = Signal(list)
    unreadChanged = Signal(int)

    def __init__(self, user_id: str, reads: ReadTracker, *, default_channel: str = DEFAULT_CHANNEL):
        super().__init__()
        self.user_id = user_id
        self._reads = reads

        self.tasks = EntityCache("tasks")
        self.users = EntityCache("users")
        self.messages = EntityCache("messages")
        self.channels = EntityCache("channels")
        self.file_links = EntityCache("file_links")

        self.online_ids: frozenset[str] = frozenset()
        # logical key used until a real channel id is known
        self.default_channel_key = default_channel
        self.default_channel_id: Optional[str] = None
        self.current_channel_id = default_channel

        self.channels.changed.connect(lambda: self.unreadChanged.emit(self.total_unread()))

    def caches(self) -> tuple[EntityCache, ...]:
        return (self.tasks, self.users, self.messages, self.channels, self.file_links)

    # ---- channels
    def find_default_channel(self) -> Optional[Channel]:
        key = self.default_channel_key.casefold()
        for c in self.channels.values():
            if c.name.strip().casefold() == key:
                return c
        return None

    def adopt_default_channel(self) -> Optional[str]:
        """After a bulk load: resolve the default key to the 'general' channel.

        Without one, the first channel is only selected; the default key stays
        unresolved so a send to it still creates 'general'.
        """
        found = self.find_default_channel()
        if found is not None:
            self.default_channel_id = found.id
        else:
            chans = self.channels.values()
            found = chans[0] if chans else None
        if found is None:
            return None
        if self.current_channel_id == self.default_channel_key:
            self.select_channel(found.id, mark_read=False)
        return self.default_channel_id

    def select_channel(self, channel_id: str, *, mark_read: bool = True) -> None:
        if channel_id != self.current_channel_id:
            self.current_channel_id = channel_id
            self.currentChannelChanged.emit(channel_id)
        if mark_read and channel_id in self.channels:
            self.mark_channel_read(channel_id)

    def reset_current_channel(self) -> None:
        target = self.default_channel_id if self.default_channel_id in self.channels else self.default_channel_key
        self.select_channel(target, mark_read=False)

    # ---- unread
    def mark_channel_read(self, channel_id: str, at: Optional[datetime] = None) -> None:
        self._reads.mark_read(self.user_id, channel_id, at or utc_now())
        self.channels.update(channel_id, lambda c: c if c.unread == 0 else replace(c, unread=0))

    def mark_read_through(self, channel_id: str, iso_ts: str) -> None:
        """Mark read at now, or at the message time if the server clock runs ahead."""
        now = utc_now()
        ts = parse_iso(iso_ts)
        self.mark_channel_read(channel_id, ts if ts is not None and ts > now else now)

    def recompute_unread(self) -> None:
        fresh = {c.id: c for c in self._reads.with_unread(self.user_id, self.channels.values(), self.messages.values())}
        self.channels.update_all(lambda c: fresh.get(c.id, c))

    def total_unread(self) -> int:
        return sum(c.unread for c in self.channels.values())

    def load_channels(self, channels: Iterable[Channel]) -> None:
        self.channels.replace_all(self._reads.with_unread(self.user_id, channels, self.messages.values()))

    # ---- presence
    def set_online(self, ids: Iterable[str]) -> None:
        ids = frozenset(ids)
        if ids != self.online_ids:
            self.online_ids = ids
            self.presenceChanged.emit(sorted(ids))

    def online_users(self) -> List[str]:
        return sorted(self.online_ids)

    def dispose(self) -> None:
        for cache in self.caches():
            cache.clear()
        self.set_online(())
        self.default_channel_id = None
        self.current_channel_id = self.default_channel_key

