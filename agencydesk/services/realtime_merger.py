# Rev 0.3.0
"""Realtime merge: change-feed events -> session caches.

Each watched table is routed to one merge strategy:
  - task tables (tasks, subtasks, task_comments) trigger a debounced full
    re-fetch of all three and a rebuild of the joined Task views, since a
    comment changes the task's derived attachments;
  - flat tables (messages, file_links, users) are patched by id.
The merged state depends only on what is currently known, never on the order
events arrived in.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Protocol

from PySide6.QtCore import QObject, QTimer

from ..models.rows import build_task_views, file_link_from_row, message_from_row, user_from_row
from ..models.types import FILE_LINKS, MESSAGES, SUBTASKS, TASK_COMMENTS, TASKS, USERS
from ..repositories.backend import Backend, ChangeEvent, PresenceSnapshot, Subscription, online_ids
from ..utils.logging_setup import get_logger
from .entity_cache import EntityCache
from .notification_bus import NotificationBus
from .session_store import SessionStore
from .workspace_state import WorkspaceState

DEFAULT_REFETCH_DEBOUNCE_MS = 250
WATCHED_TABLES = (TASKS, SUBTASKS, TASK_COMMENTS, MESSAGES, FILE_LINKS, USERS)

log = get_logger("RealtimeMerger")


class MergeStrategy(Protocol):
    def apply(self, event: ChangeEvent) -> None: ...


class FlatPatch:
    """INSERT is insert-if-absent, UPDATE is last-write-wins, DELETE removes by old id.

    ``after`` runs once per applied change; an INSERT of an id already cached is skipped.
    """

    def __init__(self, cache: EntityCache, from_row: Callable[[Any], Any],
                 after: Optional[Callable[[ChangeEvent], None]] = None):
        self.cache = cache
        self.from_row = from_row
        self.after = after

    def apply(self, event: ChangeEvent) -> None:
        if event.kind == "INSERT":
            if not self.cache.insert(self.from_row(event.new)):
                return
        elif event.kind == "UPDATE":
            self.cache.upsert(self.from_row(event.new))
        elif event.kind == "DELETE":
            rid = event.row_id
            if rid is None:
                return
            self.cache.delete(rid)
        else:
            log.debug("ignoring %s event on %s", event.kind, event.table)
            return
        if self.after is not None:
            self.after(event)


class TaskViewRefetch:
    def __init__(self, schedule: Callable[[], None]):
        self._schedule = schedule

    def apply(self, event: ChangeEvent) -> None:
        self._schedule()


class RealtimeMerger(QObject):
    def __init__(self, backend: Backend, session: SessionStore, token: int, state: WorkspaceState,
                 bus: NotificationBus, *, refetch_debounce_ms: int = DEFAULT_REFETCH_DEBOUNCE_MS):
        super().__init__()
        self._backend = backend
        self._session = session
        self._token = token
        self._state = state
        self._bus = bus
        self._subs: List[Subscription] = []
        self._active = False
        self._refetch_pending = False

        self._refetch_timer = QTimer(self)
        self._refetch_timer.setSingleShot(True)
        self._refetch_timer.setInterval(refetch_debounce_ms)
        self._refetch_timer.timeout.connect(self.refetch_task_views)

        refetch = TaskViewRefetch(self.schedule_refetch)
        self._strategies: Dict[str, MergeStrategy] = {
            TASKS: refetch,
            SUBTASKS: refetch,
            TASK_COMMENTS: refetch,
            MESSAGES: FlatPatch(state.messages, message_from_row, self._after_message),
            FILE_LINKS: FlatPatch(state.file_links, file_link_from_row),
            USERS: FlatPatch(state.users, user_from_row, self._after_user),
        }

    # ---- lifecycle
    @property
    def active(self) -> bool:
        return self._active

    def subscription_count(self) -> int:
        return len(self._subs)

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        for table in WATCHED_TABLES:
            try:
                self._subs.append(self._backend.subscribe(table, self._guarded(self.handle)))
            except Exception as e:
                log.warning("subscribe to %s failed: %s", table, e)
        try:
            self._subs.append(self._backend.track_presence(self._state.user_id, self._guarded(self.apply_presence)))
        except Exception as e:
            log.warning("presence tracking failed: %s", e)
        log.info("realtime started: %d subscriptions", len(self._subs))

    def stop(self) -> None:
        self._active = False
        self._refetch_timer.stop()
        self._refetch_pending = False
        subs, self._subs = self._subs, []
        for sub in subs:
            try:
                sub.unsubscribe()
            except Exception as e:
                log.warning("unsubscribe failed: %s", e)

    def _is_live(self) -> bool:
        return self._active and self._session.is_current(self._token)

    def _guarded(self, fn: Callable[..., None]) -> Callable[..., None]:
        def callback(*args):
            if not self._is_live():
                log.debug("dropping realtime delivery for stale session %d", self._token)
                return
            fn(*args)
        return callback

    # ---- dispatch
    def handle(self, event: ChangeEvent) -> None:
        strategy = self._strategies.get(event.table)
        if strategy is None:
            log.debug("no merge strategy for %s", event.table)
            return
        try:
            strategy.apply(event)
        except (KeyError, TypeError, ValueError) as e:
            log.warning("malformed %s event on %s: %s", event.kind, event.table, e)

    def apply_presence(self, snapshot: PresenceSnapshot) -> None:
        self._state.set_online(online_ids(snapshot))

    # ---- task views
    def schedule_refetch(self) -> None:
        self._refetch_pending = True
        self._refetch_timer.start()

    @property
    def refetch_pending(self) -> bool:
        return self._refetch_pending

    def flush_pending(self) -> bool:
        if not self._refetch_pending:
            return False
        self._refetch_timer.stop()
        return self.refetch_task_views()

    def refetch_task_views(self) -> bool:
        self._refetch_pending = False
        if not self._is_live():
            return False
        try:
            tasks = self._backend.select(TASKS)
            comments = self._backend.select(TASK_COMMENTS, order_by="created_at")
            subtasks = self._backend.select(SUBTASKS)
        except Exception as e:
            log.warning("task view re-fetch failed, keeping cached tasks: %s", e)
            return False
        if not self._is_live():
            return False
        self._state.tasks.replace_all(build_task_views(tasks, comments, subtasks))
        return True

    # ---- side effects
    def _after_message(self, event: ChangeEvent) -> None:
        if event.kind != "INSERT":
            self._state.recompute_unread()
            return
        row = event.new
        if str(row.get("user_id")) == self._session.user_id:
            return
        channel_id = str(row.get("channel_id"))
        if channel_id != self._state.current_channel_id:
            self._state.recompute_unread()
            return
        self._state.mark_read_through(channel_id, row.get("created_at") or "")
        me = self._session.user
        if me is not None and me.name:
            tag = "@" + "".join(me.name.split())
            if tag in (row.get("content") or ""):
                self._bus.push("New mention", "You were mentioned in the chat.", "info")

    def _after_user(self, event: ChangeEvent) -> None:
        if event.kind == "UPDATE" and event.row_id == self._session.user_id:
            self._session.update_profile(self._state.users.get(event.row_id))
