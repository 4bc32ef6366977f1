# Rev 0.3.0
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from PySide6.QtCore import QObject, QTimer, Signal

from ..errors import BackendError, BackendNotConfiguredError
from ..models.entities import User
from ..models.rows import (
    build_task_views,
    channel_from_row,
    file_link_from_row,
    message_from_row,
    user_from_row,
)
from ..models.types import CHANNELS, FILE_LINKS, MESSAGES, SUBTASKS, TASK_COMMENTS, TASKS, USERS, AuthEvent
from ..repositories.backend import AuthUser, Backend, Subscription
from ..repositories.sqlite_local_store import SQLiteLocalStore
from ..services.files_index import FileEntry, collect_files
from ..services.insight_service import InsightService
from ..services.mutations import MutationService
from ..services.notification_bus import NotificationBus
from ..services.read_tracking import ReadTracker
from ..services.realtime_merger import RealtimeMerger
from ..services.session_store import SessionStore, placeholder_avatar
from ..services.workspace_state import WorkspaceState
from ..utils.config import default_settings
from ..utils.logging_setup import get_logger

log = get_logger("WorkspaceViewModel")

UNCONFIGURED = "unconfigured"
BACKEND_MISSING_TEXT = (
    "The workspace backend is not configured. Set AGENCYDESK_BACKEND_URL and "
    "AGENCYDESK_BACKEND_KEY (or the backend section of settings.json) and restart."
)


def _defer_to_event_loop(fn: Callable[[], None]) -> None:
    QTimer.singleShot(0, fn)


class WorkspaceViewModel(QObject):
    """
    Root controller. Owns the session lifecycle and, while signed in, one
    WorkspaceState with its MutationService and RealtimeMerger.
    Emits:
      - stateChanged(state: str)            session state, or "unconfigured"
      - userChanged(user: User | None)
      - workspaceChanged(state: WorkspaceState | None)
      - blockingError(text: str)            backend configuration missing
    """

    stateChanged = Signal(str)
    userChanged = Signal(object)
    workspaceChanged = Signal(object)
    blockingError = Signal(str)

    def __init__(self, backend: Optional[Backend], *, settings: Optional[Dict[str, Any]] = None,
                 local_store: Optional[SQLiteLocalStore] = None, insight: Optional[InsightService] = None,
                 defer: Optional[Callable[[Callable[[], None]], None]] = None):
        super().__init__()
        settings = settings or default_settings()
        timers = settings.get("timers") or {}
        self._settings = settings
        self._backend = backend
        self._local_store = local_store
        self._insight = insight or InsightService(None)
        self._defer = defer or _defer_to_event_loop

        self.notifications = NotificationBus(int(timers.get("notification_ms", 5_000)))
        self.session = SessionStore(backend, heartbeat_ms=int(timers.get("heartbeat_ms", 60_000)))
        self._reads = ReadTracker(local_store)
        self._refetch_debounce_ms = int(timers.get("refetch_debounce_ms", 250))
        self._default_channel = (settings.get("chat") or {}).get("default_channel") or "general"

        self.workspace: Optional[WorkspaceState] = None
        self.mutations: Optional[MutationService] = None
        self.merger: Optional[RealtimeMerger] = None
        self._auth_sub: Optional[Subscription] = None
        self._state_override: Optional[str] = None

        self.session.stateChanged.connect(self._on_session_state)
        self.session.userChanged.connect(self.userChanged)

    # -------------------------
    # lifecycle
    # -------------------------
    @property
    def state(self) -> str:
        return self._state_override or self.session.state

    def _require_backend(self) -> Backend:
        if self._backend is None:
            raise BackendNotConfiguredError(BACKEND_MISSING_TEXT)
        return self._backend

    def start(self) -> bool:
        if self._backend is None:
            self._state_override = UNCONFIGURED
            log.critical("backend not configured; workspace blocked")
            self.stateChanged.emit(UNCONFIGURED)
            self.blockingError.emit(BACKEND_MISSING_TEXT)
            return False
        if self._auth_sub is None:
            self._auth_sub = self._backend.on_auth_change(self._on_auth_event)
        return True

    def dispose(self) -> None:
        self._end_session()
        if self._auth_sub is not None:
            self._auth_sub.unsubscribe()
            self._auth_sub = None
        self.notifications.clear()

    def _on_session_state(self, state: str) -> None:
        if self._state_override is None:
            self.stateChanged.emit(state)

    def _on_auth_event(self, event: AuthEvent, auth_user: Optional[AuthUser]) -> None:
        log.debug("auth event %s", event)
        if event == "SIGNED_OUT":
            self._end_session()
            return
        if auth_user is None:
            self.session.abort_authentication()
            return
        if self.session.user_id == auth_user.id:
            return
        if self.session.is_authenticated():
            # identity changed under us
            self._end_session()
        self._begin_session(auth_user)

    def _begin_session(self, auth_user: AuthUser) -> None:
        token = self.session.begin(auth_user)
        ws = WorkspaceState(auth_user.id, self._reads, default_channel=self._default_channel)
        self.workspace = ws
        self.mutations = MutationService(self._backend, self.session, token, ws, self.notifications,
                                         local_store=self._local_store)
        self.merger = RealtimeMerger(self._backend, self.session, token, ws, self.notifications,
                                     refetch_debounce_ms=self._refetch_debounce_ms)
        self.merger.start()
        self.workspaceChanged.emit(ws)
        self._defer(lambda: self.load_profile(token))
        self._defer(lambda: self.load_initial_data(token))

    def _end_session(self) -> None:
        if self.merger is not None:
            self.merger.stop()
            self.merger = None
        ws, self.workspace = self.workspace, None
        self.mutations = None
        self.session.end()
        if ws is not None:
            ws.dispose()
            self.workspaceChanged.emit(None)

    # -------------------------
    # loading
    # -------------------------
    def load_profile(self, token: int) -> bool:
        if not self.session.is_current(token):
            return False
        uid = self.session.user_id
        try:
            rows = self._backend.select(USERS, eq={"id": uid})
        except Exception as e:
            log.warning("profile fetch failed for %s: %s", uid, e)
            return False
        if not rows or not self.session.is_current(token):
            return False
        user = user_from_row(rows[0])
        self.workspace.users.upsert(user)
        return self.session.apply_profile(user, token)

    def load_initial_data(self, token: int) -> bool:
        """Bulk load; each table that fails keeps whatever the caches already hold."""
        if not self.session.is_current(token):
            return False
        ws = self.workspace

        def fetch(table: str, **kw) -> Optional[List[dict]]:
            try:
                rows = self._backend.select(table, **kw)
            except Exception as e:
                log.warning("initial fetch of %s failed: %s", table, e)
                return None
            return rows if self.session.is_current(token) else None

        users = fetch(USERS)
        if users is not None:
            ws.users.insert_many(user_from_row(r) for r in users)
        messages = fetch(MESSAGES, order_by="created_at")
        if messages is not None:
            ws.messages.insert_many(message_from_row(r) for r in messages)
        links = fetch(FILE_LINKS, order_by="created_at", ascending=False)
        if links is not None:
            ws.file_links.insert_many(file_link_from_row(r) for r in links)
        channels = fetch(CHANNELS)
        if channels is not None:
            ws.load_channels(channel_from_row(r) for r in channels)
            ws.adopt_default_channel()

        tasks = fetch(TASKS)
        comments = fetch(TASK_COMMENTS, order_by="created_at") if tasks is not None else None
        subtasks = fetch(SUBTASKS) if comments is not None else None
        if subtasks is not None:
            ws.tasks.replace_all(build_task_views(tasks, comments, subtasks))

        if not self.session.is_current(token):
            return False
        log.info("initial load done: %d tasks, %d messages, %d channels",
                 len(ws.tasks), len(ws.messages), len(ws.channels))
        return True

    # -------------------------
    # auth commands
    # -------------------------
    def sign_in(self, email: str, password: str) -> bool:
        backend = self._require_backend()
        self.session.begin_authentication()
        try:
            auth_user = backend.sign_in(email, password)
        except Exception as e:
            self.session.abort_authentication()
            msg = e.message if isinstance(e, BackendError) and e.message else "Invalid credentials"
            self.notifications.push("Sign-in failed", msg, "urgent")
            return False
        # the backend usually emits SIGNED_IN as well; the handler ignores the repeat
        self._on_auth_event("SIGNED_IN", auth_user)
        return True

    def sign_up(self, email: str, password: str, name: str, phone: Optional[str] = None) -> bool:
        backend = self._require_backend()
        try:
            auth_user = backend.sign_up(email, password, {"name": name, "role": "member", "phone_number": phone})
            if auth_user is not None:
                backend.insert(USERS, {
                    "id": auth_user.id,
                    "name": name,
                    "email": email,
                    "role": "member",
                    "avatar": placeholder_avatar(name),
                    "phone_number": phone,
                    "status": "active",
                })
        except Exception as e:
            self.notifications.push("Sign-up failed", e, "urgent")
            return False
        if auth_user is not None:
            self.notifications.push("Account created", "Welcome aboard!", "success")
        return True

    def sign_out(self) -> None:
        try:
            self._backend.sign_out()
        except Exception as e:
            log.warning("remote sign-out failed: %s", e)
            self.notifications.push("Sign-out", e, "urgent")
        self._end_session()

    def update_password(self, new_password: str) -> bool:
        if not self.session.is_authenticated():
            return False
        try:
            self._backend.update_password(new_password)
        except Exception as e:
            self.notifications.push("Error", e, "urgent")
            return False
        self.notifications.push("Password updated", "Your password was changed.", "success")
        return True

    # -------------------------
    # queries for the views
    # -------------------------
    @property
    def current_user(self) -> Optional[User]:
        return self.session.user

    def select_channel(self, channel_id: str) -> None:
        if self.workspace is not None:
            self.workspace.select_channel(channel_id)

    def unread_total(self) -> int:
        return self.workspace.total_unread() if self.workspace is not None else 0

    def files(self) -> List[FileEntry]:
        ws = self.workspace
        if ws is None:
            return []
        return collect_files(ws.tasks.values(), ws.messages.values(), ws.file_links.values())

    def generate_insight(self, context: str) -> str:
        return self._insight.generate_insight(context)

    def brainstorm_task_ideas(self, topic: str) -> List[str]:
        return self._insight.brainstorm_task_ideas(topic)
