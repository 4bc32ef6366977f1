# Rev 0.3.0
"""Session store: the one authenticated identity and its lifecycle.

State machine::

    unauthenticated -> authenticating -> optimistic -> loaded
           ^-------------- sign-out (from any state) ------'

Every sign-in and sign-out bumps ``generation``. Work scheduled under one
generation checks ``is_current(token)`` before touching shared state, so a
response that lands after a sign-out cannot leak into the next session.
"""
from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from PySide6.QtCore import QObject, QTimer, Signal

from ..models.entities import User
from ..models.types import USERS, SessionState
from ..repositories.backend import AuthUser, Backend
from ..utils.logging_setup import get_logger
from ..utils.timefmt import now_iso

DEFAULT_HEARTBEAT_MS = 60_000

log = get_logger("SessionStore")


def placeholder_avatar(seed: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(seed or '?')}&background=random"


def optimistic_profile(auth_user: AuthUser) -> User:
    """Profile good enough to render before the users row has been fetched."""
    meta = auth_user.metadata or {}
    email = auth_user.email or ""
    name = meta.get("name") or email.split("@")[0] or "User"
    return User(
        id=auth_user.id,
        name=name,
        email=email,
        avatar=meta.get("avatar") or placeholder_avatar(email[:1]),
        role="member",
        notification_pref="all",
        status="active",
    )


class SessionStore(QObject):
    stateChanged = Signal(str)
    userChanged = Signal(object)

    def __init__(self, backend: Backend, *, heartbeat_ms: int = DEFAULT_HEARTBEAT_MS):
        super().__init__()
        self._backend = backend
        self._state = "unauthenticated"
        self._user: Optional[User] = None
        self._generation = 0

        self._heartbeat = QTimer(self)
        self._heartbeat.setInterval(heartbeat_ms)
        self._heartbeat.timeout.connect(self.send_heartbeat)

    # ---- queries
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def user_id(self) -> Optional[str]:
        return self._user.id if self._user else None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def heartbeat_active(self) -> bool:
        return self._heartbeat.isActive()

    def is_authenticated(self) -> bool:
        return self._user is not None

    def is_current(self, token: int) -> bool:
        return self._user is not None and token == self._generation

    # ---- transitions
    def begin_authentication(self) -> None:
        if self._user is None:
            self._set_state("authenticating")

    def abort_authentication(self) -> None:
        if self._user is None:
            self._set_state("unauthenticated")

    def begin(self, auth_user: AuthUser) -> int:
        """Publish the optimistic profile for a fresh sign-in; returns the new generation."""
        self._generation += 1
        self._user = optimistic_profile(auth_user)
        log.info("session %d started for %s", self._generation, auth_user.id)
        self.userChanged.emit(self._user)
        self._set_state("optimistic")
        self._heartbeat.start()
        self.send_heartbeat()
        return self._generation

    def apply_profile(self, user: User, token: int) -> bool:
        if not self.is_current(token) or user.id != self._user.id:
            log.debug("dropping stale profile for %s", user.id)
            return False
        self._user = user
        self.userChanged.emit(user)
        self._set_state("loaded")
        return True

    def update_profile(self, user: Optional[User]) -> None:
        if user is None or self._user is None or user.id != self._user.id or user == self._user:
            return
        self._user = user
        self.userChanged.emit(user)

    def end(self) -> None:
        self._generation += 1
        self._heartbeat.stop()
        had_user = self._user is not None
        self._user = None
        if had_user:
            log.info("session ended (generation now %d)", self._generation)
            self.userChanged.emit(None)
        self._set_state("unauthenticated")

    # ---- heartbeat
    def send_heartbeat(self) -> None:
        if self._user is None:
            return
        try:
            self._backend.update(USERS, self._user.id, {"last_seen": now_iso()})
        except Exception as e:
            log.warning("heartbeat failed: %s", e)

    def _set_state(self, state: str) -> None:
        if state != self._state:
            self._state = state
            self.stateChanged.emit(state)
