# Rev 0.3.0

"""Pytest fixtures for agencydesk (Rev 0.3.0)"""
from __future__ import annotations

import uuid
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
from PySide6.QtCore import QCoreApplication

from agencydesk.errors import BackendError
from agencydesk.repositories.backend import AuthUser, ChangeEvent
from agencydesk.repositories.db import Database
from agencydesk.repositories.sqlite_local_store import SQLiteLocalStore
from agencydesk.utils.config import default_settings
from agencydesk.viewmodels.workspace_viewmodel import WorkspaceViewModel


# --- An in-memory stand-in for the hosted backend ---------------------------

class _Sub:
    def __init__(self, registry: List[Any], item: Any):
        self._registry = registry
        self._item = item
        registry.append(item)

    def unsubscribe(self) -> None:
        if self._item in self._registry:
            self._registry.remove(self._item)


class FakeBackend:
    def __init__(self):
        self.tables: Dict[str, Dict[str, dict]] = defaultdict(dict)
        self.calls: List[tuple] = []
        self.failures: Dict[tuple, BackendError] = {}
        self.subscribers: Dict[str, List[Callable]] = defaultdict(list)
        self.presence_listeners: List[Callable] = []
        self.auth_listeners: List[Callable] = []
        self.accounts: Dict[str, tuple] = {}
        self.echo = False   # deliver realtime events for our own writes

    # ---- test helpers
    def fail_on(self, op: str, table: str, message: str = "permission denied") -> None:
        self.failures[(op, table)] = BackendError(message)

    def heal(self) -> None:
        self.failures.clear()

    def seed(self, table: str, *rows: dict) -> None:
        for r in rows:
            self.tables[table][r["id"]] = dict(r)

    def add_account(self, email: str, password: str, user_id: str, **metadata) -> AuthUser:
        user = AuthUser(id=user_id, email=email, metadata=metadata)
        self.accounts[email] = (password, user)
        return user

    def writes(self, table: Optional[str] = None) -> List[tuple]:
        return [c for c in self.calls if c[0] in ("insert", "update", "delete") and (table is None or c[1] == table)]

    def emit(self, table: str, kind: str, new: Optional[dict] = None, old: Optional[dict] = None) -> None:
        event = ChangeEvent(table=table, kind=kind, new=new or {}, old=old or {})
        for cb in list(self.subscribers[table]):
            cb(event)

    def sync_presence(self, snapshot: dict) -> None:
        for cb in list(self.presence_listeners):
            cb(snapshot)

    def emit_auth(self, event: str, user: Optional[AuthUser]) -> None:
        for cb in list(self.auth_listeners):
            cb(event, user)

    def _check(self, op: str, table: str) -> None:
        err = self.failures.get((op, table))
        if err is not None:
            raise err

    # ---- rows
    def select(self, table, *, eq=None, order_by=None, ascending=True):
        self.calls.append(("select", table, eq))
        self._check("select", table)
        rows = [dict(r) for r in self.tables[table].values()]
        for k, v in (eq or {}).items():
            rows = [r for r in rows if r.get(k) == v]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by) or "", reverse=not ascending)
        return rows

    def insert(self, table, rows):
        rows = [rows] if isinstance(rows, dict) else list(rows)
        self.calls.append(("insert", table, rows))
        self._check("insert", table)
        for r in rows:
            if r["id"] in self.tables[table]:
                raise BackendError(f"duplicate key value violates unique constraint on {table}")
        for r in rows:
            stored = dict(r)
            stored.setdefault("created_at", "2026-10-16T09:00:00+00:00")
            self.tables[table][r["id"]] = stored
            if self.echo:
                self.emit(table, "INSERT", new=stored)

    def update(self, table, row_id, values):
        self.calls.append(("update", table, (row_id, dict(values))))
        self._check("update", table)
        row = self.tables[table].get(row_id)
        if row is None:
            return
        row.update(values)
        if self.echo:
            self.emit(table, "UPDATE", new=dict(row))

    def delete(self, table, row_id):
        self.calls.append(("delete", table, row_id))
        self._check("delete", table)
        old = self.tables[table].pop(row_id, None)
        if old is not None and self.echo:
            self.emit(table, "DELETE", old={"id": row_id})

    # ---- realtime
    def subscribe(self, table, on_change):
        self._check("subscribe", table)
        return _Sub(self.subscribers[table], on_change)

    def track_presence(self, user_id, on_sync):
        return _Sub(self.presence_listeners, on_sync)

    # ---- auth
    def sign_up(self, email, password, metadata):
        self.calls.append(("sign_up", "auth", email))
        self._check("sign_up", "auth")
        return self.add_account(email, password, str(uuid.uuid4()), **metadata)

    def sign_in(self, email, password):
        self.calls.append(("sign_in", "auth", email))
        self._check("sign_in", "auth")
        entry = self.accounts.get(email)
        if entry is None or entry[0] != password:
            raise BackendError("Invalid login credentials")
        return entry[1]

    def sign_out(self):
        self.calls.append(("sign_out", "auth", None))
        self._check("sign_out", "auth")
        self.emit_auth("SIGNED_OUT", None)

    def update_password(self, new_password):
        self.calls.append(("update_password", "auth", None))
        self._check("update_password", "auth")

    def on_auth_change(self, callback):
        return _Sub(self.auth_listeners, callback)


def seed_workspace(backend: FakeBackend) -> None:
    backend.add_account("alice@agency.test", "pw", "u-alice", name="Alice Martin")
    backend.add_account("bob@agency.test", "pw", "u-bob")
    backend.seed("users",
                 {"id": "u-alice", "name": "Alice Martin", "email": "alice@agency.test", "role": "admin",
                  "avatar": "a.png", "status": "active", "notification_pref": "all",
                  "permissions": {"can_view_files": True}},
                 {"id": "u-bob", "name": "Bob", "email": "bob@agency.test", "role": "member",
                  "avatar": "b.png", "status": "active"})
    backend.seed("channels",
                 {"id": "c-general", "name": "General", "type": "global"},
                 {"id": "c-design", "name": "design", "type": "project", "members": ["u-alice", "u-bob"]})
    backend.seed("messages",
                 {"id": "m1", "channel_id": "c-general", "user_id": "u-bob", "content": "hello",
                  "attachments": [], "created_at": "2026-10-15T08:00:00+00:00"},
                 {"id": "m2", "channel_id": "c-design", "user_id": "u-bob", "content": "mockups",
                  "attachments": ["brief.pdf", "logo.png"], "created_at": "2026-10-15T09:00:00+00:00"},
                 {"id": "m3", "channel_id": "c-design", "user_id": "u-alice", "content": "thanks",
                  "attachments": [], "created_at": "2026-10-15T09:05:00+00:00"})
    backend.seed("tasks",
                 {"id": "t1", "title": "Launch campaign", "description": "", "assignee_id": "u-bob",
                  "due_date": "2026-11-01", "status": "todo", "type": "ads", "priority": "high", "price": 1200})
    backend.seed("task_comments",
                 {"id": "tc1", "task_id": "t1", "user_id": "u-bob",
                  "content": "draft at https://docs.example.com/brief", "created_at": "2026-10-15T10:00:00+00:00"})
    backend.seed("subtasks",
                 {"id": "s1", "task_id": "t1", "title": "Write copy", "is_completed": False})
    backend.seed("file_links",
                 {"id": "f1", "name": "Drive folder", "url": "https://drive.example.com/x",
                  "created_by": "u-alice", "created_at": "2026-10-14T12:00:00+00:00"})


# --- Fixtures --------------------------------------------------------------

@pytest.fixture(scope="session")
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def local_store(tmp_path: Path):
    db = Database(tmp_path / "local.db")
    try:
        db.run_migrations()
        yield SQLiteLocalStore(db)
    finally:
        db.close()


@pytest.fixture()
def settings() -> dict:
    s = default_settings()
    s["timers"]["notification_ms"] = 60_000
    return s


@pytest.fixture()
def vm(qapp, backend, local_store, settings):
    model = WorkspaceViewModel(backend, settings=settings, local_store=local_store, defer=lambda fn: fn())
    model.start()
    try:
        yield model
    finally:
        model.dispose()


@pytest.fixture()
def signed_in(vm, backend) -> WorkspaceViewModel:
    seed_workspace(backend)
    assert vm.sign_in("alice@agency.test", "pw")
    return vm
