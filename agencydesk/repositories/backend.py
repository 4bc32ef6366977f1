# Rev 0.3.0
"""Interface to the hosted backend (auth, tables, change feed, presence).

Implementations raise ``BackendError`` for every rejected or undeliverable
request. ``insert`` must accept client-chosen ``id`` values as primary keys:
the caches rely on it to merge realtime echoes of local writes without any id
reconciliation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Union

from ..models.types import AuthEvent, ChangeKind

Row = Dict[str, Any]
PresenceSnapshot = Mapping[str, Sequence[Mapping[str, Any]]]


@dataclass(frozen=True)
class ChangeEvent:
    """One change-feed delivery; ``new`` is empty for DELETE, ``old`` for INSERT."""
    table: str
    kind: ChangeKind
    new: Mapping[str, Any] = field(default_factory=dict)
    old: Mapping[str, Any] = field(default_factory=dict)

    @property
    def row_id(self) -> Optional[str]:
        rid = (self.new or {}).get("id") or (self.old or {}).get("id")
        return str(rid) if rid is not None else None


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class Backend(Protocol):
    # ---- rows
    def select(self, table: str, *, eq: Optional[Mapping[str, Any]] = None,
               order_by: Optional[str] = None, ascending: bool = True) -> List[Row]: ...

    def insert(self, table: str, rows: Union[Row, Sequence[Row]]) -> None: ...

    def update(self, table: str, row_id: str, values: Mapping[str, Any]) -> None: ...

    def delete(self, table: str, row_id: str) -> None: ...

    # ---- realtime
    def subscribe(self, table: str, on_change: Callable[[ChangeEvent], None]) -> Subscription: ...

    def track_presence(self, user_id: str, on_sync: Callable[[PresenceSnapshot], None]) -> Subscription: ...

    # ---- auth
    def sign_up(self, email: str, password: str, metadata: Mapping[str, Any]) -> Optional[AuthUser]: ...

    def sign_in(self, email: str, password: str) -> AuthUser: ...

    def sign_out(self) -> None: ...

    def update_password(self, new_password: str) -> None: ...

    def on_auth_change(self, callback: Callable[[AuthEvent, Optional[AuthUser]], None]) -> Subscription: ...


def online_ids(snapshot: PresenceSnapshot) -> frozenset[str]:
    """Flatten a presence snapshot into the set of connected user ids."""
    ids = set()
    for key, metas in (snapshot or {}).items():
        found = False
        for meta in metas or ():
            uid = meta.get("user_id") if isinstance(meta, Mapping) else None
            if uid:
                ids.add(str(uid))
                found = True
        if not found and key:
            ids.add(str(key))
    return frozenset(ids)
