# Rev 0.3.0
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from PySide6.QtCore import QObject, Signal

_MISSING = object()


@dataclass(frozen=True)
class Checkpoint:
    """Prior values (or absence) of a few ids, taken before an optimistic write."""
    entries: tuple[tuple[str, Any], ...]


class EntityCache(QObject):
    """
    id -> immutable entity map for one entity kind.
    Insert of a present id and delete of an absent id are no-ops, so a realtime
    echo of a local write can be applied without producing a duplicate.
    Emits:
      - changed()
    """

    changed = Signal()

    def __init__(self, name: str):
        super().__init__()
        self.name = name
        self._items: Dict[str, Any] = {}

    # ---- queries
    def get(self, entity_id: str) -> Optional[Any]:
        return self._items.get(entity_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def values(self) -> List[Any]:
        return list(self._items.values())

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._items)

    # ---- mutations
    def insert(self, entity: Any) -> bool:
        if entity.id in self._items:
            return False
        self._items[entity.id] = entity
        self.changed.emit()
        return True

    def insert_many(self, entities: Iterable[Any]) -> int:
        added = 0
        for e in entities:
            if e.id not in self._items:
                self._items[e.id] = e
                added += 1
        if added:
            self.changed.emit()
        return added

    def upsert(self, entity: Any) -> None:
        if self._items.get(entity.id, _MISSING) == entity:
            return
        self._items[entity.id] = entity
        self.changed.emit()

    def update(self, entity_id: str, fn: Callable[[Any], Any]) -> bool:
        cur = self._items.get(entity_id)
        if cur is None:
            return False
        new = fn(cur)
        if new != cur:
            self._items[entity_id] = new
            self.changed.emit()
        return True

    def update_all(self, fn: Callable[[Any], Any]) -> None:
        dirty = False
        for k, cur in list(self._items.items()):
            new = fn(cur)
            if new != cur:
                self._items[k] = new
                dirty = True
        if dirty:
            self.changed.emit()

    def delete(self, entity_id: str) -> bool:
        if self._items.pop(entity_id, _MISSING) is _MISSING:
            return False
        self.changed.emit()
        return True

    def replace_all(self, entities: Iterable[Any]) -> None:
        self._items = {e.id: e for e in entities}
        self.changed.emit()

    def clear(self) -> None:
        if self._items:
            self._items = {}
            self.changed.emit()

    # ---- optimistic support
    def checkpoint(self, *entity_ids: str) -> Checkpoint:
        return Checkpoint(tuple((i, self._items.get(i, _MISSING)) for i in entity_ids))

    def rollback(self, cp: Checkpoint) -> None:
        for entity_id, prior in cp.entries:
            if prior is _MISSING:
                self._items.pop(entity_id, None)
            else:
                self._items[entity_id] = prior
        self.changed.emit()
