# Rev 0.3.0
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from PySide6.QtCore import QObject, QTimer, Signal

from ..models.entities import Notification
from ..models.types import Severity
from ..utils.ids import new_id
from ..utils.logging_setup import get_logger

DEFAULT_DURATION_MS = 5_000
SEVERITIES = ("info", "success", "urgent")

log = get_logger("NotificationBus")


def normalize_message(value: Any, fallback: str = "") -> str:
    """Turn whatever a failure handed us into display text; never raises."""
    try:
        if value is None:
            return fallback
        if isinstance(value, str):
            return value
        msg = getattr(value, "message", None)
        if isinstance(msg, str) and msg:
            return msg
        if isinstance(value, dict):
            for key in ("message", "error_description", "error", "msg", "details"):
                v = value.get(key)
                if isinstance(v, str) and v:
                    return v
            return json.dumps(value, default=str)
        if isinstance(value, BaseException):
            return str(value) or type(value).__name__
        return str(value)
    except Exception:
        return fallback or "Unknown error"


class NotificationBus(QObject):
    """
    Ordered transient alerts. Each entry is removed after duration_ms or on dismiss().
    Emits:
      - notificationsChanged(entries: list[Notification])
    """

    notificationsChanged = Signal(list)

    def __init__(self, duration_ms: int = DEFAULT_DURATION_MS):
        super().__init__()
        self._duration_ms = duration_ms
        self._entries: List[Notification] = []
        self._timers: Dict[str, QTimer] = {}

    def entries(self) -> List[Notification]:
        return list(self._entries)

    def push(self, title: str, message: Any = "", severity: Severity = "info") -> str:
        if severity not in SEVERITIES:
            severity = "info"
        n = Notification(id=new_id(), title=title, message=normalize_message(message), severity=severity)
        self._entries.append(n)

        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.timeout.connect(lambda nid=n.id: self.dismiss(nid))
        timer.start(self._duration_ms)
        self._timers[n.id] = timer

        if severity == "urgent":
            log.warning("%s: %s", title, n.message)
        else:
            log.info("%s: %s", title, n.message)
        self.notificationsChanged.emit(self.entries())
        return n.id

    def dismiss(self, notification_id: str) -> bool:
        timer: Optional[QTimer] = self._timers.pop(notification_id, None)
        if timer is not None:
            timer.stop()
            timer.deleteLater()
        before = len(self._entries)
        self._entries = [n for n in self._entries if n.id != notification_id]
        if len(self._entries) == before:
            return False
        self.notificationsChanged.emit(self.entries())
        return True

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.stop()
            timer.deleteLater()
        self._timers.clear()
        if self._entries:
            self._entries = []
            self.notificationsChanged.emit([])
