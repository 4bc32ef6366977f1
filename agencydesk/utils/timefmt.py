# Rev 0.3.0
"""Timestamp helpers shared by the row mappers and read tracking."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# fromisoformat on 3.10 takes only 3 or 6 fraction digits; backends trim zeros
_FRACTION_RE = re.compile(r"([T ]\d{2}:\d{2}:\d{2})\.(\d+)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return utc_now().isoformat()


def parse_iso(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO-8601 (with or without 'Z'); naive values are taken as UTC."""
    if not s or not isinstance(s, str):
        return None
    text = _FRACTION_RE.sub(lambda m: f"{m.group(1)}.{(m.group(2) + '000000')[:6]}", s.strip())
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def short_time(s: Optional[str]) -> str:
    dt = parse_iso(s)
    if dt is None:
        return ""
    return dt.astimezone().strftime("%H:%M")


def date_only(s: Optional[str]) -> str:
    dt = parse_iso(s)
    if dt is None:
        return utc_now().date().isoformat()
    return dt.date().isoformat()


def human_stamp(dt: Optional[datetime] = None) -> str:
    dt = dt or utc_now()
    return dt.astimezone().strftime("%d/%m/%Y %H:%M")
