# agencydesk/utils/ids.py
from __future__ import annotations
import uuid


def new_id() -> str:
    """Client-side primary key; the backend accepts it as-is."""
    return str(uuid.uuid4())
