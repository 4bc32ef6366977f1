# Rev 0.3.0
"""Typed references to the three sources of the unified files view.

The UI hands back opaque keys (``link|<id>``, ``task|<taskId>|<commentId>[|<url>]``,
``chat|<messageId>|<name>``); they are parsed once here and everything past
this boundary works with the dataclasses.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class LinkFileRef:
    link_id: str

    def key(self) -> str:
        return f"link|{self.link_id}"


@dataclass(frozen=True)
class TaskFileRef:
    """One URL inside a task comment; without a url the ref stands for the whole comment."""
    task_id: str
    comment_id: str
    url: Optional[str] = None

    def key(self) -> str:
        base = f"task|{self.task_id}|{self.comment_id}"
        return f"{base}|{self.url}" if self.url else base


@dataclass(frozen=True)
class ChatFileRef:
    message_id: str
    name: str

    def key(self) -> str:
        return f"chat|{self.message_id}|{self.name}"


FileRef = Union[LinkFileRef, TaskFileRef, ChatFileRef]


def parse_file_ref(key: str) -> FileRef:
    """Raise ValueError on an unknown tag or missing parts."""
    tag, _, rest = (key or "").partition("|")
    if tag == "link" and rest:
        return LinkFileRef(rest)
    if tag == "task":
        # the url is last and may itself contain '|'
        parts = rest.split("|", 2)
        if len(parts) >= 2 and parts[0] and parts[1]:
            url = parts[2] if len(parts) == 3 else None
            if url != "":
                return TaskFileRef(parts[0], parts[1], url)
    if tag == "chat":
        # attachment names may themselves contain '|'
        first, sep, second = rest.partition("|")
        if first and sep and second:
            return ChatFileRef(first, second)
    raise ValueError(f"malformed file reference: {key!r}")
