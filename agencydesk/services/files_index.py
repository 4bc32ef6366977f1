# Rev 0.3.0
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..models.attachments import extract_urls
from ..models.entities import FileLink, Message, Task
from ..models.file_refs import ChatFileRef, FileRef, LinkFileRef, TaskFileRef
from ..utils.timefmt import date_only

_IMAGE_EXT = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg")
_ARCHIVE_EXT = (".zip", ".rar", ".7z", ".tar", ".gz")


@dataclass(frozen=True)
class FileEntry:
    ref: FileRef
    name: str
    url: Optional[str]
    source: str          # "Library", "Task: <title>", "Chat"
    source_kind: str     # drive | task | chat
    date: str            # YYYY-MM-DD
    file_type: str       # pdf | image | archive | link | other

    @property
    def key(self) -> str:
        return self.ref.key()


def file_type_for(name: str) -> str:
    lower = (name or "").lower().split("?")[0]
    if lower.endswith(".pdf"):
        return "pdf"
    if lower.endswith(_IMAGE_EXT):
        return "image"
    if lower.endswith(_ARCHIVE_EXT):
        return "archive"
    if lower.startswith(("http://", "https://", "www.")):
        return "link"
    return "other"


def collect_files(tasks: Iterable[Task], messages: Iterable[Message], file_links: Iterable[FileLink]) -> List[FileEntry]:
    """All three attachment sources as one list, newest first."""
    out: List[FileEntry] = []
    for link in file_links:
        out.append(FileEntry(LinkFileRef(link.id), link.name, link.url, "Library", "drive",
                             link.created_at or date_only(None), "link"))
    for task in tasks:
        for c in task.comments:
            for url in dict.fromkeys(extract_urls(c.content)):
                out.append(FileEntry(TaskFileRef(task.id, c.id, url), url, url, f"Task: {task.title}", "task",
                                     date_only(c.full_timestamp), file_type_for(url)))
    for m in messages:
        for name in m.attachments:
            out.append(FileEntry(ChatFileRef(m.id, name), name, None, "Chat", "chat",
                                 date_only(m.full_timestamp), file_type_for(name)))
    # stable sort keeps source order within a day
    out.sort(key=lambda f: f.date, reverse=True)
    return out
