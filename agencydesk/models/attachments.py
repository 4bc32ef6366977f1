# Rev 0.3.0
"""Attachment URLs are never stored on a task; they are read back out of its comments."""
from __future__ import annotations

import re
from typing import Iterable, List

URL_RE = re.compile(r"((https?://)|(www\.))[^\s]+")

# Prefix of the comments synthesized for files attached at task creation
ATTACHMENT_MARKER = "\U0001F4CE Attached file: "


def extract_urls(text: str | None) -> List[str]:
    if not text:
        return []
    return [m.group(0) for m in URL_RE.finditer(text)]


def derive_attachments(contents: Iterable[str]) -> tuple[str, ...]:
    """Distinct URL-like substrings across all comment texts, first-seen order."""
    seen: dict[str, None] = {}
    for text in contents:
        for url in extract_urls(text):
            seen.setdefault(url, None)
    return tuple(seen)


def attachment_comment_text(url: str) -> str:
    return f"{ATTACHMENT_MARKER}{url}"


def remove_url(text: str, url: str) -> str:
    """Text with every occurrence of ``url`` dropped; "" when nothing but the marker is left."""
    stripped = URL_RE.sub(lambda m: "" if m.group(0) == url else m.group(0), text or "")
    stripped = re.sub(r"[ \t]{2,}", " ", stripped).strip()
    if not stripped or stripped == ATTACHMENT_MARKER.strip():
        return ""
    return stripped
