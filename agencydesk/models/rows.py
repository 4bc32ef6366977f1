# Rev 0.3.0
"""Mapping between backend rows (snake_case dicts) and entities."""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..utils.timefmt import date_only, short_time
from .entities import Channel, Comment, FileLink, Message, Subtask, Task, User

Row = Mapping[str, Any]


def _price(v: Any) -> Optional[float]:
    if v is None or v == "":
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


# ---- users
def user_from_row(r: Row) -> User:
    return User(
        id=str(r["id"]),
        name=r.get("name") or "",
        email=r.get("email") or "",
        avatar=r.get("avatar") or "",
        role=r.get("role") or "member",
        phone_number=r.get("phone_number"),
        notification_pref=r.get("notification_pref") or "all",
        status=r.get("status") or "active",
        permissions=dict(r.get("permissions") or {}),
        last_seen=r.get("last_seen"),
    )


def user_to_row(u: User) -> Dict[str, Any]:
    return {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "avatar": u.avatar,
        "role": u.role,
        "phone_number": u.phone_number,
        "notification_pref": u.notification_pref,
        "status": u.status,
        "permissions": dict(u.permissions),
    }


# ---- tasks
def comment_from_row(r: Row) -> Comment:
    created = r.get("created_at") or ""
    return Comment(
        id=str(r["id"]),
        task_id=str(r.get("task_id") or ""),
        user_id=str(r.get("user_id") or ""),
        content=r.get("content") or "",
        timestamp=short_time(created),
        full_timestamp=created,
    )


def comment_to_row(c: Comment) -> Dict[str, Any]:
    return {
        "id": c.id,
        "task_id": c.task_id,
        "user_id": c.user_id,
        "content": c.content,
        "created_at": c.full_timestamp,
    }


def subtask_from_row(r: Row) -> Subtask:
    return Subtask(
        id=str(r["id"]),
        task_id=str(r.get("task_id") or ""),
        title=r.get("title") or "",
        is_completed=bool(r.get("is_completed")),
    )


def subtask_to_row(s: Subtask) -> Dict[str, Any]:
    return {"id": s.id, "task_id": s.task_id, "title": s.title, "is_completed": s.is_completed}


def task_from_row(r: Row) -> Task:
    return Task(
        id=str(r["id"]),
        title=r.get("title") or "",
        description=r.get("description") or "",
        assignee_id=r.get("assignee_id"),
        client_id=r.get("client_id"),
        due_date=r.get("due_date"),
        status=r.get("status") or "todo",
        category=r.get("type") or "content",
        priority=r.get("priority"),
        price=_price(r.get("price")),
    )


def task_to_row(t: Task) -> Dict[str, Any]:
    """Scalar columns only; comments and subtasks live in their own tables."""
    return {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "assignee_id": t.assignee_id,
        "client_id": t.client_id,
        "due_date": t.due_date,
        "status": t.status,
        "type": t.category,
        "priority": t.priority,
        "price": t.price,
    }


def build_task_views(task_rows: Iterable[Row], comment_rows: Iterable[Row], subtask_rows: Iterable[Row]) -> List[Task]:
    """Join the three task tables into Task views with derived attachments."""
    comments: Dict[str, List[Comment]] = defaultdict(list)
    for r in comment_rows:
        c = comment_from_row(r)
        comments[c.task_id].append(c)
    subtasks: Dict[str, List[Subtask]] = defaultdict(list)
    for r in subtask_rows:
        s = subtask_from_row(r)
        subtasks[s.task_id].append(s)

    out: List[Task] = []
    for r in task_rows:
        t = task_from_row(r)
        out.append(t.with_comments(comments.get(t.id, ())).with_subtasks(subtasks.get(t.id, ())))
    return out


# ---- chat
def channel_from_row(r: Row) -> Channel:
    return Channel(
        id=str(r["id"]),
        name=r.get("name") or "",
        kind=r.get("type") or "global",
        members=tuple(r.get("members") or ()),
    )


def channel_to_row(c: Channel) -> Dict[str, Any]:
    return {"id": c.id, "name": c.name, "type": c.kind, "members": list(c.members)}


def message_from_row(r: Row) -> Message:
    created = r.get("created_at") or ""
    return Message(
        id=str(r["id"]),
        channel_id=str(r.get("channel_id") or ""),
        user_id=str(r.get("user_id") or ""),
        content=r.get("content") or "",
        attachments=tuple(r.get("attachments") or ()),
        timestamp=short_time(created),
        full_timestamp=created,
    )


def message_to_row(m: Message) -> Dict[str, Any]:
    return {
        "id": m.id,
        "channel_id": m.channel_id,
        "user_id": m.user_id,
        "content": m.content,
        "attachments": list(m.attachments),
        "created_at": m.full_timestamp,
    }


# ---- files
def file_link_from_row(r: Row) -> FileLink:
    return FileLink(
        id=str(r["id"]),
        name=r.get("name") or "",
        url=r.get("url") or "",
        created_by=str(r.get("created_by") or ""),
        created_at=date_only(r.get("created_at")),
        client_id=r.get("client_id"),
    )


def file_link_to_row(f: FileLink) -> Dict[str, Any]:
    return {
        "id": f.id,
        "name": f.name,
        "url": f.url,
        "created_by": f.created_by,
        "client_id": f.client_id,
    }
