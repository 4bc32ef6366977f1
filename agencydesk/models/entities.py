# Rev 0.3.0
"""Immutable entities held by the session caches.

Values are frozen so a cache checkpoint can keep references instead of copies;
every edit goes through ``dataclasses.replace``.
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from .attachments import derive_attachments
from .types import (
    AccountStatus,
    ChannelKind,
    NotificationPref,
    Severity,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    UserRole,
)


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    avatar: str = ""
    role: UserRole = "member"
    phone_number: Optional[str] = None
    notification_pref: NotificationPref = "all"
    status: AccountStatus = "active"
    permissions: Mapping[str, bool] = field(default_factory=dict)
    last_seen: Optional[str] = None


@dataclass(frozen=True)
class Comment:
    id: str
    task_id: str
    user_id: str
    content: str
    timestamp: str = ""          # HH:MM for display
    full_timestamp: str = ""     # ISO-8601, sortable


@dataclass(frozen=True)
class Subtask:
    id: str
    task_id: str
    title: str
    is_completed: bool = False


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    description: str = ""
    assignee_id: Optional[str] = None
    client_id: Optional[str] = None
    due_date: Optional[str] = None
    status: TaskStatus = "todo"
    category: TaskCategory = "content"
    priority: Optional[TaskPriority] = None
    price: Optional[float] = None
    comments: tuple[Comment, ...] = ()
    subtasks: tuple[Subtask, ...] = ()
    attachments: tuple[str, ...] = ()

    def with_comments(self, comments) -> "Task":
        ordered = tuple(sorted(comments, key=lambda c: (c.full_timestamp, c.id)))
        return replace(self, comments=ordered, attachments=derive_attachments(c.content for c in ordered))

    def with_subtasks(self, subtasks) -> "Task":
        return replace(self, subtasks=tuple(subtasks))


@dataclass(frozen=True)
class Channel:
    id: str
    name: str
    kind: ChannelKind = "global"
    members: tuple[str, ...] = ()
    unread: int = 0              # transient, recomputed on load


@dataclass(frozen=True)
class Message:
    id: str
    channel_id: str
    user_id: str
    content: str
    attachments: tuple[str, ...] = ()
    timestamp: str = ""
    full_timestamp: str = ""


@dataclass(frozen=True)
class FileLink:
    id: str
    name: str
    url: str
    created_by: str
    created_at: str = ""         # YYYY-MM-DD
    client_id: Optional[str] = None


@dataclass(frozen=True)
class Notification:
    id: str
    title: str
    message: str
    severity: Severity = "info"


@dataclass(frozen=True)
class ProfileChange:
    field: str
    old_value: str
    new_value: str
    timestamp: str
