# Rev 0.3.0
"""Mutation handlers: optimistic local change, remote write, rollback on failure.

Every handler follows the same steps:
  1. new client-side id when creating (the backend keeps it as primary key)
  2. checkpoint + apply the change to the cache
  3. remote write
  4. on failure: roll back to the checkpoint, push an urgent notification
  5. on success: nothing to reconcile; server-side defaults are not read back
"""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from ..errors import BackendError
from ..models.attachments import attachment_comment_text, extract_urls, remove_url
from ..models.entities import Channel, Comment, FileLink, Message, ProfileChange, Subtask, Task, User
from ..models.file_refs import ChatFileRef, FileRef, LinkFileRef, TaskFileRef, parse_file_ref
from ..models.rows import (
    channel_to_row,
    comment_to_row,
    file_link_to_row,
    message_to_row,
    subtask_to_row,
    task_to_row,
    user_to_row,
)
from ..models.types import (
    CHANNELS,
    FILE_LINKS,
    MESSAGES,
    PERMISSION_FLAGS,
    SUBTASKS,
    TASK_COMMENTS,
    TASK_STATUSES,
    TASKS,
    USER_ROLES,
    USERS,
    ChannelKind,
    Severity,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    UserRole,
)
from ..repositories.backend import Backend
from ..repositories.sqlite_local_store import SQLiteLocalStore
from ..utils.ids import new_id
from ..utils.logging_setup import get_logger
from ..utils.timefmt import date_only, human_stamp, now_iso, short_time
from .notification_bus import NotificationBus
from .session_store import SessionStore, placeholder_avatar
from .workspace_state import WorkspaceState

log = get_logger("Mutations")

EDITABLE_USER_FIELDS = frozenset(
    {"name", "email", "avatar", "role", "phone_number", "notification_pref", "status", "permissions"}
)


def failure_reason(exc: BaseException, fallback: str = "unexpected error") -> str:
    if isinstance(exc, BackendError) and exc.message:
        return exc.message
    return fallback


class MutationService:
    def __init__(self, backend: Backend, session: SessionStore, token: int, state: WorkspaceState,
                 bus: NotificationBus, *, local_store: Optional[SQLiteLocalStore] = None):
        self._backend = backend
        self._session = session
        self._token = token
        self._state = state
        self._bus = bus
        self._local_store = local_store

    # -------------------------
    # plumbing
    # -------------------------
    def _live(self) -> bool:
        return self._session.is_current(self._token)

    @property
    def _me(self) -> str:
        return self._session.user_id or ""

    def _write(self, remote: Callable[[], None], *, rollback: Optional[Callable[[], None]],
               title: str, what: str, severity: Severity = "urgent") -> bool:
        """Run one remote write; on failure undo the optimistic change and report."""
        try:
            remote()
        except Exception as e:
            log.warning("%s failed: %r", what, e)
            if not self._live():
                return False
            if rollback is not None:
                rollback()
            self._bus.push(title, f"{what}: {failure_reason(e)}", severity)
            return False
        return True

    def _patch_task(self, task_id: str, fn: Callable[[Task], Task], remote: Callable[[], None], what: str) -> bool:
        tasks = self._state.tasks
        if task_id not in tasks:
            return False
        cp = tasks.checkpoint(task_id)
        tasks.update(task_id, fn)
        return self._write(remote, rollback=lambda: tasks.rollback(cp), title="Error", what=what)

    # -------------------------
    # tasks
    # -------------------------
    def add_task(self, *, title: str, description: str = "", assignee_id: Optional[str] = None,
                 client_id: Optional[str] = None, due_date: Optional[str] = None, status: TaskStatus = "todo",
                 category: TaskCategory = "content", priority: Optional[TaskPriority] = None, price: Optional[float] = None,
                 attachments: Sequence[str] = ()) -> Optional[str]:
        if not self._live() or not title.strip():
            return None
        tasks = self._state.tasks
        task = Task(id=new_id(), title=title.strip(), description=description, assignee_id=assignee_id,
                    client_id=client_id, due_date=due_date, status=status, category=category,
                    priority=priority, price=price)
        cp = tasks.checkpoint(task.id)
        tasks.insert(task)
        ok = self._write(lambda: self._backend.insert(TASKS, task_to_row(task)),
                         rollback=lambda: tasks.rollback(cp), title="Error", what="Could not create task")
        if not ok:
            return None

        urls = [u for u in attachments if u and u.strip()]
        if urls:
            self._attach_files(task.id, urls)
        self._bus.push("Success", "Task created.", "success")
        return task.id

    def _attach_files(self, task_id: str, urls: Iterable[str]) -> bool:
        """Secondary insert after a task create; failure keeps the task."""
        created = now_iso()
        comments = [
            Comment(id=new_id(), task_id=task_id, user_id=self._me, content=attachment_comment_text(u),
                    timestamp=short_time(created), full_timestamp=created)
            for u in urls
        ]
        tasks = self._state.tasks
        cp = tasks.checkpoint(task_id)
        tasks.update(task_id, lambda t: t.with_comments(t.comments + tuple(comments)))
        try:
            self._backend.insert(TASK_COMMENTS, [comment_to_row(c) for c in comments])
        except Exception as e:
            log.warning("attachment comments for %s failed: %r", task_id, e)
            if self._live():
                tasks.rollback(cp)
                self._bus.push("Attention", "Task created, but its files could not be attached.", "info")
            return False
        return True

    def update_task(self, task: Task) -> bool:
        if not self._live():
            return False
        cur = self._state.tasks.get(task.id)
        if cur is None:
            return False
        # comments/subtasks/attachments belong to their own tables
        merged = replace(task, comments=cur.comments, subtasks=cur.subtasks, attachments=cur.attachments)
        row = task_to_row(merged)
        row.pop("id")
        ok = self._patch_task(task.id, lambda _t: merged,
                              lambda: self._backend.update(TASKS, task.id, row), "Could not update task")
        if ok:
            self._bus.push("Updated", "Task updated.", "info")
        return ok

    def update_task_status(self, task_id: str, status: TaskStatus) -> bool:
        if status not in TASK_STATUSES:
            raise ValueError(f"unknown task status: {status!r}")
        if not self._live():
            return False
        return self._patch_task(task_id, lambda t: replace(t, status=status),
                                lambda: self._backend.update(TASKS, task_id, {"status": status}),
                                "Could not change status")

    def delete_task(self, task_id: str) -> bool:
        if not self._live():
            return False
        tasks = self._state.tasks
        if task_id not in tasks:
            return False
        cp = tasks.checkpoint(task_id)
        tasks.delete(task_id)
        ok = self._write(lambda: self._backend.delete(TASKS, task_id),
                         rollback=lambda: tasks.rollback(cp), title="Error", what="Could not delete task")
        if ok:
            self._bus.push("Deleted", "Task deleted.", "info")
        return ok

    # ---- subtasks
    def add_subtask(self, task_id: str, title: str) -> Optional[str]:
        if not self._live() or not title.strip():
            return None
        sub = Subtask(id=new_id(), task_id=task_id, title=title.strip())
        ok = self._patch_task(task_id, lambda t: t.with_subtasks(t.subtasks + (sub,)),
                              lambda: self._backend.insert(SUBTASKS, subtask_to_row(sub)),
                              "Could not add subtask")
        return sub.id if ok else None

    def toggle_subtask(self, task_id: str, subtask_id: str) -> bool:
        if not self._live():
            return False
        task = self._state.tasks.get(task_id)
        current = next((s for s in (task.subtasks if task else ()) if s.id == subtask_id), None)
        if current is None:
            return False
        done = not current.is_completed

        def flip(t: Task) -> Task:
            return t.with_subtasks(replace(s, is_completed=done) if s.id == subtask_id else s for s in t.subtasks)

        return self._patch_task(task_id, flip,
                                lambda: self._backend.update(SUBTASKS, subtask_id, {"is_completed": done}),
                                "Could not update subtask")

    def delete_subtask(self, task_id: str, subtask_id: str) -> bool:
        if not self._live():
            return False
        return self._patch_task(task_id, lambda t: t.with_subtasks(s for s in t.subtasks if s.id != subtask_id),
                                lambda: self._backend.delete(SUBTASKS, subtask_id),
                                "Could not delete subtask")

    # ---- comments
    def add_comment(self, task_id: str, content: str) -> Optional[str]:
        if not self._live() or not content.strip():
            return None
        created = now_iso()
        c = Comment(id=new_id(), task_id=task_id, user_id=self._me, content=content,
                    timestamp=short_time(created), full_timestamp=created)
        ok = self._patch_task(task_id, lambda t: t.with_comments(t.comments + (c,)),
                              lambda: self._backend.insert(TASK_COMMENTS, comment_to_row(c)),
                              "Comment not sent")
        return c.id if ok else None

    def delete_comment(self, task_id: str, comment_id: str) -> bool:
        if not self._live():
            return False
        return self._patch_task(task_id, lambda t: t.with_comments(c for c in t.comments if c.id != comment_id),
                                lambda: self._backend.delete(TASK_COMMENTS, comment_id),
                                "Could not delete comment")

    # -------------------------
    # chat
    # -------------------------
    def resolve_channel(self, channel_id: Optional[str] = None) -> Optional[str]:
        """Map the logical default channel to a real id, creating 'general' if needed."""
        state = self._state
        target = channel_id or state.current_channel_id
        if target in state.channels:
            return target
        if target != state.default_channel_key:
            return target
        if state.default_channel_id and state.default_channel_id in state.channels:
            return state.default_channel_id

        found = state.find_default_channel()
        if found is not None:
            resolved = found.id
        else:
            resolved = self.add_channel(state.default_channel_key, kind="global", notify=False)
            if resolved is None:
                return None
        state.default_channel_id = resolved
        state.select_channel(resolved, mark_read=False)
        return resolved

    def send_message(self, content: str, channel_id: Optional[str] = None,
                     attachments: Sequence[str] = ()) -> Optional[str]:
        if not self._live() or not (content.strip() or attachments):
            return None
        target = self.resolve_channel(channel_id)
        if target is None:
            return None
        created = now_iso()
        msg = Message(id=new_id(), channel_id=target, user_id=self._me, content=content,
                      attachments=tuple(attachments), timestamp=short_time(created), full_timestamp=created)
        messages = self._state.messages
        cp = messages.checkpoint(msg.id)
        messages.insert(msg)
        ok = self._write(lambda: self._backend.insert(MESSAGES, message_to_row(msg)),
                         rollback=lambda: messages.rollback(cp), title="Error", what="Message not sent")
        return msg.id if ok else None

    def delete_message(self, message_id: str) -> bool:
        if not self._live():
            return False
        messages = self._state.messages
        if message_id not in messages:
            return False
        cp = messages.checkpoint(message_id)
        messages.delete(message_id)
        ok = self._write(lambda: self._backend.delete(MESSAGES, message_id),
                         rollback=lambda: messages.rollback(cp), title="Error", what="Could not delete message")
        if ok:
            self._state.recompute_unread()
        return ok

    def add_channel(self, name: str, *, kind: ChannelKind = "global", members: Sequence[str] = (),
                    notify: bool = True) -> Optional[str]:
        if not self._live() or not name.strip():
            return None
        ch = Channel(id=new_id(), name=name.strip(), kind=kind, members=tuple(members))
        channels = self._state.channels
        cp = channels.checkpoint(ch.id)
        channels.insert(ch)
        ok = self._write(lambda: self._backend.insert(CHANNELS, channel_to_row(ch)),
                         rollback=lambda: channels.rollback(cp), title="Error", what="Could not create channel")
        if not ok:
            return None
        if notify:
            self._bus.push("Channel created", f"#{ch.name} is ready.", "success")
        return ch.id

    def delete_channel(self, channel_id: str) -> bool:
        if not self._live():
            return False
        state = self._state
        if channel_id not in state.channels:
            return False
        cp = state.channels.checkpoint(channel_id)
        state.channels.delete(channel_id)
        ok = self._write(lambda: self._backend.delete(CHANNELS, channel_id),
                         rollback=lambda: state.channels.rollback(cp), title="Error",
                         what="Could not delete channel")
        if ok:
            if state.default_channel_id == channel_id:
                state.default_channel_id = None
            if state.current_channel_id == channel_id:
                state.reset_current_channel()
        return ok

    # -------------------------
    # files
    # -------------------------
    def add_file_link(self, name: str, url: str, *, client_id: Optional[str] = None) -> Optional[str]:
        if not self._live() or not name.strip() or not url.strip():
            return None
        link = FileLink(id=new_id(), name=name.strip(), url=url.strip(), created_by=self._me,
                        created_at=date_only(now_iso()), client_id=client_id)
        links = self._state.file_links
        cp = links.checkpoint(link.id)
        links.insert(link)
        ok = self._write(lambda: self._backend.insert(FILE_LINKS, file_link_to_row(link)),
                         rollback=lambda: links.rollback(cp), title="Error", what="Could not add file")
        if not ok:
            return None
        self._bus.push("File added", "The link was saved.", "success")
        return link.id

    def delete_file_link(self, link_id: str) -> bool:
        if not self._live():
            return False
        links = self._state.file_links
        if link_id not in links:
            return False
        cp = links.checkpoint(link_id)
        links.delete(link_id)
        return self._write(lambda: self._backend.delete(FILE_LINKS, link_id),
                           rollback=lambda: links.rollback(cp), title="Error", what="Could not delete file")

    def delete_file(self, ref: Union[FileRef, str]) -> bool:
        """Single delete entry point for the unified files view."""
        if isinstance(ref, str):
            try:
                ref = parse_file_ref(ref)
            except ValueError as e:
                self._bus.push("Error", str(e), "urgent")
                return False
        if isinstance(ref, LinkFileRef):
            ok = self.delete_file_link(ref.link_id)
        elif isinstance(ref, TaskFileRef):
            ok = (self._remove_comment_url(ref.task_id, ref.comment_id, ref.url) if ref.url
                  else self.delete_comment(ref.task_id, ref.comment_id))
        elif isinstance(ref, ChatFileRef):
            ok = self._remove_message_attachment(ref.message_id, ref.name)
        else:
            raise TypeError(f"not a file reference: {ref!r}")
        if ok:
            self._bus.push("Deleted", "The file was removed.", "info")
        return ok

    def _remove_comment_url(self, task_id: str, comment_id: str, url: str) -> bool:
        """Drop one URL from a comment; a comment left with no text is deleted."""
        if not self._live():
            return False
        task = self._state.tasks.get(task_id)
        comment = next((c for c in (task.comments if task else ()) if c.id == comment_id), None)
        if comment is None or url not in extract_urls(comment.content):
            return False
        content = remove_url(comment.content, url)
        if not content:
            return self.delete_comment(task_id, comment_id)
        return self._patch_task(
            task_id,
            lambda t: t.with_comments(replace(c, content=content) if c.id == comment_id else c for c in t.comments),
            lambda: self._backend.update(TASK_COMMENTS, comment_id, {"content": content}),
            "Could not delete file",
        )

    def _remove_message_attachment(self, message_id: str, name: str) -> bool:
        if not self._live():
            return False
        messages = self._state.messages
        msg = messages.get(message_id)
        if msg is None or name not in msg.attachments:
            return False
        remaining = list(msg.attachments)
        remaining.remove(name)
        cp = messages.checkpoint(message_id)
        messages.update(message_id, lambda m: replace(m, attachments=tuple(remaining)))
        return self._write(lambda: self._backend.update(MESSAGES, message_id, {"attachments": remaining}),
                           rollback=lambda: messages.rollback(cp), title="Error", what="Could not delete file")

    # -------------------------
    # team
    # -------------------------
    def add_user(self, *, name: str, email: str, role: UserRole = "member", avatar: Optional[str] = None) -> Optional[str]:
        if not self._live() or not name.strip() or not email.strip():
            return None
        if role not in USER_ROLES:
            raise ValueError(f"unknown role: {role!r}")
        user = User(id=new_id(), name=name.strip(), email=email.strip(), role=role, status="active",
                    avatar=avatar or placeholder_avatar(name.strip()))
        users = self._state.users
        cp = users.checkpoint(user.id)
        users.insert(user)
        ok = self._write(lambda: self._backend.insert(USERS, user_to_row(user)),
                         rollback=lambda: users.rollback(cp), title="Error", what="Could not add member")
        return user.id if ok else None

    def remove_user(self, user_id: str) -> bool:
        if not self._live():
            return False
        users = self._state.users
        if user_id not in users:
            return False
        cp = users.checkpoint(user_id)
        users.delete(user_id)
        return self._write(lambda: self._backend.delete(USERS, user_id),
                           rollback=lambda: users.rollback(cp), title="Error", what="Could not remove member")

    def update_user(self, user_id: str, changes: Mapping[str, Any]) -> bool:
        unknown = set(changes) - EDITABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"not editable: {sorted(unknown)}")
        if "role" in changes and changes["role"] not in USER_ROLES:
            raise ValueError(f"unknown role: {changes['role']!r}")
        flags = set(changes.get("permissions") or ()) - set(PERMISSION_FLAGS)
        if flags:
            raise ValueError(f"unknown permissions: {sorted(flags)}")
        if not self._live() or not changes:
            return False
        users = self._state.users
        session = self._session
        own = user_id == session.user_id
        if user_id not in users and not own:
            return False

        cp = users.checkpoint(user_id)
        prior_profile = session.user
        users.update(user_id, lambda u: replace(u, **changes))
        if own:
            session.update_profile(replace(prior_profile, **changes))

        def rollback() -> None:
            users.rollback(cp)
            if own:
                session.update_profile(prior_profile)

        values = {k: (dict(v) if k == "permissions" else v) for k, v in changes.items()}
        return self._write(lambda: self._backend.update(USERS, user_id, values),
                           rollback=rollback, title="Error", what="Could not update member")

    def update_role(self, user_id: str, role: UserRole) -> bool:
        return self.update_user(user_id, {"role": role})

    def approve_user(self, user_id: str) -> bool:
        return self.update_user(user_id, {"status": "active"})

    def update_profile(self, changes: Mapping[str, Any]) -> bool:
        """Own-profile edit; every changed field lands in the local profile history."""
        me: Optional[User] = self._session.user
        if me is None or not self._live():
            return False
        diffs = [
            ProfileChange(field=k, old_value=_display(getattr(me, k)), new_value=_display(v), timestamp=human_stamp())
            for k, v in changes.items() if k in EDITABLE_USER_FIELDS and getattr(me, k) != v
        ]
        if not self.update_user(me.id, changes):
            return False
        if diffs and self._local_store is not None:
            self._local_store.append_profile_changes(me.id, diffs)
        self._bus.push("Profile updated", "Your changes were saved.", "success")
        return True

    def profile_history(self) -> list[ProfileChange]:
        if self._local_store is None or not self._session.user_id:
            return []
        return self._local_store.load_profile_history(self._session.user_id)


def _display(v: Any) -> str:
    return "" if v is None else str(v)
