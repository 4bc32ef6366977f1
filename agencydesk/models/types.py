# agencydesk type definitions
# Rev 0.3.0

from __future__ import annotations
from typing import Literal

UserRole = Literal["admin", "member", "project_manager", "community_manager", "analyst"]
NotificationPref = Literal["push", "all"]
AccountStatus = Literal["active", "pending"]

TaskStatus = Literal["todo", "in_progress", "blocked", "done"]
TaskCategory = Literal["content", "ads", "social", "seo", "admin"]
TaskPriority = Literal["low", "medium", "high"]

ChannelKind = Literal["global", "project"]
Severity = Literal["info", "success", "urgent"]

ChangeKind = Literal["INSERT", "UPDATE", "DELETE"]
AuthEvent = Literal["SIGNED_IN", "SIGNED_OUT", "USER_UPDATED", "TOKEN_REFRESHED"]

# unauthenticated → authenticating → optimistic → loaded
SessionState = Literal["unauthenticated", "authenticating", "optimistic", "loaded"]

USER_ROLES: tuple[str, ...] = ("admin", "member", "project_manager", "community_manager", "analyst")
TASK_STATUSES: tuple[str, ...] = ("todo", "in_progress", "blocked", "done")

PERMISSION_FLAGS: tuple[str, ...] = (
    "can_create_tasks",
    "can_edit_all_tasks",
    "can_delete_tasks",
    "can_manage_chat",
    "can_view_files",
    "can_delete_files",
    "can_view_financials",
    "can_manage_team",
    "can_manage_channels",
    "can_view_reports",
    "can_export_reports",
    "can_manage_clients",
    "can_manage_campaigns",
)

# Backend table names
USERS = "users"
TASKS = "tasks"
TASK_COMMENTS = "task_comments"
SUBTASKS = "subtasks"
CHANNELS = "channels"
MESSAGES = "messages"
FILE_LINKS = "file_links"
