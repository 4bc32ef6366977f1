from __future__ import annotations

import pytest

from agencydesk.models.file_refs import TaskFileRef


def _last(vm):
    return vm.notifications.entries()[-1]


# --- tasks ---------------------------------------------------------------

def test_add_task_inserts_with_client_id(signed_in, backend):
    tid = signed_in.mutations.add_task(title="  Spring promo ", category="ads", priority="low")
    assert tid is not None
    assert signed_in.workspace.tasks.get(tid).title == "Spring promo"
    assert tid in backend.tables["tasks"]
    assert backend.tables["tasks"][tid]["type"] == "ads"
    assert _last(signed_in).title == "Success"


def test_add_task_failure_restores_previous_state(signed_in, backend):
    before = signed_in.workspace.tasks.snapshot()
    backend.fail_on("insert", "tasks")
    assert signed_in.mutations.add_task(title="Doomed") is None
    assert signed_in.workspace.tasks.snapshot() == before
    note = _last(signed_in)
    assert (note.title, note.severity) == ("Error", "urgent")
    assert "permission denied" in note.message


def test_add_task_with_attachments_creates_comments(signed_in, backend):
    url = "https://files.example.com/brief.pdf"
    tid = signed_in.mutations.add_task(title="With files", attachments=[url, "  "])
    task = signed_in.workspace.tasks.get(tid)
    assert len(task.comments) == 1
    assert task.attachments == (url,)
    assert len(backend.tables["task_comments"]) == 2


def test_attachment_failure_keeps_task(signed_in, backend):
    backend.fail_on("insert", "task_comments")
    tid = signed_in.mutations.add_task(title="Half done", attachments=["https://x.example/a"])
    assert tid is not None
    task = signed_in.workspace.tasks.get(tid)
    assert task.comments == () and task.attachments == ()
    titles = [(n.title, n.severity) for n in signed_in.notifications.entries()]
    assert ("Attention", "info") in titles


def test_status_change_rolls_back_on_failure(signed_in, backend):
    backend.fail_on("update", "tasks")
    assert signed_in.mutations.update_task_status("t1", "done") is False
    assert signed_in.workspace.tasks.get("t1").status == "todo"


def test_status_change_rejects_unknown_status(signed_in):
    with pytest.raises(ValueError):
        signed_in.mutations.update_task_status("t1", "archived")


def test_update_task_keeps_joined_children(signed_in, backend):
    from dataclasses import replace
    cur = signed_in.workspace.tasks.get("t1")
    assert signed_in.mutations.update_task(replace(cur, title="Relaunch", comments=(), subtasks=()))
    got = signed_in.workspace.tasks.get("t1")
    assert got.title == "Relaunch"
    assert [c.id for c in got.comments] == ["tc1"]
    assert backend.tables["tasks"]["t1"]["title"] == "Relaunch"


def test_delete_task_failure_restores_it(signed_in, backend):
    backend.fail_on("delete", "tasks")
    assert signed_in.mutations.delete_task("t1") is False
    assert "t1" in signed_in.workspace.tasks


def test_subtask_lifecycle(signed_in, backend):
    m = signed_in.mutations
    sid = m.add_subtask("t1", "Pick images")
    assert sid in backend.tables["subtasks"]
    assert m.toggle_subtask("t1", "s1")
    assert signed_in.workspace.tasks.get("t1").subtasks[0].is_completed is True
    assert backend.tables["subtasks"]["s1"]["is_completed"] is True
    assert m.delete_subtask("t1", sid)
    assert [s.id for s in signed_in.workspace.tasks.get("t1").subtasks] == ["s1"]


def test_comment_updates_derived_attachments(signed_in, backend):
    m = signed_in.mutations
    cid = m.add_comment("t1", "see www.assets.example/pack")
    task = signed_in.workspace.tasks.get("t1")
    assert task.attachments == ("https://docs.example.com/brief", "www.assets.example/pack")
    backend.fail_on("delete", "task_comments")
    assert m.delete_comment("t1", cid) is False
    assert signed_in.workspace.tasks.get("t1").attachments == task.attachments


# --- chat ------------------------------------------------------------------

def test_send_message_resolves_default_channel(signed_in, backend):
    mid = signed_in.mutations.send_message("hi all")
    assert backend.tables["messages"][mid]["channel_id"] == "c-general"


def test_default_channel_created_once(vm, backend):
    backend.add_account("solo@agency.test", "pw", "u-solo")
    backend.seed("users", {"id": "u-solo", "name": "Solo", "email": "solo@agency.test"})
    assert vm.sign_in("solo@agency.test", "pw")
    assert vm.workspace.current_channel_id == "general"

    first = vm.mutations.send_message("one")
    second = vm.mutations.send_message("two")
    channel_inserts = backend.writes("channels")
    assert len(channel_inserts) == 1
    created = next(iter(backend.tables["channels"].values()))
    assert created["name"] == "general"
    assert backend.tables["messages"][first]["channel_id"] == created["id"]
    assert backend.tables["messages"][second]["channel_id"] == created["id"]
    assert vm.workspace.current_channel_id == created["id"]


def test_default_channel_creation_failure_aborts_send(vm, backend):
    backend.add_account("solo@agency.test", "pw", "u-solo")
    assert vm.sign_in("solo@agency.test", "pw")
    backend.fail_on("insert", "channels")
    assert vm.mutations.send_message("lost") is None
    assert backend.writes("messages") == []
    assert len(vm.workspace.messages) == 0


def test_fallback_channel_does_not_stand_in_for_general(vm, backend):
    backend.add_account("solo@agency.test", "pw", "u-solo")
    backend.seed("users", {"id": "u-solo", "name": "Solo", "email": "solo@agency.test"})
    backend.seed("channels", {"id": "c-random", "name": "random", "type": "global"})
    assert vm.sign_in("solo@agency.test", "pw")
    ws = vm.workspace
    assert ws.current_channel_id == "c-random"
    assert ws.default_channel_id is None

    first = vm.mutations.send_message("hello", "general")
    second = vm.mutations.send_message("again", "general")
    general = [r for r in backend.tables["channels"].values() if r["name"] == "general"]
    assert len(general) == 1
    assert backend.tables["messages"][first]["channel_id"] == general[0]["id"]
    assert backend.tables["messages"][second]["channel_id"] == general[0]["id"]
    assert ws.default_channel_id == general[0]["id"]
    assert "c-random" in ws.channels


def test_send_failure_removes_optimistic_message(signed_in, backend):
    backend.fail_on("insert", "messages")
    assert signed_in.mutations.send_message("nope") is None
    assert len(signed_in.workspace.messages) == 3


def test_delete_channel_resets_selection(signed_in):
    ws = signed_in.workspace
    signed_in.select_channel("c-design")
    assert signed_in.mutations.delete_channel("c-design")
    assert ws.current_channel_id == "c-general"


def test_add_channel_with_members(signed_in, backend):
    cid = signed_in.mutations.add_channel("launch", kind="project", members=["u-alice"])
    assert backend.tables["channels"][cid]["type"] == "project"
    assert signed_in.workspace.channels.get(cid).members == ("u-alice",)


# --- files -----------------------------------------------------------------

def test_delete_file_link_by_key(signed_in, backend):
    assert signed_in.mutations.delete_file("link|f1")
    assert "f1" not in backend.tables["file_links"]
    assert len(signed_in.workspace.file_links) == 0


def test_delete_chat_attachment_by_key(signed_in, backend):
    assert signed_in.mutations.delete_file("chat|m2|brief.pdf")
    assert signed_in.workspace.messages.get("m2").attachments == ("logo.png",)
    assert backend.tables["messages"]["m2"]["attachments"] == ["logo.png"]


def test_delete_task_file_removes_comment(signed_in, backend):
    assert signed_in.mutations.delete_file("task|t1|tc1")
    task = signed_in.workspace.tasks.get("t1")
    assert task.comments == () and task.attachments == ()
    assert "tc1" not in backend.tables["task_comments"]


def test_delete_one_url_keeps_rest_of_comment(signed_in, backend):
    m = signed_in.mutations
    cid = m.add_comment("t1", "see https://a.example/one and https://b.example/two thanks")
    keys = [e.key for e in signed_in.files() if e.source_kind == "task"]
    assert f"task|t1|{cid}|https://a.example/one" in keys
    assert f"task|t1|{cid}|https://b.example/two" in keys

    assert m.delete_file(f"task|t1|{cid}|https://a.example/one")
    task = signed_in.workspace.tasks.get("t1")
    comment = next(c for c in task.comments if c.id == cid)
    assert "https://b.example/two" in comment.content
    assert "https://a.example/one" not in comment.content
    assert backend.tables["task_comments"][cid]["content"] == comment.content
    assert set(task.attachments) == {"https://docs.example.com/brief", "https://b.example/two"}


def test_delete_url_from_mixed_comment_keeps_text(signed_in, backend):
    assert signed_in.mutations.delete_file("task|t1|tc1|https://docs.example.com/brief")
    task = signed_in.workspace.tasks.get("t1")
    assert [c.content for c in task.comments] == ["draft at"]
    assert task.attachments == ()
    assert backend.tables["task_comments"]["tc1"]["content"] == "draft at"


def test_delete_attached_file_removes_marker_comment(signed_in, backend):
    url = "https://files.example.com/brief.pdf"
    tid = signed_in.mutations.add_task(title="With files", attachments=[url])
    cid = signed_in.workspace.tasks.get(tid).comments[0].id
    assert signed_in.mutations.delete_file(TaskFileRef(tid, cid, url))
    assert signed_in.workspace.tasks.get(tid).comments == ()
    assert cid not in backend.tables["task_comments"]


def test_delete_task_file_with_unknown_url(signed_in, backend):
    assert signed_in.mutations.delete_file("task|t1|tc1|https://elsewhere.example") is False
    assert backend.writes("task_comments") == []


def test_delete_file_with_malformed_key(signed_in, backend):
    assert signed_in.mutations.delete_file("bogus") is False
    assert all(w[1] == "users" for w in backend.writes())  # heartbeat only
    assert _last(signed_in).severity == "urgent"


def test_add_file_link(signed_in, backend):
    fid = signed_in.mutations.add_file_link("Deck", "https://slides.example/deck", client_id="cl-1")
    assert backend.tables["file_links"][fid]["url"] == "https://slides.example/deck"
    assert signed_in.workspace.file_links.get(fid).client_id == "cl-1"


# --- team and profile --------------------------------------------------------

def test_remove_user_failure_restores_member(signed_in, backend):
    backend.fail_on("delete", "users")
    assert signed_in.mutations.remove_user("u-bob") is False
    assert signed_in.workspace.users.get("u-bob").name == "Bob"


def test_update_user_rejects_unknown_fields(signed_in):
    with pytest.raises(ValueError):
        signed_in.mutations.update_user("u-bob", {"id": "x"})
    with pytest.raises(ValueError):
        signed_in.mutations.update_role("u-bob", "overlord")


def test_update_user_rejects_unknown_permission_flags(signed_in, backend):
    with pytest.raises(ValueError):
        signed_in.mutations.update_user("u-bob", {"permissions": {"can_launch_rockets": True}})
    assert signed_in.mutations.update_user("u-bob", {"permissions": {"can_delete_files": True}})
    assert backend.tables["users"]["u-bob"]["permissions"] == {"can_delete_files": True}


def test_approve_and_add_user(signed_in, backend):
    m = signed_in.mutations
    uid = m.add_user(name="Carol", email="carol@agency.test")
    assert backend.tables["users"][uid]["avatar"]
    backend.tables["users"][uid]["status"] = "pending"
    assert m.approve_user(uid)
    assert backend.tables["users"][uid]["status"] == "active"


def test_update_profile_records_history(signed_in, local_store):
    m = signed_in.mutations
    assert m.update_profile({"name": "Alice M.", "phone_number": "555-0100"})
    assert signed_in.current_user.name == "Alice M."
    history = m.profile_history()
    assert {h.field for h in history} == {"name", "phone_number"}
    assert next(h for h in history if h.field == "name").old_value == "Alice Martin"
    assert _last(signed_in).title == "Profile updated"


def test_update_profile_failure_rolls_back(signed_in, backend):
    backend.fail_on("update", "users")
    assert signed_in.mutations.update_profile({"name": "Nope"}) is False
    assert signed_in.current_user.name == "Alice Martin"
    assert signed_in.workspace.users.get("u-alice").name == "Alice Martin"
    assert signed_in.mutations.profile_history() == []


def test_stale_service_does_nothing_after_sign_out(signed_in, backend):
    old = signed_in.mutations
    signed_in.sign_out()
    n = len(backend.writes())
    assert old.add_task(title="late") is None
    assert old.send_message("late") is None
    assert len(backend.writes()) == n
