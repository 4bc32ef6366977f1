from __future__ import annotations

from itertools import permutations

import pytest

from agencydesk.models.attachments import ATTACHMENT_MARKER, attachment_comment_text, derive_attachments, remove_url
from agencydesk.models.entities import Comment, Task
from agencydesk.models.file_refs import ChatFileRef, LinkFileRef, TaskFileRef, parse_file_ref
from agencydesk.models.rows import build_task_views


COMMENTS = [
    Comment("c1", "t1", "u1", "see https://a.example/x and www.b.example", full_timestamp="2026-10-01T10:00:00+00:00"),
    Comment("c2", "t1", "u2", "no links here", full_timestamp="2026-10-01T11:00:00+00:00"),
    Comment("c3", "t1", "u1", "again https://a.example/x plus http://c.example/doc.pdf",
            full_timestamp="2026-10-01T12:00:00+00:00"),
]


def test_derive_attachments_finds_distinct_urls():
    urls = derive_attachments(c.content for c in COMMENTS)
    assert urls == ("https://a.example/x", "www.b.example", "http://c.example/doc.pdf")


def test_derivation_does_not_depend_on_comment_order():
    expected = {"https://a.example/x", "www.b.example", "http://c.example/doc.pdf"}
    for order in permutations(COMMENTS):
        assert set(derive_attachments(c.content for c in order)) == expected
        task = Task(id="t1", title="T").with_comments(order)
        assert [c.id for c in task.comments] == ["c1", "c2", "c3"]
        assert set(task.attachments) == expected


def test_rederiving_is_idempotent():
    task = Task(id="t1", title="T").with_comments(COMMENTS)
    again = task.with_comments(task.comments)
    assert again == task


def test_marker_comment_carries_the_url():
    text = attachment_comment_text("https://files.example/brief.pdf")
    assert text.startswith(ATTACHMENT_MARKER)
    assert derive_attachments([text]) == ("https://files.example/brief.pdf",)


def test_build_task_views_joins_comments_and_subtasks():
    tasks = [{"id": "t1", "title": "A", "type": "seo", "price": "99.5"}, {"id": "t2", "title": "B"}]
    comments = [{"id": "c1", "task_id": "t1", "user_id": "u", "content": "https://x.example",
                 "created_at": "2026-10-01T10:00:00+00:00"}]
    subtasks = [{"id": "s1", "task_id": "t2", "title": "sub", "is_completed": 1}]
    views = {t.id: t for t in build_task_views(tasks, comments, subtasks)}
    assert views["t1"].attachments == ("https://x.example",)
    assert views["t1"].category == "seo"
    assert views["t1"].price == 99.5
    assert views["t2"].subtasks[0].is_completed is True
    assert views["t2"].comments == ()


@pytest.mark.parametrize(
    "key,expected",
    [
        ("link|f1", LinkFileRef("f1")),
        ("task|t1|c9", TaskFileRef("t1", "c9")),
        ("task|t1|c9|https://a.example/x", TaskFileRef("t1", "c9", "https://a.example/x")),
        ("task|t1|c9|https://a.example/?q=a|b", TaskFileRef("t1", "c9", "https://a.example/?q=a|b")),
        ("chat|m2|brief.pdf", ChatFileRef("m2", "brief.pdf")),
        ("chat|m2|a|b.txt", ChatFileRef("m2", "a|b.txt")),
    ],
)
def test_parse_file_ref(key, expected):
    ref = parse_file_ref(key)
    assert ref == expected
    assert ref.key() == key


@pytest.mark.parametrize("key", ["", "link|", "task|t1", "task|t1|c9|", "task||c9", "chat||x", "drive|f1", "msg-1-0"])
def test_parse_file_ref_rejects_malformed_keys(key):
    with pytest.raises(ValueError):
        parse_file_ref(key)


@pytest.mark.parametrize(
    "text,url,expected",
    [
        ("see https://a.example/one and https://b.example/two thanks", "https://a.example/one",
         "see and https://b.example/two thanks"),
        ("https://a.example/one", "https://a.example/one", ""),
        (attachment_comment_text("https://a.example/one"), "https://a.example/one", ""),
        ("keep https://a.example/one2", "https://a.example/one", "keep https://a.example/one2"),
    ],
)
def test_remove_url(text, url, expected):
    assert remove_url(text, url) == expected
