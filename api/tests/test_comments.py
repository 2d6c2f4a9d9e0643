from __future__ import annotations

from sqlalchemy.orm import Session

from app import models
from app.enums import ArticleStatus


def test_new_comment_waits_for_moderation(client, subscriber, author, make_article, auth_headers):
    article = make_article(author)
    response = client.post(
        f"/articles/{article.slug}/comments", json={"content": "First!"}, headers=auth_headers(subscriber)
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["user"]["id"] == subscriber.id

    listing = client.get(f"/articles/{article.slug}/comments").json()["data"]
    assert listing["comments"] == []


def test_comment_requires_login_and_published_article(client, subscriber, author, make_article, auth_headers):
    article = make_article(author)
    assert client.post(f"/articles/{article.slug}/comments", json={"content": "hi"}).status_code == 401

    draft = make_article(author, status=ArticleStatus.DRAFT)
    response = client.post(
        f"/articles/{draft.slug}/comments", json={"content": "hi"}, headers=auth_headers(subscriber)
    )
    assert response.status_code == 404


def test_replies_are_one_level_deep(client, subscriber, author, make_article, make_comment, auth_headers):
    article = make_article(author)
    top = make_comment(article, author)
    reply = make_comment(article, author, parent_comment_id=top.id)
    headers = auth_headers(subscriber)
    url = f"/articles/{article.slug}/comments"

    ok = client.post(url, json={"content": "Agreed", "parent_comment_id": top.id}, headers=headers)
    assert ok.status_code == 201
    assert ok.json()["data"]["parent_comment_id"] == top.id

    too_deep = client.post(url, json={"content": "Nested", "parent_comment_id": reply.id}, headers=headers)
    assert too_deep.status_code == 409

    missing = client.post(url, json={"content": "Ghost", "parent_comment_id": 999999}, headers=headers)
    assert missing.status_code == 422
    assert "parent_comment_id" in missing.json()["error"]


def test_reply_to_other_article_conflicts(client, subscriber, author, make_article, make_comment, auth_headers):
    first = make_article(author)
    second = make_article(author)
    foreign = make_comment(first, author)

    response = client.post(
        f"/articles/{second.slug}/comments",
        json={"content": "Wrong thread", "parent_comment_id": foreign.id},
        headers=auth_headers(subscriber),
    )
    assert response.status_code == 409


def test_listing_previews_approved_replies(client, subscriber, author, make_article, make_comment):
    article = make_article(author)
    top = make_comment(article, subscriber, content="Top level")
    for index in range(4):
        make_comment(article, author, content=f"Reply {index}", parent_comment_id=top.id)
    make_comment(article, author, status="pending", content="Hidden reply", parent_comment_id=top.id)
    make_comment(article, author, status="spam", content="Hidden top")

    data = client.get(f"/articles/{article.slug}/comments", params={"replies_per_page": 2}).json()["data"]
    assert [c["id"] for c in data["comments"]] == [top.id]
    entry = data["comments"][0]
    assert entry["replies_count"] == 4
    assert [r["content"] for r in entry["replies"]] == ["Reply 0", "Reply 1"]

    replies = client.get(f"/articles/{article.slug}/comments", params={"parent_id": top.id}).json()["data"]
    assert len(replies["comments"]) == 4
    assert replies["meta"]["total"] == 4


def test_approved_comments_are_counted_on_detail(client, subscriber, author, make_article, make_comment):
    article = make_article(author)
    make_comment(article, subscriber)
    make_comment(article, subscriber, status="pending")
    assert client.get(f"/articles/{article.slug}").json()["data"]["comments_count"] == 1


def test_owner_can_edit_but_not_others(client, subscriber, make_user, author, make_article, make_comment, auth_headers):
    article = make_article(author)
    comment = make_comment(article, subscriber)
    other = make_user()

    denied = client.put(f"/comments/{comment.id}", json={"content": "Hijack"}, headers=auth_headers(other))
    assert denied.status_code == 403

    edited = client.put(f"/comments/{comment.id}", json={"content": "Fixed typo"}, headers=auth_headers(subscriber))
    assert edited.status_code == 200
    assert edited.json()["data"]["content"] == "Fixed typo"


def test_soft_delete_keeps_row(client, db: Session, subscriber, author, make_article, make_comment, auth_headers, editor):
    article = make_article(author)
    own = make_comment(article, subscriber)
    moderated = make_comment(article, subscriber)

    response = client.request(
        "DELETE", f"/comments/{own.id}", json={"reason": "Changed my mind"}, headers=auth_headers(subscriber)
    )
    assert response.status_code == 200
    client.delete(f"/comments/{moderated.id}", headers=auth_headers(editor))

    db.expire_all()
    row = db.get(models.Comment, own.id)
    assert row.deleted_at is not None
    assert row.deleted_by == subscriber.id
    assert row.deleted_reason == "Changed my mind"
    assert db.get(models.Comment, moderated.id).deleted_by == editor.id

    assert client.put(f"/comments/{own.id}", json={"content": "x"}, headers=auth_headers(subscriber)).status_code == 404
    assert client.get(f"/articles/{article.slug}/comments").json()["data"]["comments"] == []

    hidden = client.get("/admin/comments", params={"article_id": article.id}, headers=auth_headers(editor))
    assert hidden.json()["data"]["comments"] == []
    shown = client.get(
        "/admin/comments", params={"article_id": article.id, "with_deleted": True}, headers=auth_headers(editor)
    )
    assert len(shown.json()["data"]["comments"]) == 2


def test_report_comment(client, subscriber, author, make_article, make_comment, auth_headers, editor):
    article = make_article(author)
    comment = make_comment(article, author)

    response = client.post(
        f"/comments/{comment.id}/report", json={"reason": "Rude"}, headers=auth_headers(subscriber)
    )
    assert response.status_code == 200

    reported = client.get(
        "/admin/comments", params={"article_id": article.id, "has_reports": True}, headers=auth_headers(editor)
    ).json()["data"]["comments"]
    assert [(c["id"], c["report_count"], c["report_reason"]) for c in reported] == [(comment.id, 1, "Rude")]


def test_moderation_flow(client, db: Session, subscriber, author, make_article, make_comment, auth_headers, editor):
    article = make_article(author)
    comment = make_comment(article, subscriber, status="pending")
    headers = auth_headers(editor)

    pending = client.get(
        "/admin/comments", params={"status": "pending", "article_id": article.id}, headers=headers
    ).json()["data"]["comments"]
    assert [c["id"] for c in pending] == [comment.id]

    approved = client.post(
        f"/admin/comments/{comment.id}/approve", json={"admin_note": "Looks fine"}, headers=headers
    ).json()["data"]
    assert approved["status"] == "approved"
    assert approved["approved_by"] == editor.id
    assert approved["admin_note"] == "Looks fine"
    assert len(client.get(f"/articles/{article.slug}/comments").json()["data"]["comments"]) == 1

    spam = client.post(f"/admin/comments/{comment.id}/spam", headers=headers).json()["data"]
    assert spam["status"] == "spam"
    assert spam["approved_by"] is None

    rejected = client.post(f"/admin/comments/{comment.id}/reject", headers=headers).json()["data"]
    assert rejected["status"] == "rejected"

    actions = {
        log.action
        for log in db.query(models.AuditLog).filter(
            models.AuditLog.target_type == "comment", models.AuditLog.target_id == str(comment.id)
        )
    }
    assert actions == {"approve_comment", "mark_comment_spam", "reject_comment"}


def test_moderation_requires_permission(client, subscriber, author, make_article, make_comment, auth_headers):
    article = make_article(author)
    comment = make_comment(article, subscriber, status="pending")
    response = client.post(f"/admin/comments/{comment.id}/approve", headers=auth_headers(author))
    assert response.status_code == 403
    assert client.get("/admin/comments", headers=auth_headers(author)).status_code == 403


def test_my_comments_include_every_state(client, subscriber, author, make_article, make_comment, auth_headers):
    article = make_article(author)
    approved = make_comment(article, subscriber)
    pending = make_comment(article, subscriber, status="pending")
    make_comment(article, author)

    data = client.get("/me/comments", headers=auth_headers(subscriber)).json()["data"]
    assert {c["id"] for c in data["comments"]} == {approved.id, pending.id}
