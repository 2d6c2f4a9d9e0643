"""Article authoring, lifecycle transitions and public visibility."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from app import models
from app.enums import ArticleStatus, RoleName
from app.services.articles import publish_due_articles, status_for_publish_date
from app.tasks import publish_scheduled_articles
from app.utils.clock import utcnow


def _create(client, headers, **payload):
    payload.setdefault("title", "Hello World")
    payload.setdefault("content_markdown", "# Hello\n\nBody text.")
    return client.post("/admin/articles", json=payload, headers=headers)


def test_status_for_publish_date():
    now = utcnow()
    assert status_for_publish_date(None, now) == ArticleStatus.PUBLISHED
    assert status_for_publish_date(now - timedelta(minutes=1), now) == ArticleStatus.PUBLISHED
    assert status_for_publish_date(now + timedelta(minutes=1), now) == ArticleStatus.SCHEDULED


# ============================================================================
# AUTHORING
# ============================================================================


def test_create_draft_with_generated_slug(client, contributor, auth_headers):
    first = _create(client, auth_headers(contributor), title="Déjà Vu Again")
    assert first.status_code == 201
    data = first.json()["data"]
    assert data["status"] == "draft"
    assert data["slug"].startswith("deja-vu-again")
    assert data["approved_by"] is None
    assert [a["user_id"] for a in data["authors"]] == [contributor.id]

    second = _create(client, auth_headers(contributor), title="Déjà Vu Again")
    assert second.json()["data"]["slug"] == f"{data['slug']}-2"


def test_explicit_duplicate_slug_is_rejected(client, author, auth_headers):
    headers = auth_headers(author)
    assert _create(client, headers, slug="fixed-slug-one").status_code == 201
    response = _create(client, headers, slug="fixed-slug-one")
    assert response.status_code == 422
    assert "slug" in response.json()["error"]


def test_create_with_publish_date_requires_publish_permission(client, contributor, auth_headers):
    response = _create(client, auth_headers(contributor), published_at=utcnow().isoformat())
    assert response.status_code == 403


def test_author_can_publish_and_schedule(client, author, auth_headers):
    headers = auth_headers(author)
    published = _create(client, headers, published_at=(utcnow() - timedelta(minutes=1)).isoformat())
    assert published.status_code == 201
    assert published.json()["data"]["status"] == "published"
    assert published.json()["data"]["approved_by"] == author.id

    scheduled = _create(client, headers, published_at=(utcnow() + timedelta(days=1)).isoformat())
    assert scheduled.json()["data"]["status"] == "scheduled"


def test_create_with_taxonomy_and_coauthors(client, db: Session, author, contributor, auth_headers):
    category = models.Category(name="Science", slug="science-articles-test")
    tag = models.Tag(name="Physics", slug="physics-articles-test")
    db.add_all([category, tag])
    db.commit()

    response = _create(
        client,
        auth_headers(author),
        category_ids=[category.id],
        tag_ids=[tag.id],
        authors=[{"user_id": author.id, "role": "main"}, {"user_id": contributor.id, "role": "co_author"}],
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert [c["slug"] for c in data["categories"]] == ["science-articles-test"]
    assert [t["slug"] for t in data["tags"]] == ["physics-articles-test"]
    assert {(a["user_id"], a["role"]) for a in data["authors"]} == {
        (author.id, "main"),
        (contributor.id, "co_author"),
    }


def test_create_rejects_unknown_category(client, author, auth_headers):
    response = _create(client, auth_headers(author), category_ids=[999999])
    assert response.status_code == 422
    assert "category_ids" in response.json()["error"]


def test_update_own_and_others(client, author, make_user, make_article, auth_headers, editor):
    other = make_user(RoleName.AUTHOR)
    article = make_article(other, status=ArticleStatus.DRAFT)

    denied = client.put(f"/admin/articles/{article.id}", json={"title": "Mine now"}, headers=auth_headers(author))
    assert denied.status_code == 403

    allowed = client.put(f"/admin/articles/{article.id}", json={"title": "Edited"}, headers=auth_headers(editor))
    assert allowed.status_code == 200
    assert allowed.json()["data"]["title"] == "Edited"


def test_submit_for_review_only_from_draft(client, contributor, make_article, auth_headers):
    article = make_article(contributor, status=ArticleStatus.DRAFT)
    url = f"/admin/articles/{article.id}"

    response = client.put(url, json={"submit_for_review": True}, headers=auth_headers(contributor))
    assert response.json()["data"]["status"] == "review"

    again = client.put(url, json={"submit_for_review": True}, headers=auth_headers(contributor))
    assert again.status_code == 409


def test_publish_date_locked_after_approval(client, author, make_article, auth_headers):
    article = make_article(author)
    response = client.put(
        f"/admin/articles/{article.id}",
        json={"published_at": utcnow().isoformat()},
        headers=auth_headers(author),
    )
    assert response.status_code == 409


def test_management_list_is_scoped(client, author, editor, make_article, auth_headers):
    mine = make_article(author, status=ArticleStatus.DRAFT, title="Scoped mine")
    theirs = make_article(editor, status=ArticleStatus.DRAFT, title="Scoped theirs")

    own = client.get("/admin/articles", params={"search": "Scoped"}, headers=auth_headers(author))
    ids = {a["id"] for a in own.json()["data"]["articles"]}
    assert mine.id in ids and theirs.id not in ids

    everything = client.get("/admin/articles", params={"search": "Scoped"}, headers=auth_headers(editor))
    ids = {a["id"] for a in everything.json()["data"]["articles"]}
    assert {mine.id, theirs.id} <= ids

    hidden = client.get(f"/admin/articles/{theirs.id}", headers=auth_headers(author))
    assert hidden.status_code == 404


# ============================================================================
# LIFECYCLE
# ============================================================================


def test_approve_publishes_now(client, admin, contributor, make_article, auth_headers):
    article = make_article(contributor, status=ArticleStatus.REVIEW)
    response = client.post(f"/admin/articles/{article.id}/approve", headers=auth_headers(admin))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "published"
    assert data["published_at"] is not None
    assert data["approved_by"] == admin.id

    public = client.get(f"/articles/{article.slug}")
    assert public.status_code == 200


def test_approve_with_future_date_schedules(client, admin, contributor, make_article, auth_headers):
    article = make_article(
        contributor, status=ArticleStatus.REVIEW, published_at=utcnow() + timedelta(hours=2)
    )
    response = client.post(f"/admin/articles/{article.id}/approve", headers=auth_headers(admin))
    assert response.json()["data"]["status"] == "scheduled"
    assert client.get(f"/articles/{article.slug}").status_code == 404


def test_approve_requires_permission(client, editor, contributor, make_article, auth_headers):
    article = make_article(contributor, status=ArticleStatus.REVIEW)
    response = client.post(f"/admin/articles/{article.id}/approve", headers=auth_headers(editor))
    assert response.status_code == 403


def test_reject_returns_to_draft(client, admin, contributor, make_article, auth_headers, db: Session):
    article = make_article(contributor, status=ArticleStatus.REVIEW)
    response = client.post(
        f"/admin/articles/{article.id}/reject", json={"reason": "Needs sources"}, headers=auth_headers(admin)
    )
    assert response.json()["data"]["status"] == "draft"

    log = (
        db.query(models.AuditLog)
        .filter(models.AuditLog.action == "reject_article", models.AuditLog.target_id == str(article.id))
        .one()
    )
    assert log.note == "Needs sources"
    assert log.actor_id == admin.id


@pytest.mark.parametrize(
    "status, action",
    [
        (ArticleStatus.PUBLISHED, "approve"),
        (ArticleStatus.ARCHIVED, "reject"),
        (ArticleStatus.TRASHED, "archive"),
        (ArticleStatus.PUBLISHED, "restore"),
        (ArticleStatus.TRASHED, "trash"),
        (ArticleStatus.DRAFT, "restore-from-trash"),
    ],
)
def test_illegal_transitions_conflict(client, admin, make_article, auth_headers, status, action):
    article = make_article(admin, status=status)
    response = client.post(f"/admin/articles/{article.id}/{action}", headers=auth_headers(admin))
    assert response.status_code == 409
    assert response.json()["status"] is False


def test_archive_restore_trash_cycle(client, author, make_article, auth_headers):
    article = make_article(author, approved_by=author.id)
    headers = auth_headers(author)
    base = f"/admin/articles/{article.id}"

    archived = client.post(f"{base}/archive", headers=headers).json()["data"]
    assert archived["status"] == "archived"
    assert archived["approved_by"] == author.id
    assert client.get(f"/articles/{article.slug}").status_code == 404

    # Restore returns to published under the original approval
    restored_live = client.post(f"{base}/restore", headers=headers).json()["data"]
    assert restored_live["status"] == "published"
    assert restored_live["approved_by"] == author.id

    trashed = client.post(f"{base}/trash", headers=headers).json()["data"]
    assert trashed["status"] == "trashed"
    assert trashed["approved_by"] == author.id

    restored = client.post(f"{base}/restore-from-trash", headers=headers).json()["data"]
    assert restored["status"] == "draft"
    assert restored["approved_by"] is None


def test_cannot_trash_others_without_permission(client, author, editor, make_article, auth_headers):
    article = make_article(editor)
    response = client.post(f"/admin/articles/{article.id}/trash", headers=auth_headers(author))
    assert response.status_code == 403


def test_feature_and_pin_flags(client, editor, author, make_article, auth_headers):
    first = make_article(author)
    second = make_article(author)
    headers = auth_headers(editor)

    featured = client.post(f"/admin/articles/{first.id}/feature", headers=headers).json()["data"]
    assert featured["is_featured"] is True and featured["featured_at"] is not None

    client.post(f"/admin/articles/{first.id}/pin", headers=headers)
    client.post(f"/admin/articles/{second.id}/pin", headers=headers)
    # Pinning one article leaves the others pinned
    pinned = client.get("/admin/articles", params={"is_pinned": True}, headers=headers).json()["data"]["articles"]
    assert {first.id, second.id} <= {a["id"] for a in pinned}

    unpinned = client.post(f"/admin/articles/{first.id}/unpin", headers=headers).json()["data"]
    assert unpinned["is_pinned"] is False and unpinned["pinned_at"] is None

    assert client.post(f"/admin/articles/{first.id}/feature", headers=auth_headers(author)).status_code == 403


def test_delete_cascades(client, admin, subscriber, make_article, make_comment, auth_headers, db: Session):
    article = make_article(admin)
    comment = make_comment(article, subscriber)
    db.add(models.ArticleReaction(article_id=article.id, user_id=subscriber.id, type="like"))
    db.commit()
    article_id, comment_id = article.id, comment.id

    response = client.delete(f"/admin/articles/{article_id}", headers=auth_headers(admin))
    assert response.status_code == 200

    db.expire_all()
    assert db.get(models.Article, article_id) is None
    assert db.get(models.Comment, comment_id) is None
    assert db.query(models.ArticleReaction).filter(models.ArticleReaction.article_id == article_id).count() == 0


# ============================================================================
# REPORTS
# ============================================================================


def test_report_and_clear(client, admin, subscriber, make_article, auth_headers):
    article = make_article(admin)
    response = client.post(
        f"/articles/{article.slug}/report", json={"reason": "Spam links"}, headers=auth_headers(subscriber)
    )
    assert response.status_code == 200
    client.post(f"/articles/{article.slug}/report", json={}, headers=auth_headers(subscriber))

    detail = client.get(f"/admin/articles/{article.id}", headers=auth_headers(admin)).json()["data"]
    assert detail["report_count"] == 2
    assert detail["status"] == "published"

    reported = client.get("/admin/articles", params={"has_reports": True}, headers=auth_headers(admin))
    assert article.id in {a["id"] for a in reported.json()["data"]["articles"]}

    cleared = client.post(f"/admin/articles/{article.id}/clear-reports", headers=auth_headers(admin))
    assert cleared.json()["data"]["report_count"] == 0
    assert cleared.json()["data"]["report_reason"] is None


# ============================================================================
# PUBLIC VIEW
# ============================================================================


def test_public_listing_only_shows_published(client, author, make_article):
    marker = "Visibility-Marker"
    published = make_article(author, title=f"{marker} published")
    make_article(author, status=ArticleStatus.DRAFT, title=f"{marker} draft")
    make_article(author, status=ArticleStatus.SCHEDULED, title=f"{marker} later", published_at=utcnow() + timedelta(days=1))

    response = client.get("/articles", params={"search": marker})
    assert response.status_code == 200
    articles = response.json()["data"]["articles"]
    assert [a["id"] for a in articles] == [published.id]
    meta = response.json()["data"]["meta"]
    assert meta["total"] == 1
    assert meta["from"] == 1 and meta["to"] == 1


def test_public_listing_puts_pinned_first(client, author, make_article):
    marker = "Pin-Order-Marker"
    older_pinned = make_article(
        author, title=f"{marker} pinned", is_pinned=True, published_at=utcnow() - timedelta(days=3)
    )
    newer = make_article(author, title=f"{marker} newer", published_at=utcnow() - timedelta(hours=1))

    articles = client.get("/articles", params={"search": marker}).json()["data"]["articles"]
    assert [a["id"] for a in articles] == [older_pinned.id, newer.id]


def test_public_filters_by_category_and_tag(client, db: Session, author, make_article):
    category = models.Category(name="Travel", slug="travel-filter-test")
    tag = models.Tag(name="Japan", slug="japan-filter-test")
    db.add_all([category, tag])
    db.commit()
    tagged = make_article(author)
    tagged.categories = [category]
    tagged.tags = [tag]
    db.commit()
    make_article(author)

    by_category = client.get("/articles", params={"category": "travel-filter-test"}).json()["data"]["articles"]
    assert [a["id"] for a in by_category] == [tagged.id]
    by_tag = client.get("/articles", params={"tag": "japan-filter-test"}).json()["data"]["articles"]
    assert [a["id"] for a in by_tag] == [tagged.id]


def test_public_detail_is_cached_and_invalidated(client, admin, make_article, auth_headers, fake_redis):
    article = make_article(admin)
    key = f"article:slug:{article.slug}"

    assert client.get(f"/articles/{article.slug}").status_code == 200
    assert key in fake_redis.store

    client.post(f"/admin/articles/{article.id}/archive", headers=auth_headers(admin))
    assert key not in fake_redis.store
    assert client.get(f"/articles/{article.slug}").status_code == 404


def test_pagination_clamps_and_validates(client):
    assert client.get("/articles", params={"per_page": 500}).status_code == 422
    response = client.get("/articles", params={"per_page": 2, "page": 999})
    assert response.status_code == 200
    assert response.json()["data"]["articles"] == []
    assert response.json()["data"]["meta"]["from"] is None


# ============================================================================
# SCHEDULING
# ============================================================================


def test_publish_due_articles(db: Session, author, make_article):
    due = make_article(author, status=ArticleStatus.SCHEDULED, published_at=utcnow() - timedelta(minutes=1))
    later = make_article(author, status=ArticleStatus.SCHEDULED, published_at=utcnow() + timedelta(days=1))

    published = publish_due_articles(db)
    assert due.id in published
    assert later.id not in published

    db.refresh(due)
    db.refresh(later)
    assert due.status == "published"
    assert later.status == "scheduled"


def test_publish_scheduled_articles_task(author, make_article):
    make_article(author, status=ArticleStatus.SCHEDULED, published_at=utcnow() - timedelta(seconds=5))
    result = publish_scheduled_articles.apply().get()
    assert result["status"] == "success"
    assert result["published"] >= 1
