from __future__ import annotations

import uuid

import pytest
from sqlalchemy.orm import Session

from app import models
from app.auth import AnonymousActor, UserActor
from app.enums import ArticleStatus, ReactionType
from app.errors import DomainConflict
from app.services import reactions


def _ip() -> dict[str, str]:
    return {"X-Forwarded-For": f"10.0.{uuid.uuid4().int % 250}.{uuid.uuid4().int % 250}"}


def _reactions(db: Session, article_id: int) -> list[models.ArticleReaction]:
    db.expire_all()
    return db.query(models.ArticleReaction).filter(models.ArticleReaction.article_id == article_id).all()


def test_like_then_like_again_keeps_one_row(client, db: Session, subscriber, make_article, auth_headers):
    article = make_article(subscriber)
    headers = auth_headers(subscriber)

    first = client.post(f"/articles/{article.slug}/like", headers=headers)
    second = client.post(f"/articles/{article.slug}/like", headers=headers)
    assert first.status_code == 200
    assert second.json()["data"]["id"] == first.json()["data"]["id"]

    rows = _reactions(db, article.id)
    assert len(rows) == 1
    assert rows[0].user_id == subscriber.id
    assert rows[0].ip_address is None


def test_opposite_reaction_replaces(client, db: Session, subscriber, make_article, auth_headers):
    article = make_article(subscriber)
    headers = auth_headers(subscriber)

    client.post(f"/articles/{article.slug}/like", headers=headers)
    response = client.post(f"/articles/{article.slug}/dislike", headers=headers)
    assert response.json()["data"]["type"] == "dislike"

    rows = _reactions(db, article.id)
    assert [row.type for row in rows] == ["dislike"]


def test_anonymous_visitors_are_keyed_by_ip(client, db: Session, author, make_article):
    article = make_article(author)
    first_ip, second_ip = _ip(), _ip()

    client.post(f"/articles/{article.slug}/like", headers=first_ip)
    client.post(f"/articles/{article.slug}/like", headers=first_ip)
    anonymous = client.post(f"/articles/{article.slug}/dislike", headers=second_ip)
    assert anonymous.json()["data"]["user_id"] is None

    rows = _reactions(db, article.id)
    assert sorted((row.ip_address, row.type) for row in rows) == sorted(
        [
            (first_ip["X-Forwarded-For"], "like"),
            (second_ip["X-Forwarded-For"], "dislike"),
        ]
    )


def test_counts_on_detail_follow_reactions(client, subscriber, author, make_article, auth_headers):
    article = make_article(author)
    assert client.get(f"/articles/{article.slug}").json()["data"]["likes_count"] == 0

    client.post(f"/articles/{article.slug}/like", headers=auth_headers(subscriber))
    client.post(f"/articles/{article.slug}/like", headers=_ip())
    client.post(f"/articles/{article.slug}/dislike", headers=_ip())

    detail = client.get(f"/articles/{article.slug}").json()["data"]
    assert detail["likes_count"] == 2
    assert detail["dislikes_count"] == 1


def test_unpublished_article_reads_as_missing(client, author, make_article):
    article = make_article(author, status=ArticleStatus.DRAFT)
    response = client.post(f"/articles/{article.slug}/like", headers=_ip())
    assert response.status_code == 404


def test_reaction_requires_permission(client, make_user, author, make_article, auth_headers):
    no_roles = make_user(role=None)
    article = make_article(author)
    response = client.post(f"/articles/{article.slug}/dislike", headers=auth_headers(no_roles))
    assert response.status_code == 403


def test_service_refuses_unpublished(db: Session, author, make_article):
    article = make_article(author, status=ArticleStatus.ARCHIVED)
    with pytest.raises(DomainConflict):
        reactions.react(db, AnonymousActor("192.0.2.1"), article.id, ReactionType.LIKE)


def test_service_user_and_ip_are_separate_actors(db: Session, subscriber, author, make_article):
    article = make_article(author)
    by_user = reactions.like(db, UserActor(subscriber), article.id)
    by_ip = reactions.like(db, AnonymousActor("192.0.2.55"), article.id)
    assert by_user.id != by_ip.id
    assert len(_reactions(db, article.id)) == 2
