"""Likes and dislikes on published articles.

An actor (a user, or an anonymous IP) holds at most one reaction per
article. Reacting with the opposite type replaces the earlier reaction;
repeating the same reaction returns the stored row.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import events, models
from ..auth import Actor, UserActor
from ..enums import ArticleStatus, ReactionType
from ..errors import DomainConflict, NotFound, ValidationFailed
from ..permissions import Perm, authorize
from .articles import invalidate_article_cache

logger = logging.getLogger(__name__)

REACTION_PERMISSIONS = {
    ReactionType.LIKE: Perm.LIKE_POSTS,
    ReactionType.DISLIKE: Perm.DISLIKE_POSTS,
}

REACTION_EVENTS = {
    ReactionType.LIKE: events.ARTICLE_LIKED,
    ReactionType.DISLIKE: events.ARTICLE_DISLIKED,
}


def _actor_columns(actor: Actor) -> dict[str, int | str | None]:
    columns = {"user_id": actor.user_id, "ip_address": actor.ip_address}
    if (columns["user_id"] is None) == (columns["ip_address"] is None):
        raise ValidationFailed("A reaction needs exactly one of a user or an IP address.")
    return columns


def _find(db: Session, article_id: int, columns: dict) -> models.ArticleReaction | None:
    query = db.query(models.ArticleReaction).filter(models.ArticleReaction.article_id == article_id)
    if columns["user_id"] is not None:
        query = query.filter(models.ArticleReaction.user_id == columns["user_id"])
    else:
        query = query.filter(models.ArticleReaction.ip_address == columns["ip_address"])
    return query.first()


def _lock_published(db: Session, article_id: int) -> models.Article:
    article = (
        db.query(models.Article)
        .filter(models.Article.id == article_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if article is None:
        raise NotFound("Article not found.")
    if article.status != ArticleStatus.PUBLISHED.value or article.published_at is None:
        raise DomainConflict("Only published articles can receive reactions.")
    return article


def react(
    db: Session,
    actor: Actor,
    article_id: int,
    reaction_type: ReactionType,
    _retried: bool = False,
) -> models.ArticleReaction:
    """
    Record ``reaction_type`` for the actor on the article.

    Runs under a row lock on the article. A unique-constraint race with a
    concurrent request is resolved by reading the row that won.
    """
    if isinstance(actor, UserActor):
        authorize(actor.user, REACTION_PERMISSIONS[reaction_type])
    columns = _actor_columns(actor)

    article = _lock_published(db, article_id)
    existing = _find(db, article.id, columns)
    if existing is not None and existing.type == reaction_type.value:
        db.commit()
        return existing

    if existing is not None:
        db.delete(existing)
        db.flush()

    reaction = models.ArticleReaction(article_id=article.id, type=reaction_type.value, **columns)
    db.add(reaction)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = _find(db, article_id, columns)
        if winner is not None and winner.type == reaction_type.value:
            return winner
        if _retried:
            raise DomainConflict("Reaction could not be recorded, please retry.")
        return react(db, actor, article_id, reaction_type, _retried=True)

    db.refresh(reaction)
    invalidate_article_cache(article.slug)
    events.dispatch(
        REACTION_EVENTS[reaction_type],
        article_id=article.id,
        user_id=columns["user_id"],
        ip_address=columns["ip_address"],
    )
    return reaction


def like(db: Session, actor: Actor, article_id: int) -> models.ArticleReaction:
    return react(db, actor, article_id, ReactionType.LIKE)


def dislike(db: Session, actor: Actor, article_id: int) -> models.ArticleReaction:
    return react(db, actor, article_id, ReactionType.DISLIKE)
