"""
Article lifecycle transitions.

    draft/review ──approve──▶ published | scheduled
    draft/review ──reject───▶ draft
    published/scheduled/draft/review ──archive──▶ archived ──restore──▶ published
    any but trashed ──trash──▶ trashed ──restore-from-trash──▶ draft

Feature and pin only flip flags. Every transition is permission gated and
an illegal source state raises DomainConflict.

``approved_by`` is set on approval and cleared when an article falls back to
draft (reject, restore-from-trash). Archived and trashed articles keep it:
restore goes straight back to published under the same approval.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from .. import events, models
from ..enums import ArticleStatus
from ..errors import DomainConflict, Forbidden
from ..permissions import Perm, authorize, can, can_on_own_or_all
from ..utils.audit import log_moderation_action
from ..utils.clock import utcnow
from .articles import get_article, invalidate_article_cache, status_for_publish_date

logger = logging.getLogger(__name__)

S = ArticleStatus


@dataclass(frozen=True)
class Transition:
    action: str
    sources: frozenset[ArticleStatus]
    event: str


APPROVE = Transition("approve", frozenset({S.DRAFT, S.REVIEW}), events.ARTICLE_APPROVED)
REJECT = Transition("reject", frozenset({S.DRAFT, S.REVIEW}), events.ARTICLE_REJECTED)
ARCHIVE = Transition(
    "archive", frozenset({S.PUBLISHED, S.SCHEDULED, S.DRAFT, S.REVIEW}), events.ARTICLE_ARCHIVED
)
RESTORE = Transition("restore", frozenset({S.ARCHIVED}), events.ARTICLE_RESTORED)
TRASH = Transition(
    "trash", frozenset(s for s in ArticleStatus if s is not S.TRASHED), events.ARTICLE_TRASHED
)
RESTORE_FROM_TRASH = Transition(
    "restore-from-trash", frozenset({S.TRASHED}), events.ARTICLE_RESTORED_FROM_TRASH
)


def _check_source(article: models.Article, transition: Transition) -> None:
    if ArticleStatus(article.status) not in transition.sources:
        raise DomainConflict(f"Cannot {transition.action} an article that is {article.status}.")


def _authorize_archive(user: models.User, article: models.Article) -> None:
    if can(user, Perm.EDIT_OTHERS_POSTS):
        return
    if article.created_by == user.id and (can(user, Perm.ARCHIVE_POSTS) or can(user, Perm.EDIT_POSTS)):
        return
    raise Forbidden()


def _authorize_trash(user: models.User, article: models.Article) -> None:
    if not can_on_own_or_all(user, Perm.DELETE_OTHERS_POSTS, Perm.DELETE_POSTS, article.created_by):
        raise Forbidden()


def _finish(
    db: Session,
    user: models.User,
    article: models.Article,
    event: str,
    action: str,
    note: str | None = None,
) -> models.Article:
    article.updated_by = user.id
    log_moderation_action(db, user.id, action, "article", article.id, note=note)
    db.commit()
    invalidate_article_cache(article.slug)
    logger.info(f"Article {article.id}: {action} by user {user.id} -> {article.status}")
    events.dispatch(event, article_id=article.id, actor_id=user.id, status=article.status)
    return get_article(db, article.id)


# ============================================================================
# STATUS TRANSITIONS
# ============================================================================


def approve(db: Session, user: models.User, article_id: int) -> models.Article:
    """Publish now, or schedule when the article carries a future publish date."""
    authorize(user, Perm.APPROVE_POSTS)
    article = get_article(db, article_id)
    _check_source(article, APPROVE)

    now = utcnow()
    target = status_for_publish_date(article.published_at, now)
    if article.published_at is None:
        article.published_at = now
    article.status = target.value
    article.approved_by = user.id
    return _finish(db, user, article, APPROVE.event, "approve_article")


def reject(db: Session, user: models.User, article_id: int, reason: str | None = None) -> models.Article:
    authorize(user, Perm.APPROVE_POSTS)
    article = get_article(db, article_id)
    _check_source(article, REJECT)

    article.status = S.DRAFT.value
    article.approved_by = None
    return _finish(db, user, article, REJECT.event, "reject_article", note=reason)


def archive(db: Session, user: models.User, article_id: int) -> models.Article:
    article = get_article(db, article_id)
    _authorize_archive(user, article)
    _check_source(article, ARCHIVE)

    article.status = S.ARCHIVED.value
    return _finish(db, user, article, ARCHIVE.event, "archive_article")


def restore(db: Session, user: models.User, article_id: int) -> models.Article:
    article = get_article(db, article_id)
    _authorize_archive(user, article)
    _check_source(article, RESTORE)

    article.status = S.PUBLISHED.value
    if article.published_at is None:
        article.published_at = utcnow()
    return _finish(db, user, article, RESTORE.event, "restore_article")


def trash(db: Session, user: models.User, article_id: int) -> models.Article:
    article = get_article(db, article_id)
    _authorize_trash(user, article)
    _check_source(article, TRASH)

    article.status = S.TRASHED.value
    return _finish(db, user, article, TRASH.event, "trash_article")


def restore_from_trash(db: Session, user: models.User, article_id: int) -> models.Article:
    """Back to draft; the article needs a fresh approval before it is public again."""
    article = get_article(db, article_id)
    _authorize_trash(user, article)
    _check_source(article, RESTORE_FROM_TRASH)

    article.status = S.DRAFT.value
    article.approved_by = None
    return _finish(db, user, article, RESTORE_FROM_TRASH.event, "restore_article_from_trash")


def delete(db: Session, user: models.User, article_id: int) -> None:
    """Hard delete; comments, reactions and credits go with the article."""
    article = get_article(db, article_id)
    _authorize_trash(user, article)

    slug = article.slug
    log_moderation_action(db, user.id, "delete_article", "article", article.id)
    db.delete(article)
    db.commit()
    invalidate_article_cache(slug)
    logger.info(f"Article {article_id} deleted by user {user.id}")
    events.dispatch(events.ARTICLE_DELETED, article_id=article_id, actor_id=user.id)


# ============================================================================
# FLAGS
# ============================================================================


def set_featured(db: Session, user: models.User, article_id: int, featured: bool) -> models.Article:
    authorize(user, Perm.FEATURE_POSTS)
    article = get_article(db, article_id)
    article.is_featured = featured
    article.featured_at = utcnow() if featured else None
    event = events.ARTICLE_FEATURED if featured else events.ARTICLE_UNFEATURED
    return _finish(db, user, article, event, "feature_article" if featured else "unfeature_article")


def set_pinned(db: Session, user: models.User, article_id: int, pinned: bool) -> models.Article:
    """Pin or unpin one article. Other pinned articles stay pinned."""
    authorize(user, Perm.FEATURE_POSTS)
    article = get_article(db, article_id)
    article.is_pinned = pinned
    article.pinned_at = utcnow() if pinned else None
    event = events.ARTICLE_PINNED if pinned else events.ARTICLE_UNPINNED
    return _finish(db, user, article, event, "pin_article" if pinned else "unpin_article")


# ============================================================================
# REPORTS
# ============================================================================


def report(db: Session, user: models.User, article: models.Article, reason: str | None = None) -> None:
    """Count a report against an article. The status is left alone."""
    authorize(user, Perm.REPORT_POSTS)
    article.report_count = (article.report_count or 0) + 1
    article.last_reported_at = utcnow()
    article.report_reason = reason
    db.commit()
    invalidate_article_cache(article.slug)
    events.dispatch(events.ARTICLE_REPORTED, article_id=article.id, actor_id=user.id)


def clear_reports(db: Session, user: models.User, article_id: int) -> models.Article:
    authorize(user, Perm.APPROVE_POSTS)
    article = get_article(db, article_id)
    article.report_count = 0
    article.last_reported_at = None
    article.report_reason = None
    return _finish(db, user, article, events.ARTICLE_REPORTS_CLEARED, "clear_article_reports")
