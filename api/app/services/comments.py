"""Comments: threading, moderation and soft deletion."""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Query, Session, selectinload

from .. import events, models, schemas
from ..enums import CommentStatus
from ..errors import DomainConflict, Forbidden, NotFound, ValidationFailed
from ..pagination import PageResult, paginate
from ..permissions import Perm, authorize, can
from ..settings import COMMENT_REPLIES_PER_PAGE, COMMENT_REPLIES_PREVIEW, COMMENTS_PER_PAGE
from ..utils.audit import log_moderation_action
from ..utils.clock import utcnow
from .articles import invalidate_article_cache

logger = logging.getLogger(__name__)

MODERATION_TARGETS = {
    CommentStatus.APPROVED: ("approve_comment", events.COMMENT_APPROVED),
    CommentStatus.REJECTED: ("reject_comment", events.COMMENT_REJECTED),
    CommentStatus.SPAM: ("mark_comment_spam", events.COMMENT_MARKED_SPAM),
}


def _visible_approved(db: Session, article_id: int) -> Query:
    return (
        db.query(models.Comment)
        .options(selectinload(models.Comment.user))
        .filter(
            models.Comment.article_id == article_id,
            models.Comment.status == CommentStatus.APPROVED.value,
            models.Comment.deleted_at.is_(None),
        )
    )


def get_comment(db: Session, comment_id: int, include_deleted: bool = False) -> models.Comment:
    comment = db.get(models.Comment, comment_id)
    if comment is None or (comment.deleted_at is not None and not include_deleted):
        raise NotFound("Comment not found.")
    return comment


# ============================================================================
# CREATION
# ============================================================================


def create_comment(
    db: Session, user: models.User, article: models.Article, payload: schemas.CommentCreateRequest
) -> models.Comment:
    """
    Add a pending comment to a published article.

    Replies attach to a top-level comment of the same article; deeper
    nesting is refused.
    """
    authorize(user, Perm.CREATE_COMMENTS)

    if payload.parent_comment_id is not None:
        parent = db.get(models.Comment, payload.parent_comment_id)
        if parent is None or parent.deleted_at is not None:
            raise ValidationFailed.for_field("parent_comment_id", "The selected parent comment is invalid.")
        if parent.article_id != article.id:
            raise DomainConflict("The parent comment belongs to a different article.")
        if parent.parent_comment_id is not None:
            raise DomainConflict("Replies can only be made to top-level comments.")

    comment = models.Comment(
        article_id=article.id,
        user_id=user.id,
        parent_comment_id=payload.parent_comment_id,
        content=payload.content,
        status=CommentStatus.PENDING.value,
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)

    logger.info(f"User {user.id} commented {comment.id} on article {article.id}")
    events.dispatch(events.COMMENT_CREATED, comment_id=comment.id, article_id=article.id, user_id=user.id)
    return comment


# ============================================================================
# PUBLIC LISTING
# ============================================================================


def _reply_counts(db: Session, parent_ids: list[int]) -> dict[int, int]:
    if not parent_ids:
        return {}
    rows = (
        db.query(models.Comment.parent_comment_id, func.count(models.Comment.id))
        .filter(
            models.Comment.parent_comment_id.in_(parent_ids),
            models.Comment.status == CommentStatus.APPROVED.value,
            models.Comment.deleted_at.is_(None),
        )
        .group_by(models.Comment.parent_comment_id)
        .all()
    )
    return dict(rows)


def list_for_article(
    db: Session,
    article: models.Article,
    page: int = 1,
    per_page: int | None = None,
    replies_per_page: int | None = None,
) -> tuple[list[schemas.CommentOut], PageResult]:
    """Top-level approved comments, each with a bounded preview of its approved replies."""
    if replies_per_page is None:
        replies_per_page = COMMENT_REPLIES_PREVIEW
    replies_per_page = max(0, min(replies_per_page, 100))
    query = (
        _visible_approved(db, article.id)
        .filter(models.Comment.parent_comment_id.is_(None))
        .order_by(models.Comment.created_at.desc(), models.Comment.id.desc())
    )
    result = paginate(query, page, per_page, default=COMMENTS_PER_PAGE)

    parent_ids = [comment.id for comment in result.items]
    counts = _reply_counts(db, parent_ids)

    out: list[schemas.CommentOut] = []
    for comment in result.items:
        item = schemas.CommentOut.model_validate(comment)
        item.replies_count = counts.get(comment.id, 0)
        if replies_per_page and item.replies_count:
            replies = (
                _visible_approved(db, article.id)
                .filter(models.Comment.parent_comment_id == comment.id)
                .order_by(models.Comment.created_at.asc(), models.Comment.id.asc())
                .limit(replies_per_page)
                .all()
            )
            item.replies = [schemas.CommentOut.model_validate(reply) for reply in replies]
        out.append(item)
    return out, result


def list_replies(
    db: Session,
    article: models.Article,
    parent_id: int,
    page: int = 1,
    per_page: int | None = None,
) -> tuple[list[schemas.CommentOut], PageResult]:
    parent = db.get(models.Comment, parent_id)
    if parent is None or parent.article_id != article.id or parent.deleted_at is not None:
        raise NotFound("Comment not found.")
    query = (
        _visible_approved(db, article.id)
        .filter(models.Comment.parent_comment_id == parent_id)
        .order_by(models.Comment.created_at.asc(), models.Comment.id.asc())
    )
    result = paginate(query, page, per_page, default=COMMENT_REPLIES_PER_PAGE)
    return [schemas.CommentOut.model_validate(reply) for reply in result.items], result


def list_own(db: Session, user: models.User, page: int = 1, per_page: int | None = None) -> PageResult:
    query = (
        db.query(models.Comment)
        .options(selectinload(models.Comment.user))
        .filter(models.Comment.user_id == user.id, models.Comment.deleted_at.is_(None))
        .order_by(models.Comment.created_at.desc(), models.Comment.id.desc())
    )
    return paginate(query, page, per_page, default=COMMENTS_PER_PAGE)


# ============================================================================
# OWNER ACTIONS
# ============================================================================


def _owner_may(user: models.User, comment: models.Comment, *permissions: str) -> bool:
    return comment.user_id == user.id and any(can(user, name) for name in permissions)


def update_comment(db: Session, user: models.User, comment_id: int, content: str) -> models.Comment:
    comment = get_comment(db, comment_id)
    if not (
        can(user, Perm.COMMENT_MODERATE)
        or _owner_may(user, comment, Perm.EDIT_OWN_COMMENTS, Perm.EDIT_COMMENTS)
    ):
        raise Forbidden()

    comment.content = content
    db.commit()
    db.refresh(comment)
    return comment


def delete_comment(db: Session, user: models.User, comment_id: int, reason: str | None = None) -> None:
    """Soft delete; the row stays for audit with who, when and why."""
    comment = get_comment(db, comment_id)
    if not (
        can(user, Perm.COMMENT_MODERATE)
        or _owner_may(user, comment, Perm.DELETE_COMMENTS, Perm.DELETE_OWN_COMMENTS)
    ):
        raise Forbidden()

    comment.deleted_at = utcnow()
    comment.deleted_by = user.id
    comment.deleted_reason = reason
    if comment.user_id != user.id:
        log_moderation_action(db, user.id, "delete_comment", "comment", comment.id, note=reason)
    db.commit()

    invalidate_article_cache(comment.article.slug)
    events.dispatch(events.COMMENT_DELETED, comment_id=comment.id, actor_id=user.id)


def report_comment(db: Session, user: models.User, comment_id: int, reason: str | None = None) -> models.Comment:
    authorize(user, Perm.REPORT_COMMENTS)
    comment = get_comment(db, comment_id)
    comment.report_count = (comment.report_count or 0) + 1
    comment.last_reported_at = utcnow()
    comment.report_reason = reason
    db.commit()
    db.refresh(comment)
    events.dispatch(events.COMMENT_REPORTED, comment_id=comment.id, actor_id=user.id)
    return comment


# ============================================================================
# MODERATION
# ============================================================================


def list_for_moderation(
    db: Session,
    status: CommentStatus | None = None,
    search: str | None = None,
    user_id: int | None = None,
    article_id: int | None = None,
    parent_comment_id: int | None = None,
    approved_by: int | None = None,
    has_reports: bool | None = None,
    with_deleted: bool = False,
    page: int = 1,
    per_page: int | None = None,
) -> PageResult:
    query = db.query(models.Comment).options(selectinload(models.Comment.user))
    if not with_deleted:
        query = query.filter(models.Comment.deleted_at.is_(None))
    if status is not None:
        query = query.filter(models.Comment.status == status.value)
    if search:
        query = query.filter(models.Comment.content.ilike(f"%{search.strip()}%"))
    if user_id is not None:
        query = query.filter(models.Comment.user_id == user_id)
    if article_id is not None:
        query = query.filter(models.Comment.article_id == article_id)
    if parent_comment_id is not None:
        query = query.filter(models.Comment.parent_comment_id == parent_comment_id)
    if approved_by is not None:
        query = query.filter(models.Comment.approved_by == approved_by)
    if has_reports is True:
        query = query.filter(models.Comment.report_count > 0)
    elif has_reports is False:
        query = query.filter(models.Comment.report_count == 0)
    query = query.order_by(models.Comment.created_at.desc(), models.Comment.id.desc())
    return paginate(query, page, per_page, default=COMMENTS_PER_PAGE)


def moderate(
    db: Session,
    user: models.User,
    comment_id: int,
    target: CommentStatus,
    admin_note: str | None = None,
) -> models.Comment:
    """Move a comment to approved, rejected or spam."""
    authorize(user, Perm.APPROVE_COMMENTS)
    if target not in MODERATION_TARGETS:
        raise ValidationFailed.for_field("status", "Unsupported moderation status.")
    comment = get_comment(db, comment_id)
    action, event = MODERATION_TARGETS[target]

    comment.status = target.value
    if target == CommentStatus.APPROVED:
        comment.approved_by = user.id
        comment.approved_at = utcnow()
    else:
        comment.approved_by = None
        comment.approved_at = None
    if admin_note is not None:
        comment.admin_note = admin_note
    log_moderation_action(db, user.id, action, "comment", comment.id, note=admin_note)
    db.commit()
    db.refresh(comment)

    invalidate_article_cache(comment.article.slug)
    events.dispatch(event, comment_id=comment.id, actor_id=user.id)
    return comment
