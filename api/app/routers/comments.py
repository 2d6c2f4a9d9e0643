"""Comment endpoints: owner edits, soft deletion, reports and moderation."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..deps import get_db
from ..enums import CommentStatus
from ..permissions import Perm, require_permission
from ..services import comments as comment_service

router = APIRouter(tags=["Comments"])


@router.put("/comments/{comment_id}", response_model=schemas.ApiResponse[schemas.CommentOut])
def update_comment(
    comment_id: int,
    payload: schemas.CommentUpdateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.CommentOut]:
    comment = comment_service.update_comment(db, current_user, comment_id, payload.content)
    return schemas.ApiResponse(
        message="Comment updated successfully.", data=schemas.CommentOut.model_validate(comment)
    )


@router.delete("/comments/{comment_id}", response_model=schemas.ApiResponse[None])
def delete_comment(
    comment_id: int,
    payload: schemas.CommentDeleteRequest | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[None]:
    """
    Soft delete a comment. The row is kept with who deleted it, when and why.
    """
    comment_service.delete_comment(db, current_user, comment_id, payload.reason if payload else None)
    return schemas.ApiResponse(message="Comment deleted successfully.")


@router.post("/comments/{comment_id}/report", response_model=schemas.ApiResponse[None])
def report_comment(
    comment_id: int,
    payload: schemas.ReportRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.REPORT_COMMENTS)),
) -> schemas.ApiResponse[None]:
    comment_service.report_comment(db, current_user, comment_id, payload.reason)
    return schemas.ApiResponse(message="Comment reported successfully.")


# ============================================================================
# MODERATION
# ============================================================================


@router.get("/admin/comments", response_model=schemas.ApiResponse[schemas.CommentAdminList])
def list_comments_for_moderation(
    status: CommentStatus | None = None,
    search: str | None = None,
    user_id: int | None = None,
    article_id: int | None = None,
    parent_comment_id: int | None = None,
    approved_by: int | None = None,
    has_reports: bool | None = None,
    with_deleted: bool = False,
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.COMMENT_MODERATE)),
) -> schemas.ApiResponse[schemas.CommentAdminList]:
    result = comment_service.list_for_moderation(
        db,
        status=status,
        search=search,
        user_id=user_id,
        article_id=article_id,
        parent_comment_id=parent_comment_id,
        approved_by=approved_by,
        has_reports=has_reports,
        with_deleted=with_deleted,
        page=page,
        per_page=per_page,
    )
    return schemas.ApiResponse(
        data=schemas.CommentAdminList(
            comments=[schemas.CommentAdminOut.model_validate(c) for c in result.items],
            meta=result.meta,
        )
    )


def _moderate(
    db: Session,
    user: models.User,
    comment_id: int,
    target: CommentStatus,
    payload: schemas.CommentModerationRequest | None,
    message: str,
) -> schemas.ApiResponse[schemas.CommentAdminOut]:
    comment = comment_service.moderate(
        db, user, comment_id, target, payload.admin_note if payload else None
    )
    return schemas.ApiResponse(message=message, data=schemas.CommentAdminOut.model_validate(comment))


@router.post("/admin/comments/{comment_id}/approve", response_model=schemas.ApiResponse[schemas.CommentAdminOut])
def approve_comment(
    comment_id: int,
    payload: schemas.CommentModerationRequest | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.APPROVE_COMMENTS)),
) -> schemas.ApiResponse[schemas.CommentAdminOut]:
    return _moderate(db, current_user, comment_id, CommentStatus.APPROVED, payload, "Comment approved.")


@router.post("/admin/comments/{comment_id}/reject", response_model=schemas.ApiResponse[schemas.CommentAdminOut])
def reject_comment(
    comment_id: int,
    payload: schemas.CommentModerationRequest | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.APPROVE_COMMENTS)),
) -> schemas.ApiResponse[schemas.CommentAdminOut]:
    return _moderate(db, current_user, comment_id, CommentStatus.REJECTED, payload, "Comment rejected.")


@router.post("/admin/comments/{comment_id}/spam", response_model=schemas.ApiResponse[schemas.CommentAdminOut])
def mark_comment_spam(
    comment_id: int,
    payload: schemas.CommentModerationRequest | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.APPROVE_COMMENTS)),
) -> schemas.ApiResponse[schemas.CommentAdminOut]:
    return _moderate(db, current_user, comment_id, CommentStatus.SPAM, payload, "Comment marked as spam.")
