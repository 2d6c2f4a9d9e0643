"""Article management endpoints: authoring and lifecycle actions."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..deps import get_db
from ..enums import ArticleStatus
from ..permissions import Perm, require_permission
from ..services import article_lifecycle, articles

router = APIRouter(prefix="/admin/articles", tags=["Admin Articles"])


def _detail(db: Session, article: models.Article) -> schemas.ArticleDetail:
    return articles.article_detail(db, article)


@router.get("", response_model=schemas.ApiResponse[schemas.ArticleList])
def list_articles(
    search: str | None = None,
    status: ArticleStatus | None = None,
    author_id: int | None = None,
    category_id: int | None = None,
    tag_id: int | None = None,
    is_featured: bool | None = None,
    is_pinned: bool | None = None,
    has_reports: bool | None = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    published_after: datetime | None = None,
    published_before: datetime | None = None,
    sort_by: Literal["created_at", "updated_at", "published_at", "title"] = "created_at",
    sort_direction: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.VIEW_POSTS)),
) -> schemas.ApiResponse[schemas.ArticleList]:
    """
    Articles in every state. Without ``edit_others_posts`` only your own are listed.
    """
    result = articles.list_for_management(
        db,
        current_user,
        search=search,
        status=status,
        author_id=author_id,
        category_id=category_id,
        tag_id=tag_id,
        is_featured=is_featured,
        is_pinned=is_pinned,
        has_reports=has_reports,
        created_after=created_after,
        created_before=created_before,
        published_after=published_after,
        published_before=published_before,
        sort_by=sort_by,
        sort_direction=sort_direction,
        page=page,
        per_page=per_page,
    )
    return schemas.ApiResponse(
        data=schemas.ArticleList(
            articles=[schemas.ArticleSummary.model_validate(a) for a in result.items],
            meta=result.meta,
        )
    )


@router.get("/{article_id}", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def get_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.VIEW_POSTS)),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    article = articles.get_for_management(db, current_user, article_id)
    return schemas.ApiResponse(data=_detail(db, article))


@router.post(
    "",
    response_model=schemas.ApiResponse[schemas.ArticleDetail],
    status_code=status.HTTP_201_CREATED,
)
def create_article(
    payload: schemas.ArticleCreateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.CREATE_POSTS)),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    """
    Create an article. A ``published_at`` publishes or schedules it and needs ``publish_posts``.
    """
    article = articles.create_article(db, current_user, payload)
    return schemas.ApiResponse(message="Article created successfully.", data=_detail(db, article))


@router.put("/{article_id}", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def update_article(
    article_id: int,
    payload: schemas.ArticleUpdateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    article = articles.update_article(db, current_user, article_id, payload)
    return schemas.ApiResponse(message="Article updated successfully.", data=_detail(db, article))


@router.delete("/{article_id}", response_model=schemas.ApiResponse[None])
def delete_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[None]:
    """
    Permanently delete an article with its comments and reactions.
    """
    article_lifecycle.delete(db, current_user, article_id)
    return schemas.ApiResponse(message="Article deleted successfully.")


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/{article_id}/approve", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def approve_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    """
    Approve a draft or review article: published now, or scheduled for a future date.
    """
    article = article_lifecycle.approve(db, current_user, article_id)
    return schemas.ApiResponse(message="Article approved successfully.", data=_detail(db, article))


@router.post("/{article_id}/reject", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def reject_article(
    article_id: int,
    payload: schemas.ReportRequest | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    reason = payload.reason if payload else None
    article = article_lifecycle.reject(db, current_user, article_id, reason)
    return schemas.ApiResponse(message="Article rejected successfully.", data=_detail(db, article))


@router.post("/{article_id}/archive", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def archive_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    article = article_lifecycle.archive(db, current_user, article_id)
    return schemas.ApiResponse(message="Article archived successfully.", data=_detail(db, article))


@router.post("/{article_id}/restore", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def restore_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    article = article_lifecycle.restore(db, current_user, article_id)
    return schemas.ApiResponse(message="Article restored successfully.", data=_detail(db, article))


@router.post("/{article_id}/trash", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def trash_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    article = article_lifecycle.trash(db, current_user, article_id)
    return schemas.ApiResponse(message="Article moved to trash.", data=_detail(db, article))


@router.post("/{article_id}/restore-from-trash", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def restore_article_from_trash(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    article = article_lifecycle.restore_from_trash(db, current_user, article_id)
    return schemas.ApiResponse(message="Article restored from trash.", data=_detail(db, article))


@router.post("/{article_id}/feature", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def feature_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    article = article_lifecycle.set_featured(db, current_user, article_id, True)
    return schemas.ApiResponse(message="Article featured successfully.", data=_detail(db, article))


@router.post("/{article_id}/unfeature", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def unfeature_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    article = article_lifecycle.set_featured(db, current_user, article_id, False)
    return schemas.ApiResponse(message="Article unfeatured successfully.", data=_detail(db, article))


@router.post("/{article_id}/pin", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def pin_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    article = article_lifecycle.set_pinned(db, current_user, article_id, True)
    return schemas.ApiResponse(message="Article pinned successfully.", data=_detail(db, article))


@router.post("/{article_id}/unpin", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def unpin_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    article = article_lifecycle.set_pinned(db, current_user, article_id, False)
    return schemas.ApiResponse(message="Article unpinned successfully.", data=_detail(db, article))


@router.post("/{article_id}/clear-reports", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def clear_article_reports(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    article = article_lifecycle.clear_reports(db, current_user, article_id)
    return schemas.ApiResponse(message="Article reports cleared.", data=_detail(db, article))
