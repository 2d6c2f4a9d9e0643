"""Public article endpoints: listing, detail, comments, reactions and reports."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import Actor, get_actor, get_current_user_optional
from ..deps import get_db
from ..permissions import Perm, require_permission
from ..services import article_lifecycle, articles, comments, reactions

router = APIRouter(prefix="/articles", tags=["Articles"])


@router.get("", response_model=schemas.ApiResponse[schemas.ArticleList])
def list_articles(
    search: str | None = None,
    category: str | None = Query(None, description="Category slug"),
    tag: str | None = Query(None, description="Tag slug"),
    author: int | None = Query(None, description="Author user id"),
    is_featured: bool | None = None,
    is_pinned: bool | None = None,
    sort_by: Literal["published_at", "created_at", "title"] = "published_at",
    sort_direction: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.ApiResponse[schemas.ArticleList]:
    """
    Published articles, pinned ones first.
    """
    result = articles.list_published(
        db,
        search=search,
        category=category,
        tag=tag,
        author=author,
        is_featured=is_featured,
        is_pinned=is_pinned,
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


@router.get("/{slug}", response_model=schemas.ApiResponse[schemas.ArticleDetail])
def get_article(
    slug: str,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.ApiResponse[schemas.ArticleDetail]:
    """
    A published article by slug. Anything not published reads as 404.
    """
    return schemas.ApiResponse(data=articles.show_published(db, slug))


# ============================================================================
# COMMENTS
# ============================================================================


@router.get("/{slug}/comments", response_model=schemas.ApiResponse[schemas.CommentList])
def list_article_comments(
    slug: str,
    parent_id: int | None = Query(None, description="List the replies of this comment instead"),
    replies_per_page: int | None = Query(None, ge=0, le=100),
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.ApiResponse[schemas.CommentList]:
    """
    Approved top-level comments, each with a preview of its approved replies.
    """
    article = articles.get_published_by_slug(db, slug)
    if parent_id is not None:
        items, result = comments.list_replies(db, article, parent_id, page, per_page)
    else:
        items, result = comments.list_for_article(db, article, page, per_page, replies_per_page)
    return schemas.ApiResponse(data=schemas.CommentList(comments=items, meta=result.meta))


@router.post(
    "/{slug}/comments",
    response_model=schemas.ApiResponse[schemas.CommentOut],
    status_code=status.HTTP_201_CREATED,
)
def create_article_comment(
    slug: str,
    payload: schemas.CommentCreateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.CREATE_COMMENTS)),
) -> schemas.ApiResponse[schemas.CommentOut]:
    """
    Comment on a published article. The comment waits for moderation.
    """
    article = articles.get_published_by_slug(db, slug)
    comment = comments.create_comment(db, current_user, article, payload)
    return schemas.ApiResponse(
        message="Comment submitted and awaiting moderation.",
        data=schemas.CommentOut.model_validate(comment),
    )


# ============================================================================
# REACTIONS & REPORTS
# ============================================================================


@router.post("/{slug}/like", response_model=schemas.ApiResponse[schemas.ReactionOut])
def like_article(
    slug: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> schemas.ApiResponse[schemas.ReactionOut]:
    """
    Like an article. Authenticated users are keyed by account, anonymous visitors by IP.
    """
    article = articles.get_published_by_slug(db, slug)
    reaction = reactions.like(db, actor, article.id)
    return schemas.ApiResponse(message="Article liked.", data=schemas.ReactionOut.model_validate(reaction))


@router.post("/{slug}/dislike", response_model=schemas.ApiResponse[schemas.ReactionOut])
def dislike_article(
    slug: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> schemas.ApiResponse[schemas.ReactionOut]:
    article = articles.get_published_by_slug(db, slug)
    reaction = reactions.dislike(db, actor, article.id)
    return schemas.ApiResponse(message="Article disliked.", data=schemas.ReactionOut.model_validate(reaction))


@router.post("/{slug}/report", response_model=schemas.ApiResponse[None])
def report_article(
    slug: str,
    payload: schemas.ReportRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.REPORT_POSTS)),
) -> schemas.ApiResponse[None]:
    article = articles.get_published_by_slug(db, slug)
    article_lifecycle.report(db, current_user, article, payload.reason)
    return schemas.ApiResponse(message="Article reported successfully.")
