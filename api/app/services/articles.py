"""Article authoring, listing and the cached public detail view."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, selectinload

from .. import events, models, schemas
from ..cache import cache_delete, cache_get, cache_set
from ..enums import ArticleAuthorRole, ArticleStatus, CommentStatus, ReactionType
from ..errors import DomainConflict, NotFound, ValidationFailed
from ..pagination import PageResult, paginate
from ..permissions import Perm, authorize, authorize_own_or_all, can
from ..settings import CACHE_TTL_ARTICLE
from ..utils.clock import to_naive_utc, utcnow
from ..utils.slugs import explicit_slug, unique_slug

logger = logging.getLogger(__name__)

CONTENT_FIELDS = (
    "subtitle",
    "excerpt",
    "content_html",
    "meta_title",
    "meta_description",
)

SORT_COLUMNS = {
    "published_at": models.Article.published_at,
    "created_at": models.Article.created_at,
    "updated_at": models.Article.updated_at,
    "title": models.Article.title,
}


def _with_relations(query: Query) -> Query:
    return query.options(
        selectinload(models.Article.creator),
        selectinload(models.Article.approver),
        selectinload(models.Article.featured_media),
        selectinload(models.Article.categories),
        selectinload(models.Article.tags),
        selectinload(models.Article.author_links).selectinload(models.ArticleAuthor.user),
    )


def status_for_publish_date(published_at: datetime | None, now: datetime | None = None) -> ArticleStatus:
    """Future date schedules, past or present publishes."""
    if published_at is None:
        return ArticleStatus.PUBLISHED
    now = now or utcnow()
    return ArticleStatus.SCHEDULED if published_at > now else ArticleStatus.PUBLISHED


# ============================================================================
# CACHE
# ============================================================================


def _slug_cache_key(slug: str) -> str:
    return f"article:slug:{slug}"


def invalidate_article_cache(*slugs: str | None) -> None:
    keys = [_slug_cache_key(slug) for slug in slugs if slug]
    if keys:
        cache_delete(*keys)


# ============================================================================
# LOOKUPS
# ============================================================================


def get_article(db: Session, article_id: int) -> models.Article:
    article = _with_relations(db.query(models.Article)).filter(models.Article.id == article_id).first()
    if article is None:
        raise NotFound("Article not found.")
    return article


def get_published_by_slug(db: Session, slug: str) -> models.Article:
    """Published, visible article; anything else is reported as missing."""
    article = (
        db.query(models.Article)
        .filter(
            models.Article.slug == slug,
            models.Article.status == ArticleStatus.PUBLISHED.value,
            models.Article.published_at.isnot(None),
            models.Article.published_at <= utcnow(),
        )
        .first()
    )
    if article is None:
        raise NotFound("Article not found.")
    return article


def reaction_counts(db: Session, article_id: int) -> dict[str, int]:
    rows = (
        db.query(models.ArticleReaction.type, func.count(models.ArticleReaction.id))
        .filter(models.ArticleReaction.article_id == article_id)
        .group_by(models.ArticleReaction.type)
        .all()
    )
    counts = {reaction_type: count for reaction_type, count in rows}
    return {
        "likes_count": counts.get(ReactionType.LIKE.value, 0),
        "dislikes_count": counts.get(ReactionType.DISLIKE.value, 0),
    }


def approved_comment_count(db: Session, article_id: int) -> int:
    return (
        db.query(models.Comment)
        .filter(
            models.Comment.article_id == article_id,
            models.Comment.status == CommentStatus.APPROVED.value,
            models.Comment.deleted_at.is_(None),
        )
        .count()
    )


def article_detail(db: Session, article: models.Article) -> schemas.ArticleDetail:
    detail = schemas.ArticleDetail.model_validate(article)
    counts = reaction_counts(db, article.id)
    detail.likes_count = counts["likes_count"]
    detail.dislikes_count = counts["dislikes_count"]
    detail.comments_count = approved_comment_count(db, article.id)
    return detail


def show_published(db: Session, slug: str) -> schemas.ArticleDetail:
    """Public article by slug, served from cache when possible."""
    key = _slug_cache_key(slug)
    cached = cache_get(key)
    if isinstance(cached, dict):
        return schemas.ArticleDetail.model_validate(cached)

    article = get_published_by_slug(db, slug)
    article = get_article(db, article.id)
    detail = article_detail(db, article)
    cache_set(key, detail.model_dump(mode="json"), ttl=CACHE_TTL_ARTICLE)
    return detail


# ============================================================================
# LISTING
# ============================================================================


def _apply_search(query: Query, search: str | None) -> Query:
    if not search:
        return query
    term = f"%{search.strip()}%"
    return query.filter(
        or_(
            models.Article.title.ilike(term),
            models.Article.subtitle.ilike(term),
            models.Article.excerpt.ilike(term),
            models.Article.content_markdown.ilike(term),
        )
    )


def _apply_sort(query: Query, sort_by: str | None, sort_direction: str | None, default: str) -> Query:
    column = SORT_COLUMNS.get(sort_by or default, SORT_COLUMNS[default])
    order = column.asc() if sort_direction == "asc" else column.desc()
    return query.order_by(order, models.Article.id.desc())


def list_published(
    db: Session,
    search: str | None = None,
    category: str | None = None,
    tag: str | None = None,
    author: int | None = None,
    is_featured: bool | None = None,
    is_pinned: bool | None = None,
    sort_by: str | None = None,
    sort_direction: str | None = "desc",
    page: int = 1,
    per_page: int | None = None,
) -> PageResult:
    query = _with_relations(db.query(models.Article)).filter(
        models.Article.status == ArticleStatus.PUBLISHED.value,
        models.Article.published_at.isnot(None),
        models.Article.published_at <= utcnow(),
    )
    query = _apply_search(query, search)
    if category:
        query = query.filter(models.Article.categories.any(models.Category.slug == category))
    if tag:
        query = query.filter(models.Article.tags.any(models.Tag.slug == tag))
    if author is not None:
        query = query.filter(
            or_(
                models.Article.created_by == author,
                models.Article.author_links.any(models.ArticleAuthor.user_id == author),
            )
        )
    if is_featured is not None:
        query = query.filter(models.Article.is_featured.is_(is_featured))
    if is_pinned is not None:
        query = query.filter(models.Article.is_pinned.is_(is_pinned))

    # Pinned articles lead every page
    query = query.order_by(models.Article.is_pinned.desc())
    query = _apply_sort(query, sort_by, sort_direction, "published_at")
    return paginate(query, page, per_page)


def _visible_to(query: Query, user: models.User) -> Query:
    if can(user, Perm.EDIT_OTHERS_POSTS):
        return query
    return query.filter(models.Article.created_by == user.id)


def list_for_management(
    db: Session,
    user: models.User,
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
    sort_by: str | None = None,
    sort_direction: str | None = "desc",
    page: int = 1,
    per_page: int | None = None,
) -> PageResult:
    query = _visible_to(_with_relations(db.query(models.Article)), user)
    query = _apply_search(query, search)
    if status is not None:
        query = query.filter(models.Article.status == status.value)
    if author_id is not None:
        query = query.filter(
            or_(
                models.Article.created_by == author_id,
                models.Article.author_links.any(models.ArticleAuthor.user_id == author_id),
            )
        )
    if category_id is not None:
        query = query.filter(models.Article.categories.any(models.Category.id == category_id))
    if tag_id is not None:
        query = query.filter(models.Article.tags.any(models.Tag.id == tag_id))
    if is_featured is not None:
        query = query.filter(models.Article.is_featured.is_(is_featured))
    if is_pinned is not None:
        query = query.filter(models.Article.is_pinned.is_(is_pinned))
    if has_reports is True:
        query = query.filter(models.Article.report_count > 0)
    elif has_reports is False:
        query = query.filter(models.Article.report_count == 0)
    if created_after:
        query = query.filter(models.Article.created_at >= to_naive_utc(created_after))
    if created_before:
        query = query.filter(models.Article.created_at <= to_naive_utc(created_before))
    if published_after:
        query = query.filter(models.Article.published_at >= to_naive_utc(published_after))
    if published_before:
        query = query.filter(models.Article.published_at <= to_naive_utc(published_before))

    query = _apply_sort(query, sort_by, sort_direction, "created_at")
    return paginate(query, page, per_page)


def get_for_management(db: Session, user: models.User, article_id: int) -> models.Article:
    """Article as seen in the management area; others' articles are hidden without ``edit_others_posts``."""
    article = get_article(db, article_id)
    if article.created_by != user.id and not can(user, Perm.EDIT_OTHERS_POSTS):
        raise NotFound("Article not found.")
    return article


# ============================================================================
# AUTHORING
# ============================================================================


def _load_all(db: Session, model, ids: list[int], field: str, label: str) -> list:
    wanted = list(dict.fromkeys(ids))
    if not wanted:
        return []
    rows = db.query(model).filter(model.id.in_(wanted)).all()
    if len(rows) != len(wanted):
        raise ValidationFailed.for_field(field, f"One or more selected {label} are invalid.")
    by_id = {row.id: row for row in rows}
    return [by_id[i] for i in wanted]


def _author_links(
    db: Session, authors: list[schemas.ArticleAuthorInput] | None, creator: models.User
) -> list[models.ArticleAuthor]:
    if not authors:
        return [models.ArticleAuthor(user_id=creator.id, role=ArticleAuthorRole.MAIN.value)]

    roles: dict[int, str] = {}
    for entry in authors:
        roles[entry.user_id] = entry.role.value
    _load_all(db, models.User, list(roles), "authors", "authors")
    return [models.ArticleAuthor(user_id=user_id, role=role) for user_id, role in roles.items()]


def _validate_featured_media(db: Session, media_id: int | None) -> None:
    if media_id is not None and db.get(models.Media, media_id) is None:
        raise ValidationFailed.for_field("featured_media_id", "The selected featured media is invalid.")


def create_article(db: Session, user: models.User, payload: schemas.ArticleCreateRequest) -> models.Article:
    """
    Create an article with its taxonomy and author credits in one transaction.

    Without ``published_at`` the article starts as a draft. With one, the
    creator needs ``publish_posts`` and counts as the approver.
    """
    authorize(user, Perm.CREATE_POSTS)
    published_at = to_naive_utc(payload.published_at)
    if published_at is not None:
        authorize(user, Perm.PUBLISH_POSTS)

    status = ArticleStatus.DRAFT if published_at is None else status_for_publish_date(published_at)
    slug = (
        explicit_slug(db, models.Article, payload.slug)
        if payload.slug
        else unique_slug(db, models.Article, payload.title, fallback="article")
    )
    _validate_featured_media(db, payload.featured_media_id)

    article = models.Article(
        slug=slug,
        title=payload.title.strip(),
        content_markdown=payload.content_markdown,
        featured_media_id=payload.featured_media_id,
        status=status.value,
        published_at=published_at,
        created_by=user.id,
        updated_by=user.id,
        approved_by=user.id if status in (ArticleStatus.PUBLISHED, ArticleStatus.SCHEDULED) else None,
    )
    for field in CONTENT_FIELDS:
        setattr(article, field, getattr(payload, field))

    article.categories = _load_all(db, models.Category, payload.category_ids or [], "category_ids", "categories")
    article.tags = _load_all(db, models.Tag, payload.tag_ids or [], "tag_ids", "tags")
    article.author_links = _author_links(db, payload.authors, user)

    db.add(article)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationFailed.for_field("slug", "The slug has already been taken.")

    logger.info(f"User {user.id} created article {article.id} ({article.status})")
    events.dispatch(events.ARTICLE_CREATED, article_id=article.id, actor_id=user.id, status=article.status)
    return get_article(db, article.id)


def update_article(
    db: Session, user: models.User, article_id: int, payload: schemas.ArticleUpdateRequest
) -> models.Article:
    """
    Update content, taxonomy and credits of an article.

    Status only changes through ``submit_for_review`` (draft to review).
    """
    article = get_article(db, article_id)
    authorize_own_or_all(user, Perm.EDIT_OTHERS_POSTS, Perm.EDIT_POSTS, article.created_by)
    old_slug = article.slug
    fields = payload.model_fields_set

    if payload.submit_for_review and article.status != ArticleStatus.DRAFT.value:
        raise DomainConflict("Only draft articles can be submitted for review.")

    if "published_at" in fields:
        if article.status not in (ArticleStatus.DRAFT.value, ArticleStatus.REVIEW.value):
            raise DomainConflict("The publish date can only be changed before approval.")
        if payload.published_at is not None:
            authorize(user, Perm.PUBLISH_POSTS)
        article.published_at = to_naive_utc(payload.published_at)

    if payload.slug:
        article.slug = explicit_slug(db, models.Article, payload.slug, exclude_id=article.id)
    if payload.title is not None:
        article.title = payload.title.strip()
    if payload.content_markdown is not None:
        article.content_markdown = payload.content_markdown
    for field in CONTENT_FIELDS:
        if field in fields:
            setattr(article, field, getattr(payload, field))
    if "featured_media_id" in fields:
        _validate_featured_media(db, payload.featured_media_id)
        article.featured_media_id = payload.featured_media_id

    if payload.category_ids is not None:
        article.categories = _load_all(db, models.Category, payload.category_ids, "category_ids", "categories")
    if payload.tag_ids is not None:
        article.tags = _load_all(db, models.Tag, payload.tag_ids, "tag_ids", "tags")
    if payload.authors is not None:
        article.author_links = _author_links(db, payload.authors, user)

    if payload.submit_for_review:
        article.status = ArticleStatus.REVIEW.value

    article.updated_by = user.id
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationFailed.for_field("slug", "The slug has already been taken.")

    invalidate_article_cache(old_slug, article.slug)
    return get_article(db, article.id)


def publish_due_articles(db: Session) -> list[int]:
    """Move scheduled articles whose publish date has passed to published."""
    due = (
        db.query(models.Article)
        .filter(
            models.Article.status == ArticleStatus.SCHEDULED.value,
            models.Article.published_at <= utcnow(),
        )
        .all()
    )
    for article in due:
        article.status = ArticleStatus.PUBLISHED.value
    db.commit()

    published = [article.id for article in due]
    for article in due:
        invalidate_article_cache(article.slug)
        events.dispatch(events.ARTICLE_PUBLISHED, article_id=article.id, status=article.status)
    if published:
        logger.info(f"Published {len(published)} scheduled articles: {published}")
    return published
