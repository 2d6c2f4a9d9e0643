"""Categories and tags."""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..cache import cache_delete, cache_get, cache_set
from ..errors import NotFound, ValidationFailed
from ..settings import CACHE_TTL_TAXONOMY
from ..utils.slugs import explicit_slug, unique_slug

logger = logging.getLogger(__name__)

CATEGORIES_CACHE_KEY = "categories:all"
TAGS_CACHE_KEY = "tags:all"


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationFailed.for_field("slug", "The slug has already been taken.")


# ============================================================================
# CATEGORIES
# ============================================================================


def list_categories(db: Session) -> list[dict]:
    cached = cache_get(CATEGORIES_CACHE_KEY)
    if isinstance(cached, list):
        return cached
    rows = db.query(models.Category).order_by(models.Category.name, models.Category.id).all()
    data = [schemas.CategoryOut.model_validate(row).model_dump() for row in rows]
    cache_set(CATEGORIES_CACHE_KEY, data, ttl=CACHE_TTL_TAXONOMY)
    return data


def get_category(db: Session, category_id: int) -> models.Category:
    category = db.get(models.Category, category_id)
    if category is None:
        raise NotFound("Category not found.")
    return category


def descendant_ids(db: Session, category_id: int) -> set[int]:
    """Ids of every category below ``category_id`` in the tree."""
    found: set[int] = set()
    frontier = [category_id]
    while frontier:
        children = [
            child_id
            for (child_id,) in db.query(models.Category.id)
            .filter(models.Category.parent_id.in_(frontier))
            .all()
            if child_id not in found
        ]
        found.update(children)
        frontier = children
    return found


def _validate_parent(db: Session, parent_id: int | None, category_id: int | None = None) -> None:
    if parent_id is None:
        return
    if db.get(models.Category, parent_id) is None:
        raise ValidationFailed.for_field("parent_id", "The selected parent category is invalid.")
    if category_id is not None and (
        parent_id == category_id or parent_id in descendant_ids(db, category_id)
    ):
        raise ValidationFailed.for_field(
            "parent_id", "A category cannot be its own parent or a child of its descendants."
        )


def create_category(db: Session, payload: schemas.CategoryCreateRequest) -> models.Category:
    _validate_parent(db, payload.parent_id)
    slug = (
        explicit_slug(db, models.Category, payload.slug)
        if payload.slug
        else unique_slug(db, models.Category, payload.name)
    )
    category = models.Category(
        name=payload.name.strip(), slug=slug, description=payload.description, parent_id=payload.parent_id
    )
    db.add(category)
    _commit(db)
    db.refresh(category)
    cache_delete(CATEGORIES_CACHE_KEY)
    return category


def update_category(db: Session, category_id: int, payload: schemas.CategoryUpdateRequest) -> models.Category:
    category = get_category(db, category_id)
    fields = payload.model_fields_set

    if "parent_id" in fields:
        _validate_parent(db, payload.parent_id, category.id)
        category.parent_id = payload.parent_id
    if payload.name is not None:
        category.name = payload.name.strip()
    if payload.slug:
        category.slug = explicit_slug(db, models.Category, payload.slug, exclude_id=category.id)
    if "description" in fields:
        category.description = payload.description

    _commit(db)
    db.refresh(category)
    cache_delete(CATEGORIES_CACHE_KEY)
    return category


def delete_category(db: Session, category_id: int, delete_children: bool = False) -> None:
    """
    Delete a category.

    Children move up to the deleted category's parent, or are deleted with
    it when ``delete_children`` is set.
    """
    category = get_category(db, category_id)
    if delete_children:
        doomed = descendant_ids(db, category.id)
        if doomed:
            db.query(models.Category).filter(models.Category.id.in_(doomed)).delete(synchronize_session=False)
    else:
        db.query(models.Category).filter(models.Category.parent_id == category.id).update(
            {models.Category.parent_id: category.parent_id}, synchronize_session=False
        )
    db.delete(category)
    db.commit()
    cache_delete(CATEGORIES_CACHE_KEY)
    logger.info(f"Deleted category {category_id} (delete_children={delete_children})")


# ============================================================================
# TAGS
# ============================================================================


def list_tags(db: Session) -> list[dict]:
    cached = cache_get(TAGS_CACHE_KEY)
    if isinstance(cached, list):
        return cached
    rows = db.query(models.Tag).order_by(models.Tag.name, models.Tag.id).all()
    data = [schemas.TagOut.model_validate(row).model_dump() for row in rows]
    cache_set(TAGS_CACHE_KEY, data, ttl=CACHE_TTL_TAXONOMY)
    return data


def get_tag(db: Session, tag_id: int) -> models.Tag:
    tag = db.get(models.Tag, tag_id)
    if tag is None:
        raise NotFound("Tag not found.")
    return tag


def create_tag(db: Session, payload: schemas.TagCreateRequest) -> models.Tag:
    slug = (
        explicit_slug(db, models.Tag, payload.slug)
        if payload.slug
        else unique_slug(db, models.Tag, payload.name)
    )
    tag = models.Tag(name=payload.name.strip(), slug=slug)
    db.add(tag)
    _commit(db)
    db.refresh(tag)
    cache_delete(TAGS_CACHE_KEY)
    return tag


def update_tag(db: Session, tag_id: int, payload: schemas.TagUpdateRequest) -> models.Tag:
    tag = get_tag(db, tag_id)
    if payload.name is not None:
        tag.name = payload.name.strip()
    if payload.slug:
        tag.slug = explicit_slug(db, models.Tag, payload.slug, exclude_id=tag.id)
    _commit(db)
    db.refresh(tag)
    cache_delete(TAGS_CACHE_KEY)
    return tag


def delete_tag(db: Session, tag_id: int) -> None:
    tag = get_tag(db, tag_id)
    db.delete(tag)
    db.commit()
    cache_delete(TAGS_CACHE_KEY)
