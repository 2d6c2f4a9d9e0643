from __future__ import annotations

import re
import unicodedata

from sqlalchemy.orm import Session

from ..errors import ValidationFailed

_NON_WORD = re.compile(r"[^a-z0-9]+")


def slugify(value: str, max_length: int = 200) -> str:
    """Lowercase ASCII slug with words joined by single hyphens."""
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = _NON_WORD.sub("-", normalized.lower()).strip("-")
    return slug[:max_length].rstrip("-")


def is_slug_taken(db: Session, model, slug: str, exclude_id: int | None = None) -> bool:
    """
    Check if a slug is already used by a row of ``model``.

    Args:
        db: Database session
        model: Mapped class with ``id`` and ``slug`` columns
        slug: Slug to check
        exclude_id: Optional row id to exclude from the check (for updates)
    """
    query = db.query(model.id).filter(model.slug == slug)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return query.first() is not None


def unique_slug(db: Session, model, source: str, fallback: str = "item", exclude_id: int | None = None) -> str:
    """
    Generate a free slug from ``source``.

    "Hello World" becomes hello-world, then hello-world-2, hello-world-3 and
    so on while earlier ones are taken.
    """
    base = slugify(source) or fallback
    candidate = base
    suffix = 2
    while is_slug_taken(db, model, candidate, exclude_id):
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


def explicit_slug(db: Session, model, slug: str, exclude_id: int | None = None) -> str:
    """Normalize a caller-supplied slug; an empty or taken slug fails validation on ``slug``."""
    value = slugify(slug)
    if not value:
        raise ValidationFailed.for_field("slug", "The slug is invalid.")
    if is_slug_taken(db, model, value, exclude_id):
        raise ValidationFailed.for_field("slug", "The slug has already been taken.")
    return value
