"""Media library: uploads, metadata edits and deletion."""

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from .. import events, media_vault, models, schemas
from ..enums import MediaType
from ..errors import NotFound, ValidationFailed
from ..pagination import PageResult, paginate
from ..permissions import Perm, authorize_own_or_all, can
from ..utils.clock import utcnow

logger = logging.getLogger(__name__)


def upload(
    db: Session,
    user: models.User,
    original_name: str,
    content_type: str | None,
    file_content: bytes,
    name: str | None = None,
    alt_text: str | None = None,
    caption: str | None = None,
    description: str | None = None,
) -> models.Media:
    """
    Store an uploaded file and record it in the library.

    Raises:
        ValidationFailed: If the file type or size is not accepted
    """
    mime_type = media_vault.normalize_mime_type(content_type)
    try:
        media_vault.validate_upload(mime_type, len(file_content))
    except ValueError as e:
        raise ValidationFailed.for_field("file", str(e))

    now = utcnow()
    file_name = media_vault.build_file_name(original_name, mime_type, now)
    relative_path = media_vault.relative_path_for(file_name, now)

    media = models.Media(
        name=(name or original_name or file_name).strip()[:255],
        file_name=file_name,
        mime_type=mime_type,
        disk=media_vault.DISK,
        path=relative_path,
        url=media_vault.public_url(relative_path),
        size=len(file_content),
        type=media_vault.classify(mime_type).value,
        alt_text=alt_text,
        caption=caption,
        description=description,
        metadata_=media_vault.image_metadata(file_content, mime_type),
        uploaded_by=user.id,
    )

    media_vault.save_file(relative_path, file_content)
    db.add(media)
    try:
        db.commit()
    except Exception:
        db.rollback()
        media_vault.delete_file(relative_path)
        raise
    db.refresh(media)

    logger.info(f"User {user.id} uploaded media {media.id} ({mime_type}, {media.size} bytes)")
    events.dispatch(events.MEDIA_UPLOADED, media_id=media.id, user_id=user.id)
    return media


def _visible_query(db: Session, user: models.User):
    query = db.query(models.Media).options(selectinload(models.Media.uploader))
    if not can(user, Perm.MANAGE_MEDIA):
        query = query.filter(models.Media.uploaded_by == user.id)
    return query


def list_media(
    db: Session,
    user: models.User,
    media_type: MediaType | None = None,
    uploaded_by: int | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int | None = None,
) -> PageResult:
    query = _visible_query(db, user)
    if media_type is not None:
        query = query.filter(models.Media.type == media_type.value)
    if uploaded_by is not None:
        query = query.filter(models.Media.uploaded_by == uploaded_by)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                models.Media.name.ilike(term),
                models.Media.file_name.ilike(term),
                models.Media.alt_text.ilike(term),
            )
        )
    query = query.order_by(models.Media.created_at.desc(), models.Media.id.desc())
    return paginate(query, page, per_page)


def get_media(db: Session, user: models.User, media_id: int) -> models.Media:
    media = _visible_query(db, user).filter(models.Media.id == media_id).first()
    if media is None:
        raise NotFound("Media not found.")
    return media


def _load(db: Session, media_id: int) -> models.Media:
    media = db.get(models.Media, media_id)
    if media is None:
        raise NotFound("Media not found.")
    return media


def update_media(db: Session, user: models.User, media_id: int, payload: schemas.MediaUpdateRequest) -> models.Media:
    media = _load(db, media_id)
    authorize_own_or_all(user, Perm.MANAGE_MEDIA, Perm.EDIT_MEDIA, media.uploaded_by)

    for field in ("name", "alt_text", "caption", "description"):
        if field in payload.model_fields_set:
            value = getattr(payload, field)
            if field == "name" and value is None:
                continue
            setattr(media, field, value)
    db.commit()
    db.refresh(media)
    return media


def delete_media(db: Session, user: models.User, media_id: int) -> None:
    """Remove the row and the stored file together; the row survives if the file cannot be removed."""
    media = _load(db, media_id)
    authorize_own_or_all(user, Perm.MANAGE_MEDIA, Perm.DELETE_MEDIA, media.uploaded_by)

    db.query(models.Article).filter(models.Article.featured_media_id == media.id).update(
        {models.Article.featured_media_id: None}, synchronize_session=False
    )
    db.delete(media)
    try:
        db.flush()
        media_vault.delete_file(media.path)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"User {user.id} deleted media {media_id}")
