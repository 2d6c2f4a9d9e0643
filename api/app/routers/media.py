"""Media library endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..deps import get_db
from ..enums import MediaType
from ..permissions import Perm, require_permission
from ..services import media as media_service

router = APIRouter(prefix="/media", tags=["Media"])


@router.post(
    "",
    response_model=schemas.ApiResponse[schemas.MediaOut],
    status_code=status.HTTP_201_CREATED,
)
async def upload_media(
    file: UploadFile = File(...),
    name: str | None = Form(None, max_length=255),
    alt_text: str | None = Form(None),
    caption: str | None = Form(None),
    description: str | None = Form(None),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.UPLOAD_MEDIA)),
) -> schemas.ApiResponse[schemas.MediaOut]:
    """
    Upload a file to the media library.

    Images, videos and common document formats are accepted, up to
    MEDIA_MAX_FILE_SIZE bytes. Image dimensions are recorded in metadata.
    """
    file_content = await file.read()
    media = media_service.upload(
        db,
        current_user,
        original_name=file.filename or "upload",
        content_type=file.content_type,
        file_content=file_content,
        name=name,
        alt_text=alt_text,
        caption=caption,
        description=description,
    )
    return schemas.ApiResponse(message="Media uploaded successfully.", data=schemas.MediaOut.model_validate(media))


@router.get("", response_model=schemas.ApiResponse[schemas.MediaList])
def list_media(
    type: MediaType | None = None,
    uploaded_by: int | None = None,
    search: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.VIEW_MEDIA)),
) -> schemas.ApiResponse[schemas.MediaList]:
    """
    Browse the library. Without ``manage_media`` only your own uploads are listed.
    """
    result = media_service.list_media(
        db,
        current_user,
        media_type=type,
        uploaded_by=uploaded_by,
        search=search,
        page=page,
        per_page=per_page,
    )
    return schemas.ApiResponse(
        data=schemas.MediaList(media=[schemas.MediaOut.model_validate(m) for m in result.items], meta=result.meta)
    )


@router.get("/{media_id}", response_model=schemas.ApiResponse[schemas.MediaOut])
def get_media(
    media_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.VIEW_MEDIA)),
) -> schemas.ApiResponse[schemas.MediaOut]:
    media = media_service.get_media(db, current_user, media_id)
    return schemas.ApiResponse(data=schemas.MediaOut.model_validate(media))


@router.put("/{media_id}", response_model=schemas.ApiResponse[schemas.MediaOut])
def update_media(
    media_id: int,
    payload: schemas.MediaUpdateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.MediaOut]:
    media = media_service.update_media(db, current_user, media_id, payload)
    return schemas.ApiResponse(message="Media updated successfully.", data=schemas.MediaOut.model_validate(media))


@router.delete("/{media_id}", response_model=schemas.ApiResponse[None])
def delete_media(
    media_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[None]:
    """
    Delete the file and its library entry. Articles using it as featured media lose the reference.
    """
    media_service.delete_media(db, current_user, media_id)
    return schemas.ApiResponse(message="Media deleted successfully.")
