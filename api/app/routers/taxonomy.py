"""Category and tag endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db
from ..permissions import Perm, require_permission
from ..services import taxonomy

router = APIRouter(tags=["Taxonomy"])


@router.get("/categories", response_model=schemas.ApiResponse[schemas.CategoryList])
def list_categories(db: Session = Depends(get_db)) -> schemas.ApiResponse[schemas.CategoryList]:
    return schemas.ApiResponse(data=schemas.CategoryList(categories=taxonomy.list_categories(db)))


@router.get("/tags", response_model=schemas.ApiResponse[schemas.TagList])
def list_tags(db: Session = Depends(get_db)) -> schemas.ApiResponse[schemas.TagList]:
    return schemas.ApiResponse(data=schemas.TagList(tags=taxonomy.list_tags(db)))


# ============================================================================
# CATEGORY ADMINISTRATION
# ============================================================================


@router.post(
    "/admin/categories",
    response_model=schemas.ApiResponse[schemas.CategoryOut],
    status_code=status.HTTP_201_CREATED,
)
def create_category(
    payload: schemas.CategoryCreateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.CREATE_CATEGORIES)),
) -> schemas.ApiResponse[schemas.CategoryOut]:
    category = taxonomy.create_category(db, payload)
    return schemas.ApiResponse(
        message="Category created successfully.", data=schemas.CategoryOut.model_validate(category)
    )


@router.put("/admin/categories/{category_id}", response_model=schemas.ApiResponse[schemas.CategoryOut])
def update_category(
    category_id: int,
    payload: schemas.CategoryUpdateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.EDIT_CATEGORIES)),
) -> schemas.ApiResponse[schemas.CategoryOut]:
    category = taxonomy.update_category(db, category_id, payload)
    return schemas.ApiResponse(
        message="Category updated successfully.", data=schemas.CategoryOut.model_validate(category)
    )


@router.delete("/admin/categories/{category_id}", response_model=schemas.ApiResponse[None])
def delete_category(
    category_id: int,
    delete_children: bool = False,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.DELETE_CATEGORIES)),
) -> schemas.ApiResponse[None]:
    """
    Delete a category. Children move up to its parent unless ``delete_children`` is set.
    """
    taxonomy.delete_category(db, category_id, delete_children)
    return schemas.ApiResponse(message="Category deleted successfully.")


# ============================================================================
# TAG ADMINISTRATION
# ============================================================================


@router.post(
    "/admin/tags",
    response_model=schemas.ApiResponse[schemas.TagOut],
    status_code=status.HTTP_201_CREATED,
)
def create_tag(
    payload: schemas.TagCreateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.CREATE_TAGS)),
) -> schemas.ApiResponse[schemas.TagOut]:
    tag = taxonomy.create_tag(db, payload)
    return schemas.ApiResponse(message="Tag created successfully.", data=schemas.TagOut.model_validate(tag))


@router.put("/admin/tags/{tag_id}", response_model=schemas.ApiResponse[schemas.TagOut])
def update_tag(
    tag_id: int,
    payload: schemas.TagUpdateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.EDIT_TAGS)),
) -> schemas.ApiResponse[schemas.TagOut]:
    tag = taxonomy.update_tag(db, tag_id, payload)
    return schemas.ApiResponse(message="Tag updated successfully.", data=schemas.TagOut.model_validate(tag))


@router.delete("/admin/tags/{tag_id}", response_model=schemas.ApiResponse[None])
def delete_tag(
    tag_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.DELETE_TAGS)),
) -> schemas.ApiResponse[None]:
    taxonomy.delete_tag(db, tag_id)
    return schemas.ApiResponse(message="Tag deleted successfully.")
