"""Admin endpoints: user management, roles and permissions."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db
from ..enums import UserStatus
from ..permissions import Perm, require_permission
from ..services import users as user_service

router = APIRouter(prefix="/admin", tags=["Admin"])


def _user_out(user: models.User) -> schemas.UserOut:
    return schemas.UserOut.model_validate(user)


# ============================================================================
# USERS
# ============================================================================


@router.get("/users", response_model=schemas.ApiResponse[schemas.UserList])
def list_users(
    search: str | None = None,
    role_id: int | None = None,
    status: UserStatus | None = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    sort_by: Literal["created_at", "name", "email", "id"] = "created_at",
    sort_direction: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.VIEW_USERS)),
) -> schemas.ApiResponse[schemas.UserList]:
    """
    List users with filters and pagination.
    """
    result = user_service.list_users(
        db,
        search=search,
        role_id=role_id,
        status=status,
        created_after=created_after,
        created_before=created_before,
        sort_by=sort_by,
        sort_direction=sort_direction,
        page=page,
        per_page=per_page,
    )
    return schemas.ApiResponse(
        data=schemas.UserList(users=[_user_out(u) for u in result.items], meta=result.meta)
    )


@router.get("/users/{user_id}", response_model=schemas.ApiResponse[schemas.UserOut])
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.VIEW_USERS)),
) -> schemas.ApiResponse[schemas.UserOut]:
    return schemas.ApiResponse(data=_user_out(user_service.get_user(db, user_id)))


@router.post(
    "/users",
    response_model=schemas.ApiResponse[schemas.UserOut],
    status_code=status.HTTP_201_CREATED,
)
def create_user(
    payload: schemas.AdminUserCreateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.CREATE_USERS)),
) -> schemas.ApiResponse[schemas.UserOut]:
    user = user_service.create_user(db, payload)
    return schemas.ApiResponse(message="User created successfully.", data=_user_out(user))


@router.put("/users/{user_id}", response_model=schemas.ApiResponse[schemas.UserOut])
def update_user(
    user_id: int,
    payload: schemas.AdminUserUpdateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.EDIT_USERS)),
) -> schemas.ApiResponse[schemas.UserOut]:
    """
    Update a user. Changing roles additionally requires ``assign_roles``.
    """
    user = user_service.update_user(db, current_user, user_id, payload)
    return schemas.ApiResponse(message="User updated successfully.", data=_user_out(user))


@router.delete("/users/{user_id}", response_model=schemas.ApiResponse[None])
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.DELETE_USERS)),
) -> schemas.ApiResponse[None]:
    user_service.delete_user(db, current_user, user_id)
    return schemas.ApiResponse(message="User deleted successfully.")


@router.post("/users/{user_id}/ban", response_model=schemas.ApiResponse[schemas.UserOut])
def ban_user(
    user_id: int,
    payload: schemas.UserModerationRequest | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.BAN_USERS)),
) -> schemas.ApiResponse[schemas.UserOut]:
    """
    Ban a user. Every token of the target stops working.
    """
    user = user_service.ban_user(db, current_user, user_id, payload.reason if payload else None)
    return schemas.ApiResponse(message="User banned successfully.", data=_user_out(user))


@router.post("/users/{user_id}/unban", response_model=schemas.ApiResponse[schemas.UserOut])
def unban_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.BAN_USERS)),
) -> schemas.ApiResponse[schemas.UserOut]:
    user = user_service.unban_user(db, current_user, user_id)
    return schemas.ApiResponse(message="User unbanned successfully.", data=_user_out(user))


@router.post("/users/{user_id}/block", response_model=schemas.ApiResponse[schemas.UserOut])
def block_user(
    user_id: int,
    payload: schemas.UserModerationRequest | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.BLOCK_USERS)),
) -> schemas.ApiResponse[schemas.UserOut]:
    user = user_service.block_user(db, current_user, user_id, payload.reason if payload else None)
    return schemas.ApiResponse(message="User blocked successfully.", data=_user_out(user))


@router.post("/users/{user_id}/unblock", response_model=schemas.ApiResponse[schemas.UserOut])
def unblock_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.BLOCK_USERS)),
) -> schemas.ApiResponse[schemas.UserOut]:
    user = user_service.unblock_user(db, current_user, user_id)
    return schemas.ApiResponse(message="User unblocked successfully.", data=_user_out(user))


# ============================================================================
# ROLES & PERMISSIONS
# ============================================================================


@router.get("/roles", response_model=schemas.ApiResponse[schemas.RoleList])
def list_roles(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.MANAGE_ROLES)),
) -> schemas.ApiResponse[schemas.RoleList]:
    return schemas.ApiResponse(data=schemas.RoleList(roles=user_service.list_roles(db)))


@router.get("/permissions", response_model=schemas.ApiResponse[schemas.PermissionList])
def list_permissions(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.MANAGE_ROLES)),
) -> schemas.ApiResponse[schemas.PermissionList]:
    return schemas.ApiResponse(data=schemas.PermissionList(permissions=user_service.list_permissions(db)))


@router.put("/roles/{role_id}/permissions", response_model=schemas.ApiResponse[schemas.RoleOut])
def set_role_permissions(
    role_id: int,
    payload: schemas.RolePermissionsUpdateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.MANAGE_PERMISSIONS)),
) -> schemas.ApiResponse[schemas.RoleOut]:
    """
    Replace a role's permission set. Every cached permission set is invalidated.
    """
    role = user_service.set_role_permissions(db, current_user, role_id, payload.permissions)
    return schemas.ApiResponse(
        message="Role permissions updated successfully.", data=schemas.RoleOut.model_validate(role)
    )
