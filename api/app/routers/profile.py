"""Current user endpoints: profile, own comments and notification inbox."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..deps import get_db
from ..enums import NotificationType
from ..permissions import Perm, get_user_permissions, require_permission
from ..services import comments as comment_service
from ..services import users as user_service
from ..services.notifications import NotificationService

router = APIRouter(prefix="/me", tags=["Profile"])


def _me(user: models.User) -> schemas.MeOut:
    me = schemas.MeOut.model_validate(user)
    me.permissions = sorted(get_user_permissions(user))
    return me


@router.get("", response_model=schemas.ApiResponse[schemas.MeOut])
def get_me(current_user: models.User = Depends(get_current_user)) -> schemas.ApiResponse[schemas.MeOut]:
    """
    Current user with roles and effective permission names.
    """
    return schemas.ApiResponse(data=_me(current_user))


@router.put("", response_model=schemas.ApiResponse[schemas.MeOut])
def update_me(
    payload: schemas.ProfileUpdateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.EDIT_PROFILE)),
) -> schemas.ApiResponse[schemas.MeOut]:
    user = user_service.update_profile(db, current_user, payload)
    return schemas.ApiResponse(message="Profile updated successfully.", data=_me(user))


@router.get("/comments", response_model=schemas.ApiResponse[schemas.CommentList])
def list_my_comments(
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[schemas.CommentList]:
    """
    Own comments in any moderation state, newest first.
    """
    result = comment_service.list_own(db, current_user, page, per_page)
    return schemas.ApiResponse(
        data=schemas.CommentList(
            comments=[schemas.CommentOut.model_validate(c) for c in result.items],
            meta=result.meta,
        )
    )


# ============================================================================
# NOTIFICATION INBOX
# ============================================================================


@router.get("/notifications", response_model=schemas.ApiResponse[schemas.UserNotificationList])
def list_my_notifications(
    is_read: bool | None = None,
    type: NotificationType | None = None,
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.READ_NOTIFICATIONS)),
) -> schemas.ApiResponse[schemas.UserNotificationList]:
    result = NotificationService.inbox(
        db,
        current_user,
        is_read=is_read,
        notification_type=type.value if type else None,
        page=page,
        per_page=per_page,
    )
    return schemas.ApiResponse(
        data=schemas.UserNotificationList(
            notifications=[schemas.UserNotificationOut.model_validate(n) for n in result.items],
            meta=result.meta,
        )
    )


@router.get("/notifications/unread-count", response_model=schemas.ApiResponse[schemas.UnreadCount])
def unread_notifications_count(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.READ_NOTIFICATIONS)),
) -> schemas.ApiResponse[schemas.UnreadCount]:
    count = NotificationService.unread_count(db, current_user)
    return schemas.ApiResponse(data=schemas.UnreadCount(count=count))


@router.post("/notifications/read-all", response_model=schemas.ApiResponse[schemas.MarkedCount])
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.READ_NOTIFICATIONS)),
) -> schemas.ApiResponse[schemas.MarkedCount]:
    updated = NotificationService.mark_all_read(db, current_user)
    return schemas.ApiResponse(
        message="All notifications marked as read.", data=schemas.MarkedCount(updated=updated)
    )


@router.post(
    "/notifications/{user_notification_id}/read",
    response_model=schemas.ApiResponse[schemas.UserNotificationOut],
)
def mark_notification_read(
    user_notification_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.READ_NOTIFICATIONS)),
) -> schemas.ApiResponse[schemas.UserNotificationOut]:
    entry = NotificationService.mark_read(db, current_user, user_notification_id)
    return schemas.ApiResponse(
        message="Notification marked as read.", data=schemas.UserNotificationOut.model_validate(entry)
    )


@router.delete("/notifications/{user_notification_id}", response_model=schemas.ApiResponse[None])
def delete_notification(
    user_notification_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.READ_NOTIFICATIONS)),
) -> schemas.ApiResponse[None]:
    NotificationService.delete(db, current_user, user_notification_id)
    return schemas.ApiResponse(message="Notification deleted.")
