"""Admin notification endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import events, models, schemas
from ..deps import get_db
from ..enums import NotificationType
from ..permissions import Perm, authorize, require_permission
from ..services.notifications import NotificationService

router = APIRouter(prefix="/admin/notifications", tags=["Notifications"])


@router.post(
    "",
    response_model=schemas.ApiResponse[schemas.NotificationOut],
    status_code=status.HTTP_201_CREATED,
)
def send_notification(
    payload: schemas.NotificationCreateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.SEND_NOTIFICATIONS)),
) -> schemas.ApiResponse[schemas.NotificationOut]:
    """
    Create a notification for an audience. Delivery to inboxes happens in the background.
    """
    notification = NotificationService.create_notification(
        db,
        notification_type=payload.type,
        title=payload.title,
        body=payload.body,
        audience=payload.audience,
        user_ids=payload.user_ids,
    )
    events.dispatch(events.NOTIFICATION_CREATED, notification_id=notification.id, actor_id=current_user.id)
    return schemas.ApiResponse(
        message="Notification sent successfully.", data=schemas.NotificationOut.model_validate(notification)
    )


@router.get("", response_model=schemas.ApiResponse[schemas.NotificationList])
def list_notifications(
    search: str | None = None,
    type: NotificationType | None = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.VIEW_NOTIFICATIONS)),
) -> schemas.ApiResponse[schemas.NotificationList]:
    authorize(current_user, Perm.MANAGE_NOTIFICATIONS)
    result = NotificationService.list_notifications(
        db,
        search=search,
        notification_type=type.value if type else None,
        created_after=created_after,
        created_before=created_before,
        page=page,
        per_page=per_page,
    )
    return schemas.ApiResponse(
        data=schemas.NotificationList(
            notifications=[schemas.NotificationOut.model_validate(n) for n in result.items],
            meta=result.meta,
        )
    )
