"""Service for creating, distributing and reading notifications."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import String, cast
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..enums import AudienceType, NotificationAudience, NotificationType, RoleName
from ..errors import Forbidden, NotFound
from ..pagination import PageResult, paginate
from ..utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


def _audience_rows(audience: NotificationAudience, user_ids: list[int] | None) -> list[models.NotificationAudience]:
    if audience == NotificationAudience.ALL_USERS:
        return [models.NotificationAudience(audience_type=AudienceType.ALL.value, audience_value=None)]
    if audience == NotificationAudience.ADMINISTRATORS:
        return [
            models.NotificationAudience(
                audience_type=AudienceType.ROLE.value, audience_value=RoleName.ADMINISTRATOR.value
            )
        ]
    return [
        models.NotificationAudience(audience_type=AudienceType.USER.value, audience_value=str(user_id))
        for user_id in dict.fromkeys(user_ids or [])
    ]


class NotificationService:
    """Service for creating and managing notifications."""

    @staticmethod
    def create_notification(
        db: Session,
        notification_type: NotificationType | str,
        title: str,
        body: str,
        audience: NotificationAudience = NotificationAudience.ALL_USERS,
        user_ids: list[int] | None = None,
        source_key: str | None = None,
    ) -> models.Notification:
        """Persist a notification with its audience rows in one transaction."""
        notification = models.Notification(
            type=NotificationType(notification_type).value,
            message={"title": title, "body": body},
            source_key=source_key,
        )
        notification.audiences = _audience_rows(NotificationAudience(audience), user_ids)
        db.add(notification)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(notification)
        logger.info(f"Created notification {notification.id} ({notification.type}) for {audience}")
        return notification

    @staticmethod
    def notify_once(
        db: Session,
        source_key: str,
        notification_type: NotificationType | str,
        title: str,
        body: str,
        audience: NotificationAudience = NotificationAudience.ALL_USERS,
        user_ids: list[int] | None = None,
    ) -> models.Notification:
        """
        Create and distribute the notification for ``source_key`` at most once.

        A second call with the same key (an event listener being retried)
        reuses the stored notification and only fills in missing inbox rows.
        """
        notification = (
            db.query(models.Notification).filter(models.Notification.source_key == source_key).first()
        )
        if notification is None:
            try:
                notification = NotificationService.create_notification(
                    db,
                    notification_type=notification_type,
                    title=title,
                    body=body,
                    audience=audience,
                    user_ids=user_ids,
                    source_key=source_key,
                )
            except IntegrityError:
                notification = (
                    db.query(models.Notification).filter(models.Notification.source_key == source_key).one()
                )
        else:
            logger.info(f"Notification {notification.id} already exists for {source_key}")

        NotificationService.distribute(db, notification.id)
        return notification

    @staticmethod
    def recipient_ids(db: Session, notification: models.Notification) -> set[int]:
        """Resolve a notification's audience rows to user ids."""
        recipients: set[int] = set()
        for row in notification.audiences:
            if row.audience_type == AudienceType.ALL.value:
                recipients.update(user_id for (user_id,) in db.query(models.User.id).all())
            elif row.audience_type == AudienceType.ROLE.value:
                query = (
                    db.query(models.User.id)
                    .join(models.User.roles)
                    .filter(models.Role.name == row.audience_value)
                )
                recipients.update(user_id for (user_id,) in query.all())
            elif row.audience_type == AudienceType.USER.value:
                try:
                    recipients.add(int(row.audience_value))
                except (TypeError, ValueError):
                    logger.warning(f"Skipping malformed audience value {row.audience_value!r}")
        if not recipients:
            return recipients
        existing = {
            user_id
            for (user_id,) in db.query(models.User.id).filter(models.User.id.in_(recipients)).all()
        }
        return existing

    @staticmethod
    def distribute(db: Session, notification_id: int) -> int:
        """
        Fan a notification out into UserNotification rows.

        Users that already hold a row are skipped, so running this twice
        creates nothing new the second time.

        Returns:
            Number of rows created
        """
        notification = db.get(models.Notification, notification_id)
        if notification is None:
            logger.warning(f"Notification {notification_id} vanished before distribution")
            return 0

        recipients = NotificationService.recipient_ids(db, notification)
        already = {
            user_id
            for (user_id,) in db.query(models.UserNotification.user_id)
            .filter(models.UserNotification.notification_id == notification_id)
            .all()
        }
        pending = sorted(recipients - already)
        if not pending:
            return 0

        db.add_all(
            models.UserNotification(notification_id=notification_id, user_id=user_id)
            for user_id in pending
        )
        try:
            db.commit()
        except IntegrityError:
            # A concurrent run inserted some of the rows; add the rest one at a time.
            db.rollback()
            created = 0
            for user_id in pending:
                db.add(models.UserNotification(notification_id=notification_id, user_id=user_id))
                try:
                    db.commit()
                    created += 1
                except IntegrityError:
                    db.rollback()
            logger.info(f"Distributed notification {notification_id} to {created} users after retry")
            return created

        logger.info(f"Distributed notification {notification_id} to {len(pending)} users")
        return len(pending)

    @staticmethod
    def list_notifications(
        db: Session,
        search: str | None = None,
        notification_type: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        page: int = 1,
        per_page: int | None = None,
    ) -> PageResult:
        query = db.query(models.Notification).options(selectinload(models.Notification.audiences))
        if notification_type:
            query = query.filter(models.Notification.type == notification_type)
        if search:
            # message is JSON; match against its text form
            query = query.filter(cast(models.Notification.message, String).ilike(f"%{search}%"))
        if created_after:
            query = query.filter(models.Notification.created_at >= to_naive_utc(created_after))
        if created_before:
            query = query.filter(models.Notification.created_at <= to_naive_utc(created_before))
        query = query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        return paginate(query, page, per_page)

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    @staticmethod
    def inbox(
        db: Session,
        user: models.User,
        is_read: bool | None = None,
        notification_type: str | None = None,
        page: int = 1,
        per_page: int | None = None,
    ) -> PageResult:
        query = (
            db.query(models.UserNotification)
            .options(
                selectinload(models.UserNotification.notification).selectinload(
                    models.Notification.audiences
                )
            )
            .filter(models.UserNotification.user_id == user.id)
        )
        if is_read is not None:
            query = query.filter(models.UserNotification.is_read.is_(is_read))
        if notification_type:
            query = query.join(models.UserNotification.notification).filter(
                models.Notification.type == notification_type
            )
        query = query.order_by(models.UserNotification.created_at.desc(), models.UserNotification.id.desc())
        return paginate(query, page, per_page)

    @staticmethod
    def unread_count(db: Session, user: models.User) -> int:
        return (
            db.query(models.UserNotification)
            .filter(
                models.UserNotification.user_id == user.id,
                models.UserNotification.is_read.is_(False),
            )
            .count()
        )

    @staticmethod
    def _owned(db: Session, user: models.User, user_notification_id: int) -> models.UserNotification:
        entry = db.get(models.UserNotification, user_notification_id)
        if entry is None:
            raise NotFound("Notification not found.")
        if entry.user_id != user.id:
            raise Forbidden()
        return entry

    @staticmethod
    def mark_read(db: Session, user: models.User, user_notification_id: int) -> models.UserNotification:
        entry = NotificationService._owned(db, user, user_notification_id)
        if not entry.is_read:
            entry.is_read = True
            entry.read_at = utcnow()
            db.commit()
            db.refresh(entry)
        return entry

    @staticmethod
    def mark_all_read(db: Session, user: models.User) -> int:
        updated = (
            db.query(models.UserNotification)
            .filter(
                models.UserNotification.user_id == user.id,
                models.UserNotification.is_read.is_(False),
            )
            .update(
                {models.UserNotification.is_read: True, models.UserNotification.read_at: utcnow()},
                synchronize_session=False,
            )
        )
        db.commit()
        return updated

    @staticmethod
    def delete(db: Session, user: models.User, user_notification_id: int) -> None:
        entry = NotificationService._owned(db, user, user_notification_id)
        db.delete(entry)
        db.commit()
