from __future__ import annotations

import logging
import os
from typing import Any

from celery import Celery

from .settings import CELERY_TASK_ALWAYS_EAGER

logger = logging.getLogger(__name__)

DEFAULT_REDIS = "redis://cache:6379/0"

celery_app = Celery(
    "quillpress",
    broker=os.getenv("CELERY_BROKER_URL", DEFAULT_REDIS),
    backend=os.getenv("CELERY_RESULT_BACKEND", DEFAULT_REDIS),
)

celery_app.conf.update(
    task_default_queue="default",
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=3600,
    worker_max_tasks_per_child=100,
    task_acks_late=True,
    task_always_eager=CELERY_TASK_ALWAYS_EAGER,
    task_routes={"app.tasks.handle_domain_event": {"queue": "default"}},
    beat_schedule={
        "publish-scheduled-articles": {
            "task": "app.tasks.publish_scheduled_articles",
            "schedule": 60.0,  # Every minute (in seconds)
        },
    },
    timezone="UTC",
)

MAX_RETRIES = 3


def _notify_followed_user(db, payload: dict[str, Any]) -> None:
    from . import models
    from .enums import NotificationAudience, NotificationType
    from .services.notifications import NotificationService

    follower = db.get(models.User, payload["follower_id"])
    if follower is None:
        return
    NotificationService.notify_once(
        db,
        f"user.followed:{follower.id}:{payload['following_id']}",
        notification_type=NotificationType.SYSTEM_ALERT,
        title="New follower",
        body=f"{follower.name} started following you.",
        audience=NotificationAudience.SPECIFIC_USERS,
        user_ids=[payload["following_id"]],
    )


def _announce_published_article(db, payload: dict[str, Any]) -> None:
    from . import models
    from .enums import ArticleStatus, NotificationAudience, NotificationType
    from .services.notifications import NotificationService

    if payload.get("status") != ArticleStatus.PUBLISHED.value:
        return
    article = db.get(models.Article, payload["article_id"])
    if article is None:
        return
    NotificationService.notify_once(
        db,
        f"article.published:{article.id}",
        notification_type=NotificationType.ARTICLE_PUBLISHED,
        title="New article published",
        body=article.title,
        audience=NotificationAudience.ALL_USERS,
    )


def _distribute_notification(db, payload: dict[str, Any]) -> None:
    from .services.notifications import NotificationService

    NotificationService.distribute(db, payload["notification_id"])


# Events with side effects beyond logging
LISTENERS = {
    "notification.created": _distribute_notification,
    "article.created": _announce_published_article,
    "article.approved": _announce_published_article,
    "article.published": _announce_published_article,
    "user.followed": _notify_followed_user,
}


@celery_app.task(name="app.tasks.handle_domain_event", bind=True, max_retries=MAX_RETRIES)
def handle_domain_event(self, event: str, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Log a domain event and run its listener, if any.

    Listeners are idempotent so the task can be retried safely.
    """
    logger.info(f"Domain event {event}: {payload}")

    listener = LISTENERS.get(event)
    if listener is None:
        return {"status": "logged", "event": event}

    from .db import SessionLocal

    db = SessionLocal()
    try:
        listener(db, payload)
        return {"status": "handled", "event": event}
    except Exception as e:
        db.rollback()
        logger.error(f"Listener for {event} failed (attempt {self.request.retries + 1}): {e}")
        raise self.retry(exc=e, countdown=2 ** self.request.retries)
    finally:
        db.close()


@celery_app.task(name="app.tasks.publish_scheduled_articles")
def publish_scheduled_articles() -> dict[str, Any]:
    """
    Periodic task: publish scheduled articles whose publish date has passed.

    Runs every minute (configurable via beat_schedule).
    """
    from .db import SessionLocal
    from .services.articles import publish_due_articles

    db = SessionLocal()
    try:
        published = publish_due_articles(db)
        return {"status": "success", "published": len(published)}
    except Exception as e:
        db.rollback()
        logger.error(f"Error publishing scheduled articles: {e}", exc_info=True)
        raise
    finally:
        db.close()
