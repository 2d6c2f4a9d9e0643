"""Domain event dispatch.

Events are handed to the Celery listener after the triggering transaction has
committed. Delivery failures are logged and never fail the request.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Article lifecycle
ARTICLE_CREATED = "article.created"
ARTICLE_APPROVED = "article.approved"
ARTICLE_PUBLISHED = "article.published"
ARTICLE_REJECTED = "article.rejected"
ARTICLE_ARCHIVED = "article.archived"
ARTICLE_RESTORED = "article.restored"
ARTICLE_TRASHED = "article.trashed"
ARTICLE_RESTORED_FROM_TRASH = "article.restored_from_trash"
ARTICLE_DELETED = "article.deleted"
ARTICLE_FEATURED = "article.featured"
ARTICLE_UNFEATURED = "article.unfeatured"
ARTICLE_PINNED = "article.pinned"
ARTICLE_UNPINNED = "article.unpinned"
ARTICLE_REPORTED = "article.reported"
ARTICLE_REPORTS_CLEARED = "article.reports_cleared"
ARTICLE_LIKED = "article.liked"
ARTICLE_DISLIKED = "article.disliked"

# Comments
COMMENT_CREATED = "comment.created"
COMMENT_APPROVED = "comment.approved"
COMMENT_REJECTED = "comment.rejected"
COMMENT_MARKED_SPAM = "comment.marked_spam"
COMMENT_DELETED = "comment.deleted"
COMMENT_REPORTED = "comment.reported"

# Users
USER_REGISTERED = "user.registered"
USER_LOGGED_IN = "user.logged_in"
USER_LOGGED_OUT = "user.logged_out"
USER_TOKEN_REFRESHED = "user.token_refreshed"
USER_PASSWORD_RESET = "user.password_reset"
USER_BANNED = "user.banned"
USER_UNBANNED = "user.unbanned"
USER_BLOCKED = "user.blocked"
USER_UNBLOCKED = "user.unblocked"
USER_FOLLOWED = "user.followed"

# Other
MEDIA_UPLOADED = "media.uploaded"
NOTIFICATION_CREATED = "notification.created"


def dispatch(event: str, **payload: Any) -> None:
    """Queue ``event`` for the domain event listener."""
    from .tasks import handle_domain_event

    try:
        handle_domain_event.delay(event, payload)
    except Exception as e:
        logger.error(f"Failed to dispatch event {event} {payload}: {e}")
