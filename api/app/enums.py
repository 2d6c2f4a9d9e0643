"""String enums shared by models, schemas and services."""

from __future__ import annotations

from enum import Enum


class RoleName(str, Enum):
    """Seeded roles."""
    ADMINISTRATOR = "administrator"
    EDITOR = "editor"
    AUTHOR = "author"
    CONTRIBUTOR = "contributor"
    SUBSCRIBER = "subscriber"


class UserStatus(str, Enum):
    ACTIVE = "active"
    BANNED = "banned"
    BLOCKED = "blocked"


class ArticleStatus(str, Enum):
    """Article lifecycle states."""
    DRAFT = "draft"
    REVIEW = "review"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    ARCHIVED = "archived"
    TRASHED = "trashed"


class ArticleAuthorRole(str, Enum):
    MAIN = "main"
    CO_AUTHOR = "co_author"
    CONTRIBUTOR = "contributor"


class CommentStatus(str, Enum):
    """Comment moderation states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SPAM = "spam"


class ReactionType(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"

    def opposite(self) -> "ReactionType":
        return ReactionType.DISLIKE if self is ReactionType.LIKE else ReactionType.LIKE


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    OTHER = "other"


class NotificationType(str, Enum):
    ARTICLE_PUBLISHED = "article_published"
    NEW_COMMENT = "new_comment"
    NEWSLETTER = "newsletter"
    SYSTEM_ALERT = "system_alert"


class NotificationAudience(str, Enum):
    """Audience selector accepted when creating a notification."""
    ALL_USERS = "all_users"
    ADMINISTRATORS = "administrators"
    SPECIFIC_USERS = "specific_users"


class AudienceType(str, Enum):
    """Persisted audience row kinds."""
    ALL = "all"
    ROLE = "role"
    USER = "user"
