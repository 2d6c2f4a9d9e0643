"""
Permission catalogue, seeded role table and the authorization evaluator.

Every check resolves to ``can(user, name)``: true iff one of the user's roles
carries the permission. A user's permission set is cached in Redis under a key
that embeds a global version counter; bumping the counter invalidates every
cached set at once.
"""

from __future__ import annotations

import logging
from typing import Iterable

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, object_session

from . import models
from .auth import get_current_user
from .cache import cache_delete, cache_get, cache_incr, cache_set
from .enums import RoleName
from .errors import Forbidden
from .settings import CACHE_TTL_USER_PERMISSIONS

logger = logging.getLogger(__name__)


class Perm:
    """Permission names."""

    # User & account management
    VIEW_USERS = "view_users"
    CREATE_USERS = "create_users"
    EDIT_USERS = "edit_users"
    DELETE_USERS = "delete_users"
    BAN_USERS = "ban_users"
    BLOCK_USERS = "block_users"
    RESTORE_USERS = "restore_users"
    ASSIGN_ROLES = "assign_roles"
    MANAGE_ROLES = "manage_roles"
    MANAGE_PERMISSIONS = "manage_permissions"
    EDIT_PROFILE = "edit_profile"
    VIEW_USER_ACTIVITY = "view_user_activity"
    REGISTER_USER = "register_user"
    VIEW_OWN_PROFILE = "view_own_profile"

    # Articles
    VIEW_POSTS = "view_posts"
    CREATE_POSTS = "create_posts"
    EDIT_POSTS = "edit_posts"
    DELETE_POSTS = "delete_posts"
    PUBLISH_POSTS = "publish_posts"
    EDIT_OTHERS_POSTS = "edit_others_posts"
    DELETE_OTHERS_POSTS = "delete_others_posts"
    APPROVE_POSTS = "approve_posts"
    FEATURE_POSTS = "feature_posts"
    PIN_POSTS = "pin_posts"
    ARCHIVE_POSTS = "archive_posts"
    RESTORE_POSTS = "restore_posts"
    TRASH_POSTS = "trash_posts"
    REPORT_POSTS = "report_posts"
    LIKE_POSTS = "like_posts"
    DISLIKE_POSTS = "dislike_posts"
    VIEW_OWN_POSTS = "view_own_posts"
    SCHEDULE_POSTS = "schedule_posts"

    # Comments
    COMMENT_MODERATE = "comment_moderate"
    CREATE_COMMENTS = "create_comments"
    EDIT_COMMENTS = "edit_comments"
    DELETE_COMMENTS = "delete_comments"
    APPROVE_COMMENTS = "approve_comments"
    REPORT_COMMENTS = "report_comments"
    VIEW_COMMENTS = "view_comments"
    EDIT_OWN_COMMENTS = "edit_own_comments"
    DELETE_OWN_COMMENTS = "delete_own_comments"

    # Taxonomy
    MANAGE_CATEGORIES = "manage_categories"
    CREATE_CATEGORIES = "create_categories"
    EDIT_CATEGORIES = "edit_categories"
    DELETE_CATEGORIES = "delete_categories"
    VIEW_CATEGORIES = "view_categories"
    MANAGE_TAGS = "manage_tags"
    CREATE_TAGS = "create_tags"
    EDIT_TAGS = "edit_tags"
    DELETE_TAGS = "delete_tags"
    VIEW_TAGS = "view_tags"

    # Newsletter
    VIEW_NEWSLETTER_SUBSCRIBERS = "view_newsletter_subscribers"
    MANAGE_NEWSLETTER_SUBSCRIBERS = "manage_newsletter_subscribers"
    SUBSCRIBE_NEWSLETTER = "subscribe_newsletter"
    UNSUBSCRIBE_NEWSLETTER = "unsubscribe_newsletter"
    SEND_NEWSLETTER = "send_newsletter"

    # Notifications
    VIEW_NOTIFICATIONS = "view_notifications"
    MANAGE_NOTIFICATIONS = "manage_notifications"
    SEND_NOTIFICATIONS = "send_notifications"
    READ_NOTIFICATIONS = "read_notifications"
    DELETE_NOTIFICATIONS = "delete_notifications"

    # Media
    UPLOAD_MEDIA = "upload_media"
    DELETE_MEDIA = "delete_media"
    MANAGE_MEDIA = "manage_media"
    VIEW_MEDIA = "view_media"
    EDIT_MEDIA = "edit_media"

    # Analytics & settings
    VIEW_ANALYTICS = "view_analytics"
    MANAGE_SETTINGS = "manage_settings"
    VIEW_DASHBOARD = "view_dashboard"
    EXPORT_DATA = "export_data"

    # Social
    FOLLOW_USERS = "follow_users"
    UNFOLLOW_USERS = "unfollow_users"
    VIEW_USER_PROFILES = "view_user_profiles"
    SEND_MESSAGES = "send_messages"

    # General
    MANAGE_OPTIONS = "manage_options"
    READ = "read"
    ACCESS_API = "access_api"
    VIEW_LOGS = "view_logs"


ALL_PERMISSIONS: tuple[str, ...] = tuple(
    value for key, value in vars(Perm).items() if key.isupper()
)
KNOWN_PERMISSIONS: frozenset[str] = frozenset(ALL_PERMISSIONS)


def permission_slug(name: str) -> str:
    return name.lower().replace("_", "-")


_SOCIAL = {Perm.FOLLOW_USERS, Perm.UNFOLLOW_USERS, Perm.VIEW_USER_PROFILES}
_GENERAL = {Perm.READ, Perm.ACCESS_API}
_PROFILE = {Perm.EDIT_PROFILE, Perm.VIEW_OWN_PROFILE}
_NEWSLETTER_SELF = {Perm.SUBSCRIBE_NEWSLETTER, Perm.UNSUBSCRIBE_NEWSLETTER}
_COMMENTS_AUTHORING = {
    Perm.CREATE_COMMENTS,
    Perm.EDIT_COMMENTS,
    Perm.DELETE_COMMENTS,
    Perm.REPORT_COMMENTS,
    Perm.VIEW_COMMENTS,
    Perm.EDIT_OWN_COMMENTS,
    Perm.DELETE_OWN_COMMENTS,
}

ROLE_PERMISSIONS: dict[RoleName, frozenset[str]] = {
    RoleName.ADMINISTRATOR: KNOWN_PERMISSIONS,
    RoleName.EDITOR: frozenset(
        {
            Perm.VIEW_USERS,
            Perm.VIEW_POSTS,
            Perm.CREATE_POSTS,
            Perm.EDIT_POSTS,
            Perm.DELETE_POSTS,
            Perm.PUBLISH_POSTS,
            Perm.EDIT_OTHERS_POSTS,
            Perm.DELETE_OTHERS_POSTS,
            Perm.FEATURE_POSTS,
            Perm.PIN_POSTS,
            Perm.ARCHIVE_POSTS,
            Perm.RESTORE_POSTS,
            Perm.TRASH_POSTS,
            Perm.REPORT_POSTS,
            Perm.LIKE_POSTS,
            Perm.DISLIKE_POSTS,
            Perm.VIEW_OWN_POSTS,
            Perm.SCHEDULE_POSTS,
            Perm.COMMENT_MODERATE,
            Perm.APPROVE_COMMENTS,
            Perm.MANAGE_CATEGORIES,
            Perm.CREATE_CATEGORIES,
            Perm.EDIT_CATEGORIES,
            Perm.DELETE_CATEGORIES,
            Perm.VIEW_CATEGORIES,
            Perm.MANAGE_TAGS,
            Perm.CREATE_TAGS,
            Perm.EDIT_TAGS,
            Perm.DELETE_TAGS,
            Perm.VIEW_TAGS,
            Perm.VIEW_NEWSLETTER_SUBSCRIBERS,
            Perm.VIEW_NOTIFICATIONS,
            Perm.READ_NOTIFICATIONS,
            Perm.UPLOAD_MEDIA,
            Perm.DELETE_MEDIA,
            Perm.MANAGE_MEDIA,
            Perm.VIEW_MEDIA,
            Perm.EDIT_MEDIA,
            Perm.VIEW_ANALYTICS,
            Perm.VIEW_DASHBOARD,
        }
        | _PROFILE
        | _COMMENTS_AUTHORING
        | _NEWSLETTER_SELF
        | _SOCIAL
        | _GENERAL
    ),
    RoleName.AUTHOR: frozenset(
        {
            Perm.VIEW_POSTS,
            Perm.CREATE_POSTS,
            Perm.EDIT_POSTS,
            Perm.DELETE_POSTS,
            Perm.PUBLISH_POSTS,
            Perm.ARCHIVE_POSTS,
            Perm.RESTORE_POSTS,
            Perm.TRASH_POSTS,
            Perm.REPORT_POSTS,
            Perm.LIKE_POSTS,
            Perm.DISLIKE_POSTS,
            Perm.VIEW_OWN_POSTS,
            Perm.SCHEDULE_POSTS,
            Perm.UPLOAD_MEDIA,
            Perm.VIEW_MEDIA,
            Perm.DELETE_MEDIA,
            Perm.EDIT_MEDIA,
        }
        | _PROFILE
        | _COMMENTS_AUTHORING
        | _NEWSLETTER_SELF
        | _SOCIAL
        | _GENERAL
    ),
    RoleName.CONTRIBUTOR: frozenset(
        {
            Perm.VIEW_POSTS,
            Perm.CREATE_POSTS,
            Perm.EDIT_POSTS,
            Perm.DELETE_POSTS,
            Perm.TRASH_POSTS,
            Perm.REPORT_POSTS,
            Perm.LIKE_POSTS,
            Perm.DISLIKE_POSTS,
            Perm.VIEW_OWN_POSTS,
            Perm.UPLOAD_MEDIA,
            Perm.VIEW_MEDIA,
        }
        | _PROFILE
        | _COMMENTS_AUTHORING
        | _NEWSLETTER_SELF
        | _SOCIAL
        | _GENERAL
    ),
    RoleName.SUBSCRIBER: frozenset(
        {
            Perm.VIEW_POSTS,
            Perm.REPORT_POSTS,
            Perm.LIKE_POSTS,
            Perm.DISLIKE_POSTS,
            Perm.CREATE_COMMENTS,
            Perm.REPORT_COMMENTS,
            Perm.VIEW_COMMENTS,
            Perm.EDIT_OWN_COMMENTS,
            Perm.DELETE_OWN_COMMENTS,
        }
        | _PROFILE
        | _NEWSLETTER_SELF
        | _SOCIAL
        | _GENERAL
    ),
}


# ============================================================================
# PERMISSION STORE
# ============================================================================

CACHE_VERSION_KEY = "user_cache_version"


def get_cache_version() -> int:
    """Current global permission cache version (0 until first bumped)."""
    value = cache_get(CACHE_VERSION_KEY)
    try:
        return int(value) if value is not None else 0
    except (TypeError, ValueError):
        return 0


def bump_cache_version() -> int | None:
    """Invalidate every cached permission set by moving to a new version."""
    version = cache_incr(CACHE_VERSION_KEY)
    logger.info(f"Permission cache version bumped to {version}")
    return version


def _permissions_cache_key(user_id: int, version: int) -> str:
    return f"user_permissions:{user_id}:v{version}"


def clear_user_cache(user_id: int) -> None:
    """Forget the cached permission set of a single user."""
    cache_delete(_permissions_cache_key(user_id, get_cache_version()))


def all_permissions(db: Session) -> set[str]:
    return {name for (name,) in db.query(models.Permission.name).all()}


def permissions_for_roles(db: Session, role_ids: Iterable[int]) -> set[str]:
    role_ids = list(role_ids)
    if not role_ids:
        return set()
    rows = (
        db.query(models.Permission.name)
        .join(models.role_permissions, models.role_permissions.c.permission_id == models.Permission.id)
        .filter(models.role_permissions.c.role_id.in_(role_ids))
        .distinct()
        .all()
    )
    return {name for (name,) in rows}


def get_user_permissions(user: models.User) -> frozenset[str]:
    """
    Union of permission names across the user's roles.

    Served from cache when possible. Any failure to read the backing store
    yields an empty set, so every check denies.
    """
    key = _permissions_cache_key(user.id, get_cache_version())
    cached = cache_get(key)
    if isinstance(cached, list):
        return frozenset(cached)

    db = object_session(user)
    if db is None:
        logger.warning(f"Cannot load permissions for detached user {user.id}")
        return frozenset()

    try:
        names = permissions_for_roles(db, [role.id for role in user.roles])
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Permission store unavailable for user {user.id}: {e}")
        return frozenset()

    cache_set(key, sorted(names), ttl=CACHE_TTL_USER_PERMISSIONS)
    return frozenset(names)


# ============================================================================
# AUTHORIZATION EVALUATOR
# ============================================================================


def can(user: models.User | None, permission: str) -> bool:
    if user is None or permission not in KNOWN_PERMISSIONS:
        return False
    return permission in get_user_permissions(user)


def can_on_own_or_all(
    user: models.User | None,
    admin_permission: str,
    own_permission: str,
    resource_owner_id: int | None,
) -> bool:
    if user is None:
        return False
    if can(user, admin_permission):
        return True
    return resource_owner_id is not None and resource_owner_id == user.id and can(user, own_permission)


def authorize(user: models.User | None, permission: str) -> None:
    if not can(user, permission):
        raise Forbidden()


def authorize_own_or_all(
    user: models.User | None,
    admin_permission: str,
    own_permission: str,
    resource_owner_id: int | None,
) -> None:
    if not can_on_own_or_all(user, admin_permission, own_permission, resource_owner_id):
        raise Forbidden()


def require_permission(permission: str):
    """FastAPI dependency: the authenticated user must hold ``permission``."""

    def dependency(current_user: models.User = Depends(get_current_user)) -> models.User:
        authorize(current_user, permission)
        return current_user

    return dependency
