"""User administration, profiles and follows."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .. import events, models, schemas
from ..auth import revoke_all_tokens
from ..cache import cache_delete, cache_get, cache_set
from ..enums import RoleName, UserStatus
from ..errors import DomainConflict, Forbidden, NotFound, ValidationFailed
from ..pagination import PageResult, paginate
from ..permissions import Perm, authorize, bump_cache_version, clear_user_cache
from ..settings import CACHE_TTL_USER_ROLES
from ..utils.audit import log_moderation_action
from ..utils.clock import to_naive_utc, utcnow
from .accounts import find_user_by_email, get_role, hash_password, normalize_email

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("avatar_url", "bio", "twitter", "facebook", "linkedin", "github", "website")

USER_SORT_COLUMNS = {
    "created_at": models.User.created_at,
    "name": models.User.name,
    "email": models.User.email,
    "id": models.User.id,
}


def get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFound("User not found.")
    return user


def _apply_profile(user: models.User, payload: schemas.ProfileFields) -> None:
    for field in PROFILE_FIELDS:
        if field in payload.model_fields_set:
            setattr(user, field, getattr(payload, field))


# ============================================================================
# PROFILE
# ============================================================================


def update_profile(db: Session, user: models.User, payload: schemas.ProfileUpdateRequest) -> models.User:
    _apply_profile(user, payload)
    if payload.name is not None:
        user.name = payload.name.strip()
    db.commit()
    db.refresh(user)
    return user


def follower_counts(db: Session, user_id: int) -> tuple[int, int]:
    followers = db.query(func.count(models.Follow.id)).filter(models.Follow.following_id == user_id).scalar()
    following = db.query(func.count(models.Follow.id)).filter(models.Follow.follower_id == user_id).scalar()
    return followers or 0, following or 0


def public_profile(db: Session, user_id: int) -> schemas.UserProfile:
    user = get_user(db, user_id)
    followers, following = follower_counts(db, user.id)
    profile = schemas.UserProfile.model_validate(user)
    profile.followers_count = followers
    profile.following_count = following
    return profile


# ============================================================================
# FOLLOWS
# ============================================================================


def follow(db: Session, follower: models.User, target_id: int) -> bool:
    """
    Follow a user. Following an already followed user is a no-op.

    Returns:
        True if a new follow was recorded
    """
    if follower.id == target_id:
        raise DomainConflict("You cannot follow yourself.")
    target = get_user(db, target_id)

    exists = (
        db.query(models.Follow)
        .filter(models.Follow.follower_id == follower.id, models.Follow.following_id == target.id)
        .first()
    )
    if exists:
        return False

    db.add(models.Follow(follower_id=follower.id, following_id=target.id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False

    events.dispatch(events.USER_FOLLOWED, follower_id=follower.id, following_id=target.id)
    return True


def unfollow(db: Session, follower: models.User, target_id: int) -> None:
    target = get_user(db, target_id)
    deleted = (
        db.query(models.Follow)
        .filter(models.Follow.follower_id == follower.id, models.Follow.following_id == target.id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        db.rollback()
        raise DomainConflict("You are not following this user.")
    db.commit()


def followers(db: Session, user_id: int, page: int = 1, per_page: int | None = None) -> PageResult:
    get_user(db, user_id)
    query = (
        db.query(models.User)
        .join(models.Follow, models.Follow.follower_id == models.User.id)
        .filter(models.Follow.following_id == user_id)
        .order_by(models.Follow.created_at.desc())
    )
    return paginate(query, page, per_page)


def following(db: Session, user_id: int, page: int = 1, per_page: int | None = None) -> PageResult:
    get_user(db, user_id)
    query = (
        db.query(models.User)
        .join(models.Follow, models.Follow.following_id == models.User.id)
        .filter(models.Follow.follower_id == user_id)
        .order_by(models.Follow.created_at.desc())
    )
    return paginate(query, page, per_page)


# ============================================================================
# ADMINISTRATION
# ============================================================================


def list_users(
    db: Session,
    search: str | None = None,
    role_id: int | None = None,
    status: UserStatus | None = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    sort_by: str = "created_at",
    sort_direction: str = "desc",
    page: int = 1,
    per_page: int | None = None,
) -> PageResult:
    query = db.query(models.User).options(selectinload(models.User.roles))

    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(models.User.name.ilike(term), models.User.email.ilike(term)))
    if role_id is not None:
        query = query.filter(models.User.roles.any(models.Role.id == role_id))
    if status == UserStatus.BANNED:
        query = query.filter(models.User.banned_at.isnot(None))
    elif status == UserStatus.BLOCKED:
        query = query.filter(models.User.blocked_at.isnot(None))
    elif status == UserStatus.ACTIVE:
        query = query.filter(models.User.banned_at.is_(None), models.User.blocked_at.is_(None))
    if created_after:
        query = query.filter(models.User.created_at >= to_naive_utc(created_after))
    if created_before:
        query = query.filter(models.User.created_at <= to_naive_utc(created_before))

    column = USER_SORT_COLUMNS.get(sort_by, models.User.created_at)
    order = column.asc() if sort_direction == "asc" else column.desc()
    query = query.order_by(order, models.User.id.desc())
    return paginate(query, page, per_page)


def create_user(db: Session, payload: schemas.AdminUserCreateRequest) -> models.User:
    email = normalize_email(payload.email)
    if find_user_by_email(db, email):
        raise ValidationFailed.for_field("email", "The email has already been taken.")

    user = models.User(name=payload.name.strip(), email=email, password_hash=hash_password(payload.password))
    _apply_profile(user, payload)

    if payload.role_id is not None:
        role = db.get(models.Role, payload.role_id)
        if role is None:
            raise ValidationFailed.for_field("role_id", "The selected role is invalid.")
        user.roles.append(role)
    else:
        subscriber = get_role(db, RoleName.SUBSCRIBER)
        if subscriber is not None:
            user.roles.append(subscriber)

    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationFailed.for_field("email", "The email has already been taken.")
    db.refresh(user)
    logger.info(f"Created user {user.id}")
    return user


def update_user(
    db: Session, actor: models.User, user_id: int, payload: schemas.AdminUserUpdateRequest
) -> models.User:
    user = get_user(db, user_id)

    if payload.email is not None:
        email = normalize_email(payload.email)
        other = find_user_by_email(db, email)
        if other is not None and other.id != user.id:
            raise ValidationFailed.for_field("email", "The email has already been taken.")
        user.email = email
    if payload.name is not None:
        user.name = payload.name.strip()
    if payload.password is not None:
        user.password_hash = hash_password(payload.password)
        revoke_all_tokens(user, db)
    _apply_profile(user, payload)

    roles_changed = False
    if payload.role_ids is not None:
        authorize(actor, Perm.ASSIGN_ROLES)
        roles = db.query(models.Role).filter(models.Role.id.in_(payload.role_ids)).all()
        if len(roles) != len(set(payload.role_ids)):
            raise ValidationFailed.for_field("role_ids", "One or more selected roles are invalid.")
        user.roles = roles
        roles_changed = True

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationFailed.for_field("email", "The email has already been taken.")

    if roles_changed:
        clear_user_cache(user.id)
    db.refresh(user)
    return user


def delete_user(db: Session, actor: models.User, user_id: int) -> None:
    user = get_user(db, user_id)
    if user.id == actor.id:
        raise Forbidden("You cannot delete your own account.")
    log_moderation_action(db, actor.id, "delete_user", "user", user.id)
    db.delete(user)
    db.commit()
    clear_user_cache(user_id)
    logger.info(f"User {user_id} deleted by {actor.id}")


def _moderate(
    db: Session,
    actor: models.User,
    user_id: int,
    field: str,
    value: datetime | None,
    action: str,
    event: str,
    reason: str | None = None,
) -> models.User:
    user = get_user(db, user_id)
    if user.id == actor.id:
        raise Forbidden("You cannot perform this action on yourself.")

    setattr(user, field, value)
    if value is not None:
        revoke_all_tokens(user, db)
    log_moderation_action(db, actor.id, action, "user", user.id, note=reason)
    db.commit()
    db.refresh(user)

    logger.info(f"User {user.id}: {action} by {actor.id}")
    events.dispatch(event, user_id=user.id, actor_id=actor.id)
    return user


def ban_user(db: Session, actor: models.User, user_id: int, reason: str | None = None) -> models.User:
    return _moderate(db, actor, user_id, "banned_at", utcnow(), "ban_user", events.USER_BANNED, reason)


def unban_user(db: Session, actor: models.User, user_id: int) -> models.User:
    return _moderate(db, actor, user_id, "banned_at", None, "unban_user", events.USER_UNBANNED)


def block_user(db: Session, actor: models.User, user_id: int, reason: str | None = None) -> models.User:
    return _moderate(db, actor, user_id, "blocked_at", utcnow(), "block_user", events.USER_BLOCKED, reason)


def unblock_user(db: Session, actor: models.User, user_id: int) -> models.User:
    return _moderate(db, actor, user_id, "blocked_at", None, "unblock_user", events.USER_UNBLOCKED)


# ============================================================================
# ROLES & PERMISSIONS
# ============================================================================


ROLES_CACHE_KEY = "roles:all"
PERMISSIONS_CACHE_KEY = "permissions:all"


def list_roles(db: Session) -> list[dict]:
    cached = cache_get(ROLES_CACHE_KEY)
    if isinstance(cached, list):
        return cached
    rows = db.query(models.Role).options(selectinload(models.Role.permissions)).order_by(models.Role.id).all()
    data = [schemas.RoleOut.model_validate(row).model_dump() for row in rows]
    cache_set(ROLES_CACHE_KEY, data, ttl=CACHE_TTL_USER_ROLES)
    return data


def list_permissions(db: Session) -> list[dict]:
    cached = cache_get(PERMISSIONS_CACHE_KEY)
    if isinstance(cached, list):
        return cached
    rows = db.query(models.Permission).order_by(models.Permission.id).all()
    data = [schemas.PermissionOut.model_validate(row).model_dump() for row in rows]
    cache_set(PERMISSIONS_CACHE_KEY, data, ttl=CACHE_TTL_USER_ROLES)
    return data


def set_role_permissions(db: Session, actor: models.User, role_id: int, names: list[str]) -> models.Role:
    """Replace a role's permission set and invalidate every cached permission set."""
    role = db.get(models.Role, role_id)
    if role is None:
        raise NotFound("Role not found.")

    wanted = set(names)
    permissions = db.query(models.Permission).filter(models.Permission.name.in_(wanted)).all()
    unknown = wanted - {p.name for p in permissions}
    if unknown:
        raise ValidationFailed.for_field(
            "permissions", f"Unknown permissions: {', '.join(sorted(unknown))}."
        )

    role.permissions = permissions
    log_moderation_action(db, actor.id, "set_role_permissions", "role", role.id, note=",".join(sorted(wanted)))
    db.commit()
    bump_cache_version()
    cache_delete(ROLES_CACHE_KEY)
    db.refresh(role)
    logger.info(f"Role {role.name} now has {len(permissions)} permissions")
    return role
