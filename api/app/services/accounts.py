"""Account service: password hashing, registration and session tokens."""

from __future__ import annotations

import logging

from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import events, models, schemas
from ..auth import (
    check_user_can_authenticate,
    create_access_token,
    create_refresh_token,
    revoke_access_tokens,
    revoke_all_tokens,
)
from ..enums import RoleName
from ..errors import Unauthorized, ValidationFailed

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_user_by_email(db: Session, email: str) -> models.User | None:
    return db.query(models.User).filter(models.User.email == normalize_email(email)).first()


def get_role(db: Session, name: RoleName) -> models.Role | None:
    return db.query(models.Role).filter(models.Role.name == name.value).first()


def _issue_tokens(db: Session, user: models.User, with_refresh: bool = True) -> schemas.AuthTokens:
    access = create_access_token(user)
    refresh = create_refresh_token(user, db) if with_refresh else None
    db.commit()
    return schemas.AuthTokens(
        access_token=access.token,
        access_token_expires_at=access.expires_at,
        refresh_token=refresh.token if refresh else None,
        refresh_token_expires_at=refresh.expires_at if refresh else None,
    )


def register(db: Session, payload: schemas.RegisterRequest) -> tuple[models.User, schemas.AuthTokens]:
    """
    Create a Subscriber account and sign it in.

    Raises:
        ValidationFailed: If the email is already registered
    """
    email = normalize_email(payload.email)
    if find_user_by_email(db, email):
        raise ValidationFailed.for_field("email", "The email has already been taken.")

    user = models.User(name=payload.name.strip(), email=email, password_hash=hash_password(payload.password))
    subscriber = get_role(db, RoleName.SUBSCRIBER)
    if subscriber is not None:
        user.roles.append(subscriber)
    else:
        logger.warning("Subscriber role missing; registering user without roles")

    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ValidationFailed.for_field("email", "The email has already been taken.")

    tokens = _issue_tokens(db, user)
    db.refresh(user)
    logger.info(f"Registered user {user.id}")
    events.dispatch(events.USER_REGISTERED, user_id=user.id)
    return user, tokens


def login(db: Session, email: str, password: str) -> tuple[models.User, schemas.AuthTokens]:
    """
    Authenticate with email and password.

    Every token issued to the user before this login is revoked.
    """
    user = find_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid email or password.")

    if user.banned_at is not None:
        raise Unauthorized("Account banned")
    if user.blocked_at is not None:
        raise Unauthorized("Account blocked")

    revoke_all_tokens(user, db)
    tokens = _issue_tokens(db, user)
    db.refresh(user)
    logger.info(f"User {user.id} logged in")
    events.dispatch(events.USER_LOGGED_IN, user_id=user.id)
    return user, tokens


def refresh(db: Session, user: models.User) -> schemas.AuthTokens:
    """Issue a new access token; earlier access tokens stop working, the refresh token stays valid."""
    check_user_can_authenticate(user)
    revoke_access_tokens(user)
    tokens = _issue_tokens(db, user, with_refresh=False)
    events.dispatch(events.USER_TOKEN_REFRESHED, user_id=user.id)
    return tokens


def logout(db: Session, user: models.User) -> None:
    revoke_all_tokens(user, db)
    db.commit()
    logger.info(f"User {user.id} logged out")
    events.dispatch(events.USER_LOGGED_OUT, user_id=user.id)
