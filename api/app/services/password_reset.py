"""Password reset service for handling password reset tokens."""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import timedelta

from sqlalchemy.orm import Session

from .. import events, models
from ..auth import revoke_all_tokens
from ..errors import ValidationFailed
from ..settings import PASSWORD_RESET_EXPIRE_MINUTES
from ..utils.clock import utcnow
from .accounts import find_user_by_email, hash_password, normalize_email
from .email import send_password_reset_email

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 64


def _hash_token(token: str) -> str:
    """Hash a token using SHA256."""
    return hashlib.sha256(token.encode()).hexdigest()


def _generate_token() -> str:
    # token_hex yields two characters per byte
    return secrets.token_hex(TOKEN_LENGTH // 2)


def create_reset_token(db: Session, email: str) -> str:
    """
    Create a password reset token for an email, replacing any earlier one.

    Returns:
        Plain text token (to be sent via email)
    """
    email = normalize_email(email)
    db.query(models.PasswordResetToken).filter(models.PasswordResetToken.email == email).delete(
        synchronize_session=False
    )

    plain_token = _generate_token()
    expires_at = utcnow() + timedelta(minutes=PASSWORD_RESET_EXPIRE_MINUTES)
    db.add(models.PasswordResetToken(email=email, token_hash=_hash_token(plain_token), expires_at=expires_at))
    db.commit()

    logger.info(f"Created password reset token for {email}, expires at {expires_at}")
    return plain_token


def request_password_reset(db: Session, email: str) -> None:
    """
    Mail a reset token when the account exists.

    Unknown emails are only logged so callers cannot discover which accounts exist.
    """
    user = find_user_by_email(db, email)
    if user is None:
        logger.info(f"Password reset requested for non-existent email: {email}")
        return

    token = create_reset_token(db, user.email)
    send_password_reset_email(user.email, token, PASSWORD_RESET_EXPIRE_MINUTES, name=user.name)


def verify_reset_token(db: Session, email: str, token: str) -> models.PasswordResetToken | None:
    """
    Verify a password reset token.

    Returns:
        PasswordResetToken record if valid, None otherwise
    """
    return (
        db.query(models.PasswordResetToken)
        .filter(
            models.PasswordResetToken.email == normalize_email(email),
            models.PasswordResetToken.token_hash == _hash_token(token),
            models.PasswordResetToken.expires_at > utcnow(),
        )
        .first()
    )


def reset_password(db: Session, email: str, token: str, new_password: str) -> models.User:
    """
    Set a new password using a mailed token and revoke every session of the account.

    Raises:
        ValidationFailed: If the token is invalid, expired or the account is gone
    """
    reset_token = verify_reset_token(db, email, token)
    user = find_user_by_email(db, email) if reset_token else None
    if reset_token is None or user is None:
        raise ValidationFailed.for_field("token", "This password reset token is invalid.")

    user.password_hash = hash_password(new_password)
    revoke_all_tokens(user, db)
    db.delete(reset_token)
    db.commit()

    logger.info(f"Password reset successful for user {user.id}")
    events.dispatch(events.USER_PASSWORD_RESET, user_id=user.id)
    return user
