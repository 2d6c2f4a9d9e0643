"""Newsletter subscriptions with double opt-in and confirmed unsubscription."""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..errors import DomainConflict, NotFound
from ..pagination import PageResult, paginate
from ..settings import NEWSLETTER_TOKEN_EXPIRE_MINUTES
from ..utils.clock import to_naive_utc, utcnow
from .accounts import normalize_email
from .email import send_newsletter_unsubscribe_email, send_newsletter_verification_email

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 64


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _issue_token(subscriber: models.NewsletterSubscriber) -> str:
    """Attach a fresh token to the subscriber and return its plain form."""
    token = secrets.token_hex(TOKEN_LENGTH // 2)
    subscriber.verification_token = _hash_token(token)
    subscriber.verification_token_expires_at = utcnow() + timedelta(minutes=NEWSLETTER_TOKEN_EXPIRE_MINUTES)
    return token


def _find(db: Session, email: str) -> models.NewsletterSubscriber | None:
    return (
        db.query(models.NewsletterSubscriber)
        .filter(models.NewsletterSubscriber.email == normalize_email(email))
        .first()
    )


def _match_token(db: Session, email: str, token: str) -> models.NewsletterSubscriber:
    """Subscriber whose live token matches; mismatches and expired tokens look the same."""
    subscriber = _find(db, email)
    if (
        subscriber is None
        or subscriber.verification_token is None
        or not secrets.compare_digest(subscriber.verification_token, _hash_token(token))
        or subscriber.verification_token_expires_at is None
        or subscriber.verification_token_expires_at < utcnow()
    ):
        raise NotFound("Invalid or expired token.")
    return subscriber


def subscribe(db: Session, email: str, user: models.User | None = None) -> models.NewsletterSubscriber:
    """
    Start (or restart) a subscription and mail the confirmation token.

    A previously unsubscribed address is reset to a fresh, unverified
    subscription.
    """
    email = normalize_email(email)
    subscriber = _find(db, email)
    now = utcnow()

    if subscriber is None:
        subscriber = models.NewsletterSubscriber(email=email, is_verified=False, subscribed_at=now)
        db.add(subscriber)
    else:
        if subscriber.unsubscribed_at is not None:
            subscriber.unsubscribed_at = None
            subscriber.subscribed_at = now
        subscriber.is_verified = False

    if user is not None:
        subscriber.user_id = user.id
    token = _issue_token(subscriber)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DomainConflict("This email is already being subscribed, please retry.")
    db.refresh(subscriber)

    send_newsletter_verification_email(subscriber.email, token, NEWSLETTER_TOKEN_EXPIRE_MINUTES)
    logger.info(f"Newsletter subscription requested for subscriber {subscriber.id}")
    return subscriber


def verify(db: Session, email: str, token: str) -> models.NewsletterSubscriber:
    subscriber = _match_token(db, email, token)
    if subscriber.is_verified and subscriber.unsubscribed_at is None:
        return subscriber

    subscriber.is_verified = True
    subscriber.verification_token = None
    subscriber.verification_token_expires_at = None
    db.commit()
    db.refresh(subscriber)
    logger.info(f"Newsletter subscriber {subscriber.id} verified")
    return subscriber


def request_unsubscribe(db: Session, email: str) -> models.NewsletterSubscriber:
    subscriber = _find(db, email)
    if subscriber is None:
        raise NotFound("Subscriber not found.")
    if subscriber.unsubscribed_at is not None:
        raise DomainConflict("This email is already unsubscribed.")
    if not subscriber.is_verified:
        raise DomainConflict("This subscription has not been verified.")

    token = _issue_token(subscriber)
    db.commit()
    db.refresh(subscriber)

    send_newsletter_unsubscribe_email(subscriber.email, token, NEWSLETTER_TOKEN_EXPIRE_MINUTES)
    logger.info(f"Newsletter unsubscription requested for subscriber {subscriber.id}")
    return subscriber


def verify_unsubscribe(db: Session, email: str, token: str) -> models.NewsletterSubscriber:
    subscriber = _match_token(db, email, token)
    subscriber.unsubscribed_at = utcnow()
    subscriber.is_verified = False
    subscriber.verification_token = None
    subscriber.verification_token_expires_at = None
    db.commit()
    db.refresh(subscriber)
    logger.info(f"Newsletter subscriber {subscriber.id} unsubscribed")
    return subscriber


# ============================================================================
# ADMINISTRATION
# ============================================================================


def list_subscribers(
    db: Session,
    search: str | None = None,
    status: str | None = None,
    subscribed_after: datetime | None = None,
    subscribed_before: datetime | None = None,
    page: int = 1,
    per_page: int | None = None,
) -> PageResult:
    query = db.query(models.NewsletterSubscriber)
    if search:
        query = query.filter(models.NewsletterSubscriber.email.ilike(f"%{search.strip()}%"))
    if status == "verified":
        query = query.filter(
            models.NewsletterSubscriber.is_verified.is_(True),
            models.NewsletterSubscriber.unsubscribed_at.is_(None),
        )
    elif status == "unverified":
        query = query.filter(
            models.NewsletterSubscriber.is_verified.is_(False),
            models.NewsletterSubscriber.unsubscribed_at.is_(None),
        )
    elif status == "unsubscribed":
        query = query.filter(models.NewsletterSubscriber.unsubscribed_at.isnot(None))
    if subscribed_after:
        query = query.filter(models.NewsletterSubscriber.subscribed_at >= to_naive_utc(subscribed_after))
    if subscribed_before:
        query = query.filter(models.NewsletterSubscriber.subscribed_at <= to_naive_utc(subscribed_before))
    query = query.order_by(models.NewsletterSubscriber.created_at.desc(), models.NewsletterSubscriber.id.desc())
    return paginate(query, page, per_page)


def delete_subscriber(db: Session, subscriber_id: int) -> None:
    subscriber = db.get(models.NewsletterSubscriber, subscriber_id)
    if subscriber is None:
        raise NotFound("Subscriber not found.")
    db.delete(subscriber)
    db.commit()
