"""Newsletter subscription endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user_optional
from ..deps import get_db
from ..permissions import Perm, require_permission
from ..services import newsletter

router = APIRouter(tags=["Newsletter"])


@router.post("/newsletter/subscribe", response_model=schemas.ApiResponse[None])
def subscribe(
    payload: schemas.NewsletterEmailRequest,
    db: Session = Depends(get_db),
    current_user: models.User | None = Depends(get_current_user_optional),
) -> schemas.ApiResponse[None]:
    """
    Subscribe an email address. A confirmation token is sent by email.
    """
    newsletter.subscribe(db, payload.email, current_user)
    return schemas.ApiResponse(message="Please check your email to confirm your subscription.")


@router.post("/newsletter/verify", response_model=schemas.ApiResponse[schemas.NewsletterSubscriberOut])
def verify(
    payload: schemas.NewsletterTokenRequest,
    db: Session = Depends(get_db),
) -> schemas.ApiResponse[schemas.NewsletterSubscriberOut]:
    subscriber = newsletter.verify(db, payload.email, payload.token)
    return schemas.ApiResponse(
        message="Subscription confirmed.", data=schemas.NewsletterSubscriberOut.model_validate(subscriber)
    )


@router.post("/newsletter/unsubscribe", response_model=schemas.ApiResponse[None])
def unsubscribe(
    payload: schemas.NewsletterEmailRequest,
    db: Session = Depends(get_db),
) -> schemas.ApiResponse[None]:
    """
    Request unsubscription. A confirmation token is sent by email.
    """
    newsletter.request_unsubscribe(db, payload.email)
    return schemas.ApiResponse(message="Please check your email to confirm your unsubscription.")


@router.post("/newsletter/verify-unsubscribe", response_model=schemas.ApiResponse[schemas.NewsletterSubscriberOut])
def verify_unsubscribe(
    payload: schemas.NewsletterTokenRequest,
    db: Session = Depends(get_db),
) -> schemas.ApiResponse[schemas.NewsletterSubscriberOut]:
    subscriber = newsletter.verify_unsubscribe(db, payload.email, payload.token)
    return schemas.ApiResponse(
        message="You have been unsubscribed.", data=schemas.NewsletterSubscriberOut.model_validate(subscriber)
    )


# ============================================================================
# ADMINISTRATION
# ============================================================================


@router.get(
    "/admin/newsletter/subscribers",
    response_model=schemas.ApiResponse[schemas.NewsletterSubscriberList],
)
def list_subscribers(
    search: str | None = None,
    status: Literal["verified", "unverified", "unsubscribed"] | None = None,
    subscribed_after: datetime | None = None,
    subscribed_before: datetime | None = None,
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.VIEW_NEWSLETTER_SUBSCRIBERS)),
) -> schemas.ApiResponse[schemas.NewsletterSubscriberList]:
    result = newsletter.list_subscribers(
        db,
        search=search,
        status=status,
        subscribed_after=subscribed_after,
        subscribed_before=subscribed_before,
        page=page,
        per_page=per_page,
    )
    return schemas.ApiResponse(
        data=schemas.NewsletterSubscriberList(
            subscribers=[schemas.NewsletterSubscriberOut.model_validate(s) for s in result.items],
            meta=result.meta,
        )
    )


@router.delete("/admin/newsletter/subscribers/{subscriber_id}", response_model=schemas.ApiResponse[None])
def delete_subscriber(
    subscriber_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.MANAGE_NEWSLETTER_SUBSCRIBERS)),
) -> schemas.ApiResponse[None]:
    newsletter.delete_subscriber(db, subscriber_id)
    return schemas.ApiResponse(message="Subscriber deleted successfully.")
