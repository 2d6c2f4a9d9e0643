"""Public user profiles and follow relationships."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db
from ..pagination import PageResult
from ..permissions import Perm, require_permission
from ..services import users as user_service

router = APIRouter(prefix="/users", tags=["Users"])


def _user_briefs(result: PageResult) -> schemas.UserBriefList:
    return schemas.UserBriefList(
        users=[schemas.UserBrief.model_validate(u) for u in result.items],
        meta=result.meta,
    )


@router.get("/{user_id}/profile", response_model=schemas.ApiResponse[schemas.UserProfile])
def get_user_profile(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.VIEW_USER_PROFILES)),
) -> schemas.ApiResponse[schemas.UserProfile]:
    """
    Public profile with follower and following counts.
    """
    return schemas.ApiResponse(data=user_service.public_profile(db, user_id))


@router.post("/{user_id}/follow", response_model=schemas.ApiResponse[schemas.FollowStatus])
def follow_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.FOLLOW_USERS)),
) -> schemas.ApiResponse[schemas.FollowStatus]:
    """
    Follow a user. Following someone already followed succeeds without change.
    """
    created = user_service.follow(db, current_user, user_id)
    message = "User followed successfully." if created else "You are already following this user."
    return schemas.ApiResponse(message=message, data=schemas.FollowStatus(user_id=user_id, following=True))


@router.post("/{user_id}/unfollow", response_model=schemas.ApiResponse[schemas.FollowStatus])
def unfollow_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.UNFOLLOW_USERS)),
) -> schemas.ApiResponse[schemas.FollowStatus]:
    user_service.unfollow(db, current_user, user_id)
    return schemas.ApiResponse(
        message="User unfollowed successfully.", data=schemas.FollowStatus(user_id=user_id, following=False)
    )


@router.get("/{user_id}/followers", response_model=schemas.ApiResponse[schemas.UserBriefList])
def list_followers(
    user_id: int,
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.VIEW_USER_PROFILES)),
) -> schemas.ApiResponse[schemas.UserBriefList]:
    result = user_service.followers(db, user_id, page, per_page)
    return schemas.ApiResponse(data=_user_briefs(result))


@router.get("/{user_id}/following", response_model=schemas.ApiResponse[schemas.UserBriefList])
def list_following(
    user_id: int,
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission(Perm.VIEW_USER_PROFILES)),
) -> schemas.ApiResponse[schemas.UserBriefList]:
    result = user_service.following(db, user_id, page, per_page)
    return schemas.ApiResponse(data=_user_briefs(result))
