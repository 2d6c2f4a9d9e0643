"""Authentication endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user, get_refresh_user
from ..deps import get_db
from ..services import accounts
from ..services.password_reset import request_password_reset, reset_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=schemas.ApiResponse[schemas.AuthResponse],
    status_code=status.HTTP_201_CREATED,
)
def register(
    payload: schemas.RegisterRequest,
    db: Session = Depends(get_db),
) -> schemas.ApiResponse[schemas.AuthResponse]:
    """
    Register a new account with the Subscriber role and sign it in.
    """
    user, tokens = accounts.register(db, payload)
    return schemas.ApiResponse(
        message="User registered successfully.",
        data=schemas.AuthResponse(user=schemas.UserOut.model_validate(user), tokens=tokens),
    )


@router.post("/login", response_model=schemas.ApiResponse[schemas.AuthResponse])
def login(
    payload: schemas.LoginRequest,
    db: Session = Depends(get_db),
) -> schemas.ApiResponse[schemas.AuthResponse]:
    """
    Login with email and password.

    Tokens issued before this login stop working.
    """
    user, tokens = accounts.login(db, payload.email, payload.password)
    return schemas.ApiResponse(
        message="Login successful.",
        data=schemas.AuthResponse(user=schemas.UserOut.model_validate(user), tokens=tokens),
    )


@router.post("/refresh", response_model=schemas.ApiResponse[schemas.AuthTokens])
def refresh_token(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_refresh_user),
) -> schemas.ApiResponse[schemas.AuthTokens]:
    """
    Exchange a refresh token (sent as the Bearer token) for a new access token.
    """
    tokens = accounts.refresh(db, current_user)
    return schemas.ApiResponse(message="Token refreshed.", data=tokens)


@router.post("/logout", response_model=schemas.ApiResponse[None])
def logout(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> schemas.ApiResponse[None]:
    """
    Logout by revoking every token of the current user.
    """
    accounts.logout(db, current_user)
    return schemas.ApiResponse(message="Logged out successfully.")


@router.post("/forgot-password", response_model=schemas.ApiResponse[None])
def forgot_password(
    payload: schemas.ForgotPasswordRequest,
    db: Session = Depends(get_db),
) -> schemas.ApiResponse[None]:
    """
    Request a password reset email.

    The response is the same whether or not the account exists.
    """
    request_password_reset(db, payload.email)
    return schemas.ApiResponse(message="If the email exists, a password reset link has been sent.")


@router.post("/reset-password", response_model=schemas.ApiResponse[None])
def reset_password_endpoint(
    payload: schemas.ResetPasswordRequest,
    db: Session = Depends(get_db),
) -> schemas.ApiResponse[None]:
    """
    Set a new password using the emailed reset token.
    """
    reset_password(db, payload.email, payload.token, payload.password)
    return schemas.ApiResponse(message="Password has been reset successfully.")
