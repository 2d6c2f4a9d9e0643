from __future__ import annotations

import hashlib
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from . import models
from .deps import get_db
from .settings import ACCESS_TOKEN_EXPIRE_MINUTES, REFRESH_TOKEN_EXPIRE_MINUTES
from .utils.clock import utcnow

logger = logging.getLogger(__name__)

# Security scheme for Bearer token
oauth2_scheme = HTTPBearer(auto_error=False)

# JWT Configuration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
if not JWT_SECRET_KEY:
    raise RuntimeError(
        "JWT_SECRET_KEY environment variable is required but not set. "
        "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
    )
if len(JWT_SECRET_KEY) < 32:
    raise RuntimeError("JWT_SECRET_KEY is too short. Must be at least 32 characters long.")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Token abilities
ABILITY_ACCESS_API = "access-api"
ABILITY_REFRESH_TOKEN = "refresh-token"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def check_user_can_authenticate(user: models.User) -> None:
    """
    Check if a user is allowed to authenticate.
    Raises HTTPException if the user is banned or blocked.

    Called during login, token refresh and on every authenticated request.
    """
    if user.banned_at is not None:
        raise _unauthorized("Account banned")
    if user.blocked_at is not None:
        raise _unauthorized("Account blocked")


# ============================================================================
# TOKEN ISSUING
# ============================================================================


@dataclass
class IssuedToken:
    token: str
    expires_at: datetime


def _encode(user: models.User, abilities: list[str], expires_at: datetime, now: datetime) -> str:
    payload = {
        "sub": str(user.id),
        "abilities": abilities,
        "ver": user.token_version,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": expires_at,
    }
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def create_access_token(user: models.User, expires_in_minutes: int | None = None) -> IssuedToken:
    """Create a JWT carrying the ``access-api`` ability for the user's current token version."""
    if expires_in_minutes is None:
        expires_in_minutes = ACCESS_TOKEN_EXPIRE_MINUTES
    now = utcnow()
    expires_at = now + timedelta(minutes=expires_in_minutes)
    return IssuedToken(_encode(user, [ABILITY_ACCESS_API], expires_at, now), expires_at)


def create_refresh_token(user: models.User, db: Session, expires_in_minutes: int | None = None) -> IssuedToken:
    """
    Create a refresh token and store its hash in the database.

    The caller commits the session.
    """
    if expires_in_minutes is None:
        expires_in_minutes = REFRESH_TOKEN_EXPIRE_MINUTES
    now = utcnow()
    expires_at = now + timedelta(minutes=expires_in_minutes)
    token = _encode(user, [ABILITY_REFRESH_TOKEN], expires_at, now)
    db.add(models.RefreshToken(user_id=user.id, token_hash=hash_token(token), expires_at=expires_at))
    return IssuedToken(token, expires_at)


def revoke_access_tokens(user: models.User) -> None:
    """Invalidate every access token issued so far by moving the user's token version."""
    user.token_version = (user.token_version or 0) + 1


def revoke_all_tokens(user: models.User, db: Session) -> None:
    """Invalidate every access and refresh token of the user. The caller commits."""
    revoke_access_tokens(user)
    db.query(models.RefreshToken).filter(
        models.RefreshToken.user_id == user.id,
        models.RefreshToken.revoked.is_(False),
    ).update({models.RefreshToken.revoked: True}, synchronize_session=False)


# ============================================================================
# TOKEN VERIFICATION
# ============================================================================


def _decode(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            JWT_SECRET_KEY,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")


def _load_subject(payload: dict, db: Session) -> models.User:
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token")
    user = db.get(models.User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    return user


def authenticate_access_token(token: str, db: Session) -> models.User:
    """Resolve an access token to its user, enforcing ability, revocation and account state."""
    payload = _decode(token)
    if ABILITY_ACCESS_API not in (payload.get("abilities") or []):
        raise _unauthorized("Invalid token")

    user = _load_subject(payload, db)
    if payload.get("ver") != user.token_version:
        raise _unauthorized("Token revoked")

    check_user_can_authenticate(user)
    return user


def authenticate_refresh_token(token: str, db: Session) -> tuple[models.User, models.RefreshToken]:
    """
    Resolve a refresh token.

    Refresh tokens are validated against their stored row rather than the
    token version, so refreshing an access token leaves them usable.
    """
    payload = _decode(token)
    if ABILITY_REFRESH_TOKEN not in (payload.get("abilities") or []):
        raise _unauthorized("Invalid token")

    stored = (
        db.query(models.RefreshToken)
        .filter(
            models.RefreshToken.token_hash == hash_token(token),
            models.RefreshToken.revoked.is_(False),
            models.RefreshToken.expires_at > utcnow(),
        )
        .first()
    )
    if stored is None:
        raise _unauthorized("Token revoked")

    user = _load_subject(payload, db)
    if stored.user_id != user.id:
        raise _unauthorized("Invalid token")

    check_user_can_authenticate(user)
    return user, stored


# ============================================================================
# DEPENDENCIES
# ============================================================================


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    """
    Get current authenticated user from an ``access-api`` Bearer token.
    """
    if not credentials:
        raise _unauthorized("Authentication required")

    user = authenticate_access_token(credentials.credentials, db)
    request.state.user_id = user.id
    return user


def get_current_user_optional(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User | None:
    """
    Get current user if authenticated, None otherwise.

    Used for endpoints that work differently for authenticated vs anonymous users.
    """
    if credentials is None:
        return None

    try:
        return get_current_user(request, credentials, db)
    except HTTPException:
        return None


def get_refresh_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    """Authenticate the token refresh flow; only ``refresh-token`` tokens are accepted."""
    if not credentials:
        raise _unauthorized("Authentication required")

    user, _ = authenticate_refresh_token(credentials.credentials, db)
    request.state.user_id = user.id
    return user


# ============================================================================
# ACTORS
# ============================================================================


@dataclass(frozen=True)
class UserActor:
    """An authenticated user acting on an anonymous-capable endpoint."""

    user: models.User

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def ip_address(self) -> None:
        return None


@dataclass(frozen=True)
class AnonymousActor:
    """A visitor identified only by IP address."""

    ip: str

    @property
    def user_id(self) -> None:
        return None

    @property
    def ip_address(self) -> str:
        return self.ip


Actor = UserActor | AnonymousActor


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request, handling proxies.

    Checks X-Forwarded-For header first (for reverse proxy setups),
    then falls back to direct client IP.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs; take the first one
        return forwarded_for.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


def get_actor(
    request: Request,
    user: models.User | None = Depends(get_current_user_optional),
) -> Actor:
    """Authenticated user when a valid token is present, otherwise the caller's IP."""
    if user is not None:
        return UserActor(user)
    return AnonymousActor(get_client_ip(request))
