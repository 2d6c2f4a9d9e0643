"""Centralized environment-driven settings.

Keep this module lightweight: stdlib only, no app imports, to avoid circular deps.
"""

from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

# Token lifetimes (minutes)
ACCESS_TOKEN_EXPIRE_MINUTES: int = _int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 15)
REFRESH_TOKEN_EXPIRE_MINUTES: int = _int_env("REFRESH_TOKEN_EXPIRE_MINUTES", 43200)
PASSWORD_RESET_EXPIRE_MINUTES: int = _int_env("PASSWORD_RESET_EXPIRE_MINUTES", 60)
NEWSLETTER_TOKEN_EXPIRE_MINUTES: int = _int_env("NEWSLETTER_TOKEN_EXPIRE_MINUTES", 1440)

# Cache TTLs (seconds)
CACHE_TTL_USER_PERMISSIONS: int = _int_env("CACHE_TTL_USER_PERMISSIONS", 3600)
CACHE_TTL_USER_ROLES: int = _int_env("CACHE_TTL_USER_ROLES", 3600)
CACHE_TTL_ARTICLE: int = _int_env("CACHE_TTL_ARTICLE", 3600)
CACHE_TTL_TAXONOMY: int = _int_env("CACHE_TTL_TAXONOMY", 86400)

# Media storage
MEDIA_LOCATION: str = os.getenv("MEDIA_LOCATION", "./media")
MEDIA_URL_PREFIX: str = os.getenv("MEDIA_URL_PREFIX", "/media")
MEDIA_MAX_FILE_SIZE: int = _int_env("MEDIA_MAX_FILE_SIZE", 10 * 1024 * 1024)

# Pagination
DEFAULT_PER_PAGE: int = 15
MAX_PER_PAGE: int = 100
COMMENTS_PER_PAGE: int = 10
COMMENT_REPLIES_PREVIEW: int = 3
COMMENT_REPLIES_PER_PAGE: int = 20

API_LOGGER_ENABLED: bool = _bool_env("API_LOGGER_ENABLED", True)

# Background work
CELERY_TASK_ALWAYS_EAGER: bool = _bool_env("CELERY_TASK_ALWAYS_EAGER", False)

# HTTP
CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost").split(",")
    if origin.strip()
]
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
