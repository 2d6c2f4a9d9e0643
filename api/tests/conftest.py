from __future__ import annotations

import os
import tempfile
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Callable, Generator

_TMP_DIR = Path(tempfile.mkdtemp(prefix="quillpress-tests-"))

os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["MEDIA_LOCATION"] = str(_TMP_DIR / "storage")
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("ADMIN_EMAIL", None)

import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app import cache, models
from app.auth import create_access_token
from app.db import SessionLocal
from app.enums import ArticleStatus, RoleName
from app.main import app, run_startup_tasks
from app.services.accounts import hash_password
from app.utils.clock import utcnow

load_dotenv()

DEFAULT_PASSWORD = "secret-password"


class FakeRedis:
    """In-memory stand-in for the few Redis commands the cache layer uses."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def setex(self, key: str, ttl: int, value: str) -> bool:
        self.store[key] = value
        return True

    def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    def incr(self, key: str) -> int:
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    def ping(self) -> bool:
        return True


@pytest.fixture(scope="session", autouse=True)
def bootstrap() -> None:
    run_startup_tasks()


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch) -> FakeRedis:
    client = FakeRedis()
    monkeypatch.setattr(cache, "_redis_client", client)
    return client


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """Create a database session for testing."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="session")
def password_hash() -> str:
    return hash_password(DEFAULT_PASSWORD)


@pytest.fixture()
def make_user(db: Session, password_hash: str) -> Callable[..., models.User]:
    def _make(role: RoleName | None = RoleName.SUBSCRIBER, **fields) -> models.User:
        fields.setdefault("name", "Test User")
        fields.setdefault("email", f"user-{uuid.uuid4().hex[:12]}@example.com")
        user = models.User(password_hash=password_hash, **fields)
        if role is not None:
            user.roles.append(db.query(models.Role).filter(models.Role.name == role.value).one())
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def auth_headers() -> Callable[[models.User], dict[str, str]]:
    def _headers(user: models.User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user).token}"}

    return _headers


@pytest.fixture()
def admin(make_user) -> models.User:
    return make_user(RoleName.ADMINISTRATOR, name="Admin")


@pytest.fixture()
def editor(make_user) -> models.User:
    return make_user(RoleName.EDITOR, name="Editor")


@pytest.fixture()
def author(make_user) -> models.User:
    return make_user(RoleName.AUTHOR, name="Author")


@pytest.fixture()
def contributor(make_user) -> models.User:
    return make_user(RoleName.CONTRIBUTOR, name="Contributor")


@pytest.fixture()
def subscriber(make_user) -> models.User:
    return make_user(RoleName.SUBSCRIBER, name="Subscriber")


@pytest.fixture()
def make_article(db: Session) -> Callable[..., models.Article]:
    def _make(creator: models.User, status: ArticleStatus = ArticleStatus.PUBLISHED, **fields) -> models.Article:
        fields.setdefault("title", "A test article")
        fields.setdefault("slug", f"article-{uuid.uuid4().hex[:12]}")
        fields.setdefault("content_markdown", "Some *markdown* body.")
        if status == ArticleStatus.PUBLISHED:
            fields.setdefault("published_at", utcnow() - timedelta(minutes=5))
        article = models.Article(status=status.value, created_by=creator.id, **fields)
        article.author_links = [models.ArticleAuthor(user_id=creator.id, role="main")]
        db.add(article)
        db.commit()
        db.refresh(article)
        return article

    return _make


@pytest.fixture()
def make_comment(db: Session) -> Callable[..., models.Comment]:
    def _make(article: models.Article, user: models.User, status: str = "approved", **fields) -> models.Comment:
        fields.setdefault("content", "Nice read.")
        comment = models.Comment(article_id=article.id, user_id=user.id, status=status, **fields)
        db.add(comment)
        db.commit()
        db.refresh(comment)
        return comment

    return _make


@pytest.fixture()
def default_password() -> str:
    return DEFAULT_PASSWORD
