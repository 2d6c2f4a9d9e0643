"""Role table, permission evaluation and the permission cache."""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from app import models
from app.enums import RoleName
from app.permissions import (
    ALL_PERMISSIONS,
    CACHE_VERSION_KEY,
    ROLE_PERMISSIONS,
    Perm,
    bump_cache_version,
    can,
    can_on_own_or_all,
    get_cache_version,
    get_user_permissions,
)


def test_seed_creates_every_permission_and_role(db: Session):
    names = {name for (name,) in db.query(models.Permission.name).all()}
    assert set(ALL_PERMISSIONS) <= names
    roles = {role.name for role in db.query(models.Role).all()}
    assert {r.value for r in RoleName} <= roles


def test_administrator_holds_every_permission(admin: models.User):
    assert set(ALL_PERMISSIONS) <= get_user_permissions(admin)


@pytest.mark.parametrize(
    "role, permission, expected",
    [
        (RoleName.EDITOR, Perm.EDIT_OTHERS_POSTS, True),
        (RoleName.EDITOR, Perm.APPROVE_POSTS, False),
        (RoleName.AUTHOR, Perm.PUBLISH_POSTS, True),
        (RoleName.AUTHOR, Perm.EDIT_OTHERS_POSTS, False),
        (RoleName.CONTRIBUTOR, Perm.PUBLISH_POSTS, False),
        (RoleName.CONTRIBUTOR, Perm.CREATE_POSTS, True),
        (RoleName.SUBSCRIBER, Perm.CREATE_COMMENTS, True),
        (RoleName.SUBSCRIBER, Perm.CREATE_POSTS, False),
    ],
)
def test_role_matrix(make_user, role, permission, expected):
    user = make_user(role)
    assert can(user, permission) is expected
    assert (permission in ROLE_PERMISSIONS[role]) is expected


def test_unknown_permission_is_denied(admin: models.User):
    assert can(admin, "launch_rockets") is False
    assert can(None, Perm.READ) is False


def test_user_without_roles_has_nothing(make_user):
    user = make_user(role=None)
    assert get_user_permissions(user) == frozenset()


def test_own_or_all(author: models.User, editor: models.User):
    assert can_on_own_or_all(author, Perm.EDIT_OTHERS_POSTS, Perm.EDIT_POSTS, author.id)
    assert not can_on_own_or_all(author, Perm.EDIT_OTHERS_POSTS, Perm.EDIT_POSTS, editor.id)
    assert can_on_own_or_all(editor, Perm.EDIT_OTHERS_POSTS, Perm.EDIT_POSTS, author.id)
    assert not can_on_own_or_all(author, Perm.EDIT_OTHERS_POSTS, Perm.EDIT_POSTS, None)


def test_permissions_are_cached_per_version(subscriber: models.User, fake_redis):
    assert get_cache_version() == 0
    get_user_permissions(subscriber)
    assert f"user_permissions:{subscriber.id}:v0" in fake_redis.store

    assert bump_cache_version() == 1
    assert fake_redis.store[CACHE_VERSION_KEY] == "1"
    get_user_permissions(subscriber)
    assert f"user_permissions:{subscriber.id}:v1" in fake_redis.store


def test_cache_is_optional(subscriber: models.User, monkeypatch):
    from app import cache

    monkeypatch.setattr(cache, "get_redis_client", lambda: None)
    assert can(subscriber, Perm.CREATE_COMMENTS)


def test_permission_store_failure_denies(subscriber: models.User, monkeypatch):
    from sqlalchemy.exc import OperationalError

    from app import permissions

    def broken(db, role_ids):
        raise OperationalError("SELECT", {}, Exception("db down"))

    monkeypatch.setattr(permissions, "permissions_for_roles", broken)
    assert get_user_permissions(subscriber) == frozenset()
    assert can(subscriber, Perm.READ) is False


def test_startup_survives_unreachable_database(monkeypatch):
    from sqlalchemy.exc import OperationalError

    from app import main

    def unreachable():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(main, "_STARTUP_COMPLETE", False)
    monkeypatch.setattr(main, "run_migrations", unreachable)

    main.run_startup_tasks()
    assert main._STARTUP_COMPLETE is False


def test_startup_still_raises_other_failures(monkeypatch):
    from app import main

    def broken():
        raise RuntimeError("bad revision")

    monkeypatch.setattr(main, "_STARTUP_COMPLETE", False)
    monkeypatch.setattr(main, "run_migrations", broken)

    with pytest.raises(RuntimeError):
        main.run_startup_tasks()


def test_forbidden_uses_envelope(client, subscriber, auth_headers):
    response = client.get("/admin/users", headers=auth_headers(subscriber))
    assert response.status_code == 403
    assert response.json() == {
        "status": False,
        "message": "This action is unauthorized.",
        "data": None,
        "error": None,
    }


def test_role_permission_update_invalidates_cache(client, db: Session, admin, make_user, auth_headers):
    user = make_user(RoleName.CONTRIBUTOR)
    headers = auth_headers(user)
    assert client.get("/media", headers=headers).status_code == 200

    role = db.query(models.Role).filter(models.Role.name == RoleName.CONTRIBUTOR.value).one()
    original = sorted(p.name for p in role.permissions)
    reduced = [name for name in original if name != Perm.VIEW_MEDIA]
    try:
        response = client.put(
            f"/admin/roles/{role.id}/permissions",
            json={"permissions": reduced},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert Perm.VIEW_MEDIA not in {p["name"] for p in response.json()["data"]["permissions"]}
        assert client.get("/media", headers=headers).status_code == 403
    finally:
        client.put(
            f"/admin/roles/{role.id}/permissions",
            json={"permissions": original},
            headers=auth_headers(admin),
        )


def test_role_permission_update_rejects_unknown_names(client, db: Session, admin, auth_headers):
    role = db.query(models.Role).filter(models.Role.name == RoleName.AUTHOR.value).one()
    response = client.put(
        f"/admin/roles/{role.id}/permissions",
        json={"permissions": ["read", "teleport"]},
        headers=auth_headers(admin),
    )
    assert response.status_code == 422
    assert "teleport" in response.json()["message"]


def test_list_roles_and_permissions(client, admin, auth_headers, fake_redis):
    roles = client.get("/admin/roles", headers=auth_headers(admin))
    assert roles.status_code == 200
    assert {r["name"] for r in roles.json()["data"]["roles"]} >= {r.value for r in RoleName}
    assert "roles:all" in fake_redis.store

    permissions = client.get("/admin/permissions", headers=auth_headers(admin))
    assert permissions.status_code == 200
    assert len(permissions.json()["data"]["permissions"]) >= len(ALL_PERMISSIONS)
