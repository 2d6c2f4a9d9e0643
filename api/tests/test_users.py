"""Profiles, follows and user administration."""

from __future__ import annotations

from sqlalchemy.orm import Session

from app import models
from app.enums import RoleName


# ============================================================================
# PROFILE
# ============================================================================


def test_me_lists_roles_and_permissions(client, author, auth_headers):
    data = client.get("/me", headers=auth_headers(author)).json()["data"]
    assert data["id"] == author.id
    assert [r["name"] for r in data["roles"]] == ["author"]
    assert "publish_posts" in data["permissions"]
    assert "approve_posts" not in data["permissions"]
    assert data["status"] == "active"


def test_update_own_profile(client, subscriber, auth_headers):
    response = client.put(
        "/me",
        json={"name": "  New Name ", "bio": "Reader of things", "website": "https://example.com"},
        headers=auth_headers(subscriber),
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "New Name"
    assert data["bio"] == "Reader of things"

    cleared = client.put("/me", json={"bio": None}, headers=auth_headers(subscriber)).json()["data"]
    assert cleared["bio"] is None
    assert cleared["website"] == "https://example.com"


def test_public_profile_hides_email(client, author, subscriber, auth_headers):
    data = client.get(f"/users/{author.id}/profile", headers=auth_headers(subscriber)).json()["data"]
    assert data["name"] == "Author"
    assert "email" not in data
    assert client.get("/users/999999/profile", headers=auth_headers(subscriber)).status_code == 404


# ============================================================================
# FOLLOWS
# ============================================================================


def test_follow_and_unfollow(client, author, subscriber, auth_headers):
    headers = auth_headers(subscriber)

    followed = client.post(f"/users/{author.id}/follow", headers=headers)
    assert followed.json()["data"] == {"user_id": author.id, "following": True}
    again = client.post(f"/users/{author.id}/follow", headers=headers)
    assert again.status_code == 200

    profile = client.get(f"/users/{author.id}/profile", headers=headers).json()["data"]
    assert profile["followers_count"] == 1
    followers = client.get(f"/users/{author.id}/followers", headers=headers).json()["data"]
    assert [u["id"] for u in followers["users"]] == [subscriber.id]
    following = client.get(f"/users/{subscriber.id}/following", headers=headers).json()["data"]
    assert [u["id"] for u in following["users"]] == [author.id]

    unfollowed = client.post(f"/users/{author.id}/unfollow", headers=headers)
    assert unfollowed.json()["data"]["following"] is False
    assert client.post(f"/users/{author.id}/unfollow", headers=headers).status_code == 409


def test_cannot_follow_self_or_missing_user(client, subscriber, auth_headers):
    headers = auth_headers(subscriber)
    assert client.post(f"/users/{subscriber.id}/follow", headers=headers).status_code == 409
    assert client.post("/users/999999/follow", headers=headers).status_code == 404


# ============================================================================
# ADMINISTRATION
# ============================================================================


def test_admin_creates_user_with_default_role(client, admin, auth_headers):
    response = client.post(
        "/admin/users",
        json={"name": "Created", "email": "Created.User@Example.com", "password": "long-enough-pw"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["email"] == "created.user@example.com"
    assert [r["name"] for r in data["roles"]] == ["subscriber"]

    duplicate = client.post(
        "/admin/users",
        json={"name": "Again", "email": "created.user@example.com", "password": "long-enough-pw"},
        headers=auth_headers(admin),
    )
    assert duplicate.status_code == 422


def test_editor_can_view_but_not_create(client, editor, subscriber, auth_headers):
    headers = auth_headers(editor)
    assert client.get(f"/admin/users/{subscriber.id}", headers=headers).status_code == 200
    response = client.post(
        "/admin/users", json={"name": "X", "email": "x@example.com", "password": "long-enough-pw"}, headers=headers
    )
    assert response.status_code == 403


def test_list_users_filters(client, db: Session, admin, make_user, auth_headers):
    marker = "filter-marker"
    active = make_user(name=f"{marker} active")
    banned = make_user(name=f"{marker} banned")
    client.post(f"/admin/users/{banned.id}/ban", headers=auth_headers(admin))

    headers = auth_headers(admin)
    everyone = client.get("/admin/users", params={"search": marker}, headers=headers).json()["data"]
    assert {u["id"] for u in everyone["users"]} == {active.id, banned.id}

    only_banned = client.get("/admin/users", params={"search": marker, "status": "banned"}, headers=headers)
    assert [u["id"] for u in only_banned.json()["data"]["users"]] == [banned.id]

    by_name = client.get(
        "/admin/users", params={"search": marker, "sort_by": "name", "sort_direction": "asc"}, headers=headers
    )
    assert [u["id"] for u in by_name.json()["data"]["users"]] == [active.id, banned.id]


def test_changing_roles_takes_effect_immediately(client, admin, subscriber, db: Session, auth_headers):
    headers = auth_headers(subscriber)
    assert client.get("/media", headers=headers).status_code == 403

    author_role = db.query(models.Role).filter(models.Role.name == RoleName.AUTHOR.value).one()
    response = client.put(
        f"/admin/users/{subscriber.id}", json={"role_ids": [author_role.id]}, headers=auth_headers(admin)
    )
    assert [r["name"] for r in response.json()["data"]["roles"]] == ["author"]
    assert client.get("/media", headers=headers).status_code == 200


def test_password_change_revokes_tokens(client, admin, subscriber, auth_headers):
    headers = auth_headers(subscriber)
    client.put(f"/admin/users/{subscriber.id}", json={"password": "brand-new-password"}, headers=auth_headers(admin))
    assert client.get("/me", headers=headers).status_code == 401


def test_ban_and_unban(client, admin, subscriber, auth_headers, default_password):
    headers = auth_headers(subscriber)
    banned = client.post(
        f"/admin/users/{subscriber.id}/ban", json={"reason": "Spam"}, headers=auth_headers(admin)
    ).json()["data"]
    assert banned["status"] == "banned"
    assert client.get("/me", headers=headers).status_code == 401

    login = client.post("/auth/login", json={"email": subscriber.email, "password": default_password})
    assert login.status_code == 401

    unbanned = client.post(f"/admin/users/{subscriber.id}/unban", headers=auth_headers(admin)).json()["data"]
    assert unbanned["status"] == "active"
    login = client.post("/auth/login", json={"email": subscriber.email, "password": default_password})
    assert login.status_code == 200


def test_block_and_unblock(client, admin, subscriber, auth_headers, db: Session):
    blocked = client.post(f"/admin/users/{subscriber.id}/block", headers=auth_headers(admin)).json()["data"]
    assert blocked["status"] == "blocked"
    unblocked = client.post(f"/admin/users/{subscriber.id}/unblock", headers=auth_headers(admin)).json()["data"]
    assert unblocked["status"] == "active"

    actions = [
        log.action
        for log in db.query(models.AuditLog)
        .filter(models.AuditLog.target_type == "user", models.AuditLog.target_id == str(subscriber.id))
        .order_by(models.AuditLog.id)
    ]
    assert actions == ["block_user", "unblock_user"]


def test_admin_cannot_act_on_self(client, admin, auth_headers):
    headers = auth_headers(admin)
    for action in ("ban", "block"):
        assert client.post(f"/admin/users/{admin.id}/{action}", headers=headers).status_code == 403
    assert client.delete(f"/admin/users/{admin.id}", headers=headers).status_code == 403


def test_delete_user(client, db: Session, admin, make_user, auth_headers):
    doomed_id = make_user().id
    assert client.delete(f"/admin/users/{doomed_id}", headers=auth_headers(admin)).status_code == 200
    db.expire_all()
    assert db.get(models.User, doomed_id) is None
    assert client.get(f"/admin/users/{doomed_id}", headers=auth_headers(admin)).status_code == 404
