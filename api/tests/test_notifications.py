from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from app import models
from app.enums import NotificationAudience, NotificationType, RoleName
from app.services.notifications import NotificationService
from app.tasks import _announce_published_article


def _send(client, headers, **payload):
    payload.setdefault("type", "system_alert")
    payload.setdefault("title", "Maintenance")
    payload.setdefault("body", "We will be down for five minutes.")
    return client.post("/admin/notifications", json=payload, headers=headers)


def test_send_to_specific_users(client, admin, editor, make_user, auth_headers):
    bystander = make_user(RoleName.EDITOR)
    response = _send(client, auth_headers(admin), audience="specific_users", user_ids=[editor.id])
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["message"] == {"title": "Maintenance", "body": "We will be down for five minutes."}
    assert data["audiences"] == [{"audience_type": "user", "audience_value": str(editor.id)}]

    inbox = client.get("/me/notifications", headers=auth_headers(editor)).json()["data"]
    assert [n["notification"]["id"] for n in inbox["notifications"]] == [data["id"]]
    assert client.get("/me/notifications", headers=auth_headers(bystander)).json()["data"]["notifications"] == []


def test_specific_users_needs_ids(client, admin, auth_headers):
    response = _send(client, auth_headers(admin), audience="specific_users")
    assert response.status_code == 422


def test_send_requires_permission(client, editor, auth_headers):
    assert _send(client, auth_headers(editor)).status_code == 403


def test_administrators_audience(db: Session, admin, subscriber):
    notification = NotificationService.create_notification(
        db,
        notification_type=NotificationType.SYSTEM_ALERT,
        title="Admins only",
        body="Disk almost full.",
        audience=NotificationAudience.ADMINISTRATORS,
    )
    recipients = NotificationService.recipient_ids(db, notification)
    assert admin.id in recipients
    assert subscriber.id not in recipients


def test_distribute_is_idempotent(db: Session, subscriber, editor):
    notification = NotificationService.create_notification(
        db,
        notification_type=NotificationType.NEWSLETTER,
        title="Issue 1",
        body="Hello readers",
        audience=NotificationAudience.SPECIFIC_USERS,
        user_ids=[subscriber.id, editor.id, subscriber.id, 987654321],
    )
    assert NotificationService.distribute(db, notification.id) == 2
    assert NotificationService.distribute(db, notification.id) == 0
    assert NotificationService.distribute(db, 987654321) == 0

    rows = db.query(models.UserNotification).filter_by(notification_id=notification.id).all()
    assert sorted(row.user_id for row in rows) == sorted([subscriber.id, editor.id])


def test_inbox_read_flow(client, admin, editor, auth_headers):
    headers = auth_headers(editor)
    for title in ("One", "Two", "Three"):
        _send(client, auth_headers(admin), title=title, audience="specific_users", user_ids=[editor.id])

    assert client.get("/me/notifications/unread-count", headers=headers).json()["data"] == {"count": 3}

    inbox = client.get("/me/notifications", headers=headers).json()["data"]["notifications"]
    assert [n["notification"]["message"]["title"] for n in inbox] == ["Three", "Two", "One"]

    entry_id = inbox[0]["id"]
    read = client.post(f"/me/notifications/{entry_id}/read", headers=headers).json()["data"]
    assert read["is_read"] is True and read["read_at"] is not None

    unread = client.get("/me/notifications", params={"is_read": False}, headers=headers).json()["data"]
    assert len(unread["notifications"]) == 2

    marked = client.post("/me/notifications/read-all", headers=headers).json()["data"]
    assert marked == {"updated": 2}
    assert client.get("/me/notifications/unread-count", headers=headers).json()["data"]["count"] == 0

    assert client.delete(f"/me/notifications/{entry_id}", headers=headers).status_code == 200
    remaining = client.get("/me/notifications", headers=headers).json()["data"]["notifications"]
    assert entry_id not in {n["id"] for n in remaining}


def test_inbox_entries_are_private(client, admin, editor, make_user, auth_headers):
    _send(client, auth_headers(admin), audience="specific_users", user_ids=[editor.id])
    entry_id = client.get("/me/notifications", headers=auth_headers(editor)).json()["data"]["notifications"][0]["id"]
    intruder = make_user(RoleName.EDITOR)

    assert client.post(f"/me/notifications/{entry_id}/read", headers=auth_headers(intruder)).status_code == 403
    assert client.delete(f"/me/notifications/{entry_id}", headers=auth_headers(intruder)).status_code == 403
    assert client.post("/me/notifications/999999/read", headers=auth_headers(editor)).status_code == 404


def test_admin_listing_filters(client, admin, editor, auth_headers):
    headers = auth_headers(admin)
    _send(client, headers, type="newsletter", title="Listing-Filter-Newsletter", audience="administrators")
    _send(client, headers, type="system_alert", title="Listing-Filter-Alert", audience="administrators")

    listing = client.get(
        "/admin/notifications", params={"search": "Listing-Filter", "type": "newsletter"}, headers=headers
    ).json()["data"]
    assert [n["message"]["title"] for n in listing["notifications"]] == ["Listing-Filter-Newsletter"]

    # Viewing the full list also needs manage_notifications
    assert client.get("/admin/notifications", headers=auth_headers(editor)).status_code == 403


def test_new_follower_gets_notified(client, editor, make_user, auth_headers):
    follower = make_user(name="Fan")
    response = client.post(f"/users/{editor.id}/follow", headers=auth_headers(follower))
    assert response.status_code == 200

    inbox = client.get("/me/notifications", headers=auth_headers(editor)).json()["data"]["notifications"]
    assert inbox[0]["notification"]["type"] == "system_alert"
    assert "Fan" in inbox[0]["notification"]["message"]["body"]


def test_subscribers_have_no_inbox(client, subscriber, auth_headers):
    assert client.get("/me/notifications", headers=auth_headers(subscriber)).status_code == 403


def test_retried_announcement_creates_one_notification(db: Session, monkeypatch, admin, editor, make_article):
    article = make_article(admin, title="Retry announcement")
    payload = {"article_id": article.id, "status": "published"}

    distribute = NotificationService.distribute
    attempts = []

    def flaky_distribute(session, notification_id):
        attempts.append(notification_id)
        if len(attempts) == 1:
            raise RuntimeError("connection reset")
        return distribute(session, notification_id)

    monkeypatch.setattr(NotificationService, "distribute", staticmethod(flaky_distribute))

    with pytest.raises(RuntimeError):
        _announce_published_article(db, payload)
    db.rollback()
    _announce_published_article(db, payload)
    _announce_published_article(db, payload)

    notifications = db.query(models.Notification).filter_by(source_key=f"article.published:{article.id}").all()
    assert len(notifications) == 1
    assert attempts == [notifications[0].id] * 3

    recipients = [
        row.user_id
        for row in db.query(models.UserNotification).filter_by(notification_id=notifications[0].id).all()
    ]
    assert editor.id in recipients
    assert len(recipients) == len(set(recipients))
