from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from app import models
from app.services import newsletter
from app.utils.clock import utcnow


@pytest.fixture()
def outbox(monkeypatch) -> dict[str, list[tuple[str, str]]]:
    """Capture newsletter emails instead of sending them."""
    sent: dict[str, list[tuple[str, str]]] = {"verify": [], "unsubscribe": []}
    monkeypatch.setattr(
        newsletter,
        "send_newsletter_verification_email",
        lambda email, token, minutes: sent["verify"].append((email, token)),
    )
    monkeypatch.setattr(
        newsletter,
        "send_newsletter_unsubscribe_email",
        lambda email, token, minutes: sent["unsubscribe"].append((email, token)),
    )
    return sent


def _email() -> str:
    return f"reader-{uuid.uuid4().hex[:10]}@example.com"


def test_double_opt_in(client, outbox):
    email = _email()
    response = client.post("/newsletter/subscribe", json={"email": email.upper()})
    assert response.status_code == 200
    assert outbox["verify"][0][0] == email

    token = outbox["verify"][0][1]
    verified = client.post("/newsletter/verify", json={"email": email, "token": token})
    assert verified.status_code == 200
    data = verified.json()["data"]
    assert data["is_verified"] is True
    assert data["unsubscribed_at"] is None

    # Tokens are single use
    again = client.post("/newsletter/verify", json={"email": email, "token": token})
    assert again.status_code == 404


def test_verified_subscriber_rejects_wrong_token(client, outbox):
    email = _email()
    client.post("/newsletter/subscribe", json={"email": email})
    client.post("/newsletter/verify", json={"email": email, "token": outbox["verify"][0][1]})

    response = client.post("/newsletter/verify", json={"email": email, "token": "not-the-token"})
    assert response.status_code == 404
    assert response.json()["data"] is None


def test_verify_with_live_token_leaves_verified_subscriber_unchanged(client, db: Session, outbox):
    email = _email()
    client.post("/newsletter/subscribe", json={"email": email})
    client.post("/newsletter/verify", json={"email": email, "token": outbox["verify"][0][1]})
    client.post("/newsletter/unsubscribe", json={"email": email})

    response = client.post("/newsletter/verify", json={"email": email, "token": outbox["unsubscribe"][0][1]})
    assert response.status_code == 200
    assert response.json()["data"]["is_verified"] is True

    db.expire_all()
    subscriber = db.query(models.NewsletterSubscriber).filter_by(email=email).one()
    assert subscriber.verification_token is not None
    assert subscriber.unsubscribed_at is None


def test_wrong_or_expired_token(client, db: Session, outbox):
    email = _email()
    client.post("/newsletter/subscribe", json={"email": email})

    wrong = client.post("/newsletter/verify", json={"email": email, "token": "nope"})
    assert wrong.status_code == 404

    subscriber = db.query(models.NewsletterSubscriber).filter_by(email=email).one()
    subscriber.verification_token_expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    expired = client.post("/newsletter/verify", json={"email": email, "token": outbox["verify"][0][1]})
    assert expired.status_code == 404


def test_token_is_stored_hashed(db: Session, outbox):
    email = _email()
    newsletter.subscribe(db, email)
    token = outbox["verify"][0][1]
    subscriber = db.query(models.NewsletterSubscriber).filter_by(email=email).one()
    assert subscriber.verification_token != token
    assert len(subscriber.verification_token) == 64


def test_unsubscribe_flow(client, outbox):
    email = _email()
    client.post("/newsletter/subscribe", json={"email": email})
    client.post("/newsletter/verify", json={"email": email, "token": outbox["verify"][0][1]})

    response = client.post("/newsletter/unsubscribe", json={"email": email})
    assert response.status_code == 200
    token = outbox["unsubscribe"][0][1]

    done = client.post("/newsletter/verify-unsubscribe", json={"email": email, "token": token})
    assert done.status_code == 200
    assert done.json()["data"]["unsubscribed_at"] is not None

    twice = client.post("/newsletter/unsubscribe", json={"email": email})
    assert twice.status_code == 409


def test_unsubscribe_requires_verified_subscription(client, outbox):
    email = _email()
    assert client.post("/newsletter/unsubscribe", json={"email": email}).status_code == 404

    client.post("/newsletter/subscribe", json={"email": email})
    assert client.post("/newsletter/unsubscribe", json={"email": email}).status_code == 409


def test_resubscribe_after_unsubscribing(client, db: Session, outbox):
    email = _email()
    client.post("/newsletter/subscribe", json={"email": email})
    client.post("/newsletter/verify", json={"email": email, "token": outbox["verify"][0][1]})
    client.post("/newsletter/unsubscribe", json={"email": email})
    client.post("/newsletter/verify-unsubscribe", json={"email": email, "token": outbox["unsubscribe"][0][1]})

    client.post("/newsletter/subscribe", json={"email": email})
    subscriber = db.query(models.NewsletterSubscriber).filter_by(email=email).one()
    assert subscriber.unsubscribed_at is None
    assert subscriber.is_verified is False
    assert len(outbox["verify"]) == 2


def test_logged_in_subscription_links_user(client, db: Session, subscriber, auth_headers, outbox):
    client.post("/newsletter/subscribe", json={"email": subscriber.email}, headers=auth_headers(subscriber))
    row = db.query(models.NewsletterSubscriber).filter_by(email=subscriber.email).one()
    assert row.user_id == subscriber.id


def test_admin_listing_and_delete(client, admin, editor, auth_headers, outbox):
    verified, pending = _email(), _email()
    client.post("/newsletter/subscribe", json={"email": verified})
    client.post("/newsletter/subscribe", json={"email": pending})
    client.post("/newsletter/verify", json={"email": verified, "token": outbox["verify"][0][1]})

    listing = client.get(
        "/admin/newsletter/subscribers", params={"search": verified, "status": "verified"}, headers=auth_headers(editor)
    ).json()["data"]
    assert [s["email"] for s in listing["subscribers"]] == [verified]

    unverified = client.get(
        "/admin/newsletter/subscribers", params={"search": pending, "status": "verified"}, headers=auth_headers(editor)
    ).json()["data"]
    assert unverified["subscribers"] == []

    subscriber_id = listing["subscribers"][0]["id"]
    # Editors may look but not delete
    assert client.delete(f"/admin/newsletter/subscribers/{subscriber_id}", headers=auth_headers(editor)).status_code == 403
    assert client.delete(f"/admin/newsletter/subscribers/{subscriber_id}", headers=auth_headers(admin)).status_code == 200
    assert client.delete(f"/admin/newsletter/subscribers/{subscriber_id}", headers=auth_headers(admin)).status_code == 404


def test_subscribers_hidden_from_subscribers(client, subscriber, auth_headers):
    response = client.get("/admin/newsletter/subscribers", headers=auth_headers(subscriber))
    assert response.status_code == 403
