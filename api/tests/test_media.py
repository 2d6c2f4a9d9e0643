from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image
from sqlalchemy.orm import Session

from app import media_vault, models
from app.enums import RoleName
from app.settings import MEDIA_LOCATION


def _png(width: int = 4, height: int = 3) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


def _upload(client, headers, content: bytes | None = None, filename="Team Photo.png", mime="image/png", **form):
    files = {"file": (filename, content if content is not None else _png(), mime)}
    return client.post("/media", files=files, data=form, headers=headers)


@pytest.mark.parametrize(
    "mime, expected",
    [
        ("image/png", "image"),
        ("video/mp4", "video"),
        ("application/pdf", "document"),
        ("application/zip", "other"),
    ],
)
def test_classify(mime, expected):
    assert media_vault.classify(mime).value == expected


def test_validate_upload_limits():
    with pytest.raises(ValueError):
        media_vault.validate_upload("application/x-sh", 10)
    with pytest.raises(ValueError):
        media_vault.validate_upload("image/png", 0)
    with pytest.raises(ValueError):
        media_vault.validate_upload("image/png", media_vault.MEDIA_MAX_FILE_SIZE + 1)


def test_upload_image_records_dimensions(client, author, auth_headers):
    response = _upload(client, auth_headers(author), content=_png(16, 9), alt_text="Team")
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["type"] == "image"
    assert data["mime_type"] == "image/png"
    assert data["name"] == "Team Photo.png"
    assert data["alt_text"] == "Team"
    assert data["metadata"] == {"width": 16, "height": 9, "dimensions": "16x9"}
    assert data["file_name"].startswith("team-photo-") and data["file_name"].endswith(".png")
    assert data["path"].startswith("media/")
    assert data["url"] == f"/media/{data['path']}"

    assert (Path(MEDIA_LOCATION) / data["path"]).is_file()
    served = client.get(data["url"])
    assert served.status_code == 200
    assert served.content.startswith(b"\x89PNG")


def test_upload_rejects_disallowed_type(client, author, auth_headers):
    response = _upload(client, auth_headers(author), content=b"#!/bin/sh", filename="run.sh", mime="application/x-sh")
    assert response.status_code == 422
    assert "file" in response.json()["error"]


def test_upload_requires_permission(client, subscriber, auth_headers):
    assert _upload(client, auth_headers(subscriber)).status_code == 403


def test_listing_is_scoped_to_own_uploads(client, author, make_user, editor, auth_headers):
    other = make_user(RoleName.AUTHOR)
    mine = _upload(client, auth_headers(author)).json()["data"]
    theirs = _upload(client, auth_headers(other), content=b"plain text", filename="notes.txt", mime="text/plain").json()["data"]

    own = client.get("/media", headers=auth_headers(author)).json()["data"]
    assert {m["id"] for m in own["media"]} == {mine["id"]}
    assert client.get(f"/media/{theirs['id']}", headers=auth_headers(author)).status_code == 404

    managed = client.get("/media", params={"type": "document", "uploaded_by": other.id}, headers=auth_headers(editor))
    assert [m["id"] for m in managed.json()["data"]["media"]] == [theirs["id"]]


def test_update_metadata(client, author, make_user, auth_headers):
    media = _upload(client, auth_headers(author)).json()["data"]
    response = client.put(
        f"/media/{media['id']}", json={"alt_text": "New alt", "caption": "Caption"}, headers=auth_headers(author)
    )
    assert response.status_code == 200
    assert response.json()["data"]["alt_text"] == "New alt"
    assert response.json()["data"]["name"] == media["name"]

    stranger = make_user(RoleName.AUTHOR)
    denied = client.put(f"/media/{media['id']}", json={"caption": "Mine"}, headers=auth_headers(stranger))
    assert denied.status_code == 403


def test_delete_removes_file_and_featured_reference(client, db: Session, author, make_article, auth_headers):
    media = _upload(client, auth_headers(author)).json()["data"]
    article = make_article(author, featured_media_id=media["id"])

    response = client.delete(f"/media/{media['id']}", headers=auth_headers(author))
    assert response.status_code == 200
    assert not (Path(MEDIA_LOCATION) / media["path"]).exists()

    db.expire_all()
    assert db.get(models.Media, media["id"]) is None
    assert db.get(models.Article, article.id).featured_media_id is None
