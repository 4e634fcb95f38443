"""
GET /api/galleries/:id/photos, /preview, /sub-galleries のテスト

テスト観点:
1. 写真一覧にいいね状態（多数決）・コメント・署名付きURLが含まれる
2. 一覧の取得がタイムアウトした場合は 408（取得は専用のセッションで行う）
3. 読み取り権限がない場合は 404
4. プレビューとサブギャラリー一覧
"""

import threading
import time

import database
from conftest import auth_headers
from database import SessionLocal
from models import Comment
from services import listing
from services.likes import add_like


def test_list_photos_with_likes_and_comments(client, db, creator, make_gallery, make_photo):
    gallery = make_gallery(creator)
    first = make_photo(gallery, alt="First", rating=3)
    second = make_photo(gallery, alt="Second")
    add_like(db, first.id, True)
    add_like(db, first.id, True)
    add_like(db, first.id, False)
    add_like(db, second.id, False)
    db.add(Comment(photo_id=first.id, commenter_name="Grandma", text="Lovely"))
    db.commit()

    response = client.get(f"/api/galleries/{gallery.id}/photos", headers=auth_headers(creator))

    assert response.status_code == 200
    photos = response.json()
    assert [p["alt"] for p in photos] == ["First", "Second"]

    assert photos[0]["rating"] == 3
    assert photos[0]["is_liked"] is True
    assert photos[0]["like_count"] == 2
    assert photos[0]["comments"][0]["author"] == "Grandma"
    assert photos[0]["comments"][0]["text"] == "Lovely"
    assert photos[0]["medium_src"].startswith(f"/api/files/medium/{first.id}?signature=")
    assert photos[0]["original_src"].startswith(f"/api/files/original/{first.id}?signature=")

    assert photos[1]["is_liked"] is False
    assert photos[1]["comments"] == []


def test_list_photos_empty_gallery(client, creator, make_gallery):
    gallery = make_gallery(creator)
    response = client.get(f"/api/galleries/{gallery.id}/photos", headers=auth_headers(creator))
    assert response.json() == []


def test_list_photos_timeout_returns_408(client, creator, make_gallery, make_photo, monkeypatch):
    """一覧の取得が制限時間を超えた場合は 408"""
    gallery = make_gallery(creator)
    make_photo(gallery)

    def slow_loader(db, gallery_id):
        time.sleep(0.5)
        return []

    monkeypatch.setattr(listing, "load_photos_with_data", slow_loader)
    monkeypatch.setattr(listing, "PHOTO_LIST_TIMEOUT_SECONDS", 0.05)

    response = client.get(f"/api/galleries/{gallery.id}/photos", headers=auth_headers(creator))

    assert response.status_code == 408
    assert response.json()["detail"] == "Gallery too large - request aborted"


def test_list_photos_hidden_from_unrelated_user(client, creator, viewer, make_gallery, make_photo):
    gallery = make_gallery(creator)
    make_photo(gallery)
    response = client.get(f"/api/galleries/{gallery.id}/photos", headers=auth_headers(viewer))
    assert response.status_code == 404


def test_list_photos_for_assigned_user_in_sub_gallery(client, creator, viewer, make_gallery, make_photo, assign):
    root = make_gallery(creator, name="Root")
    child = make_gallery(creator, name="Child", parent=root)
    make_photo(child, alt="Inside")
    assign(root, viewer)

    response = client.get(f"/api/galleries/{child.id}/photos", headers=auth_headers(viewer))

    assert response.status_code == 200
    assert [p["alt"] for p in response.json()] == ["Inside"]


def test_preview_returns_first_photo(client, creator, make_gallery, make_photo):
    gallery = make_gallery(creator)
    first = make_photo(gallery)
    make_photo(gallery)

    response = client.get(f"/api/galleries/{gallery.id}/preview", headers=auth_headers(creator))

    assert response.status_code == 200
    assert response.json()["photo_id"] == first.id
    assert response.json()["src"].startswith(f"/api/files/thumbnail/{first.id}?")


def test_preview_of_empty_gallery_is_not_found(client, creator, make_gallery):
    gallery = make_gallery(creator)
    assert client.get(f"/api/galleries/{gallery.id}/preview", headers=auth_headers(creator)).status_code == 404


def test_sub_galleries_with_photo_counts(client, creator, make_gallery, make_photo):
    root = make_gallery(creator, name="Root")
    a = make_gallery(creator, name="A", parent=root)
    make_gallery(creator, name="B", parent=root)
    make_photo(a)
    make_photo(a)

    response = client.get(f"/api/galleries/{root.id}/sub-galleries", headers=auth_headers(creator))

    assert response.status_code == 200
    assert [(g["name"], g["photo_count"]) for g in response.json()] == [("A", 2), ("B", 0)]
    assert all(g["parent_id"] == root.id for g in response.json())


def test_listing_runs_in_its_own_session(client, db, creator, make_gallery, make_photo, monkeypatch):
    """ワーカースレッドはリクエストとは別のセッションを開いて閉じる"""
    gallery = make_gallery(creator)
    make_photo(gallery, alt="Only")
    opened = []
    closed = []

    def tracking_session():
        session = SessionLocal()
        original_close = session.close

        def close():
            closed.append(session)
            original_close()

        session.close = close
        opened.append(session)
        return session

    used = []
    original_loader = listing.load_photos_with_data

    def recording_loader(session, gallery_id):
        used.append((session, threading.current_thread()))
        return original_loader(session, gallery_id)

    monkeypatch.setattr(database, "SessionLocal", tracking_session)
    monkeypatch.setattr(listing, "load_photos_with_data", recording_loader)

    response = client.get(f"/api/galleries/{gallery.id}/photos", headers=auth_headers(creator))

    assert response.status_code == 200
    assert [p["alt"] for p in response.json()] == ["Only"]
    # 1つ目はリクエスト用（get_db）、2つ目が一覧取得用
    assert len(opened) == 2
    session, thread = used[0]
    assert session is opened[1]
    assert session in closed
    assert thread is not threading.main_thread()
