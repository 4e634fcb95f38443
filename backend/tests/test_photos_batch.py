"""
POST /api/photos/batch/rating, DELETE /api/photos/batch のテスト

テスト観点:
1. 一括評価
   - 存在しない写真は photos に含まれず、残りは更新される
   - 評価値が範囲外なら呼び出し全体を 400 で拒否（1件も更新しない）
   - 空のID一覧は 400
   - 途中の写真で失敗しても、それ以前の更新は確定している
   - 複数枚の場合は「and N others」付きの通知が1件だけ作られる
2. 一括削除
   - 存在しない写真は削除済みとして deleted に数える
   - 部分的な失敗は errors に入り、HTTPステータスは 200
   - User ロールは 403
3. 単体の評価・削除
"""

from unittest.mock import MagicMock

from conftest import auth_headers, count_rows
from models import Photo, PhotoLike, Comment, Notification, ROLE_USER
from services.access import AccessResolver, Principal
from services.batch import BatchMutationCoordinator
from services.hierarchy import CascadeDeleter


def _rating_of(db, photo_id):
    db.expire_all()
    return db.query(Photo).filter(Photo.id == photo_id).first().rating


# ========================
# 一括評価
# ========================

def test_batch_rating_skips_missing_photo(client, db, creator, viewer, make_gallery, make_photo, assign):
    """存在しない写真Bを含む一括評価では A と C だけが返る"""
    gallery = make_gallery(creator, name="Wedding")
    assign(gallery, viewer)
    photo_a = make_photo(gallery, alt="A", rating=5)
    photo_c = make_photo(gallery, alt="C")
    missing_id = 99999

    response = client.post(
        "/api/photos/batch/rating",
        json={"photo_ids": [photo_a.id, missing_id, photo_c.id], "rating": 3},
        headers=auth_headers(viewer)
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["photos"] == [{"id": photo_a.id, "rating": 3}, {"id": photo_c.id, "rating": 3}]
    assert _rating_of(db, photo_a.id) == 3
    assert _rating_of(db, photo_c.id) == 3


def test_batch_rating_out_of_range_rejects_whole_call(client, db, creator, make_gallery, make_photo):
    gallery = make_gallery(creator)
    photo = make_photo(gallery, rating=2)

    for rating in (-1, 6):
        response = client.post(
            "/api/photos/batch/rating",
            json={"photo_ids": [photo.id], "rating": rating},
            headers=auth_headers(creator)
        )
        assert response.status_code == 400

    assert _rating_of(db, photo.id) == 2


def test_batch_rating_empty_ids_is_rejected(client, creator):
    response = client.post(
        "/api/photos/batch/rating",
        json={"photo_ids": [], "rating": 3},
        headers=auth_headers(creator)
    )
    assert response.status_code == 400


def test_batch_rating_missing_ids_field_is_rejected(client, creator):
    response = client.post("/api/photos/batch/rating", json={"rating": 3}, headers=auth_headers(creator))
    assert response.status_code == 422


def test_batch_rating_hides_unreadable_photos(client, db, creator, make_user, make_gallery, make_photo):
    """読み取れない写真は存在しない写真と同じ扱い"""
    gallery = make_gallery(creator)
    photo = make_photo(gallery, rating=1)
    stranger = make_user(ROLE_USER)

    response = client.post(
        "/api/photos/batch/rating",
        json={"photo_ids": [photo.id], "rating": 4},
        headers=auth_headers(stranger)
    )

    assert response.status_code == 200
    assert response.json()["photos"] == []
    assert _rating_of(db, photo.id) == 1


def test_batch_rating_anonymous_with_gallery_password(client, db, creator, make_gallery, make_photo):
    gallery = make_gallery(creator, password="abc123")
    photo = make_photo(gallery)

    denied = client.post("/api/photos/batch/rating", json={"photo_ids": [photo.id], "rating": 4})
    allowed = client.post(
        "/api/photos/batch/rating",
        json={"photo_ids": [photo.id], "rating": 4},
        headers={"X-Gallery-Password": "abc123"}
    )

    assert denied.json()["photos"] == []
    assert allowed.json()["photos"] == [{"id": photo.id, "rating": 4}]


def test_batch_rating_emits_single_aggregated_notification(client, db, creator, viewer, make_gallery, make_photo, assign):
    gallery = make_gallery(creator, name="Wedding")
    assign(gallery, viewer)
    photos = [make_photo(gallery, alt=f"Photo {i}") for i in range(3)]

    response = client.post(
        "/api/photos/batch/rating",
        json={"photo_ids": [p.id for p in photos], "rating": 4},
        headers=auth_headers(viewer)
    )

    assert response.status_code == 200
    db.expire_all()
    notifications = db.query(Notification).filter(Notification.user_id == creator.id).all()
    assert len(notifications) == 1
    assert notifications[0].type == "rating"
    assert notifications[0].message == 'viewer rated photo "Photo 0" and 2 others in gallery "Wedding" with 4 stars'


def test_single_rating_emits_plain_notification(client, db, creator, make_gallery, make_photo):
    gallery = make_gallery(creator, name="Wedding")
    photo = make_photo(gallery, alt="Cake")

    response = client.post(
        f"/api/photos/{photo.id}/rating",
        json={"rating": 1, "user_name": "Grandma"},
        headers=auth_headers(creator)
    )

    assert response.status_code == 200
    assert response.json() == {"id": photo.id, "rating": 1}
    db.expire_all()
    notification = db.query(Notification).one()
    assert notification.message == 'Grandma rated photo "Cake" in gallery "Wedding" with 1 star'
    assert notification.actor_name == "Grandma"


def test_batch_rating_keeps_earlier_updates_when_later_item_fails(db, creator, make_gallery, make_photo, storage):
    """途中で失敗しても、それ以前のコミットは取り消されない"""
    gallery = make_gallery(creator)
    first = make_photo(gallery, rating=0)
    first_id = first.id
    second = make_photo(gallery, rating=0)
    second_id = second.id

    original_commit = db.commit
    calls = {"n": 0}

    def flaky_commit():
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("connection lost")
        original_commit()

    db.commit = flaky_commit
    emitter = MagicMock()
    coordinator = BatchMutationCoordinator(db, AccessResolver(db), CascadeDeleter(db, storage), emitter)
    try:
        result = coordinator.set_rating(Principal.from_user(creator), [first_id, second_id], 5)
    finally:
        db.commit = original_commit

    assert result["success"] is True
    # 更新に失敗した写真も残っていれば保存済みの評価で返す
    assert result["photos"] == [{"id": first_id, "rating": 5}, {"id": second_id, "rating": 0}]
    assert result["message"] == "Updated rating for 1 photo(s)"
    assert _rating_of(db, first_id) == 5
    assert _rating_of(db, second_id) == 0


# ========================
# 一括削除
# ========================

def test_batch_delete_counts_missing_as_deleted(client, db, storage, creator, make_gallery, make_photo):
    """存在しない Y を含む削除では deleted が3件、errors が空"""
    gallery = make_gallery(creator)
    photo_x = make_photo(gallery)
    photo_z = make_photo(gallery)
    ids = [photo_x.id, 99999, photo_z.id]
    db.add(Comment(photo_id=photo_x.id, commenter_name="Guest", text="Nice"))
    db.add(PhotoLike(photo_id=photo_z.id, is_liked=True))
    db.commit()
    file_path = storage.resolve(photo_x.file_path)

    response = client.request(
        "DELETE", "/api/photos/batch", json={"photo_ids": ids}, headers=auth_headers(creator)
    )

    assert response.status_code == 200
    data = response.json()
    assert data["deleted"] == ids
    assert data["errors"] == []
    assert data["success"] == 3
    assert data["failed"] == 0
    assert count_rows(db, Photo, Photo.id.in_(ids)) == 0
    assert count_rows(db, Comment) == 0
    assert count_rows(db, PhotoLike) == 0
    assert not file_path.exists()


def test_batch_delete_reports_item_errors(db, storage, creator, make_gallery, make_photo):
    """個別の失敗は errors に入り、残りの削除は続行する"""
    gallery = make_gallery(creator)
    good = make_photo(gallery)
    bad = make_photo(gallery)
    good_id, bad_id = good.id, bad.id

    deleter = CascadeDeleter(db, storage)
    original_delete = deleter.delete_photo

    def flaky_delete(photo):
        if photo.id == bad_id:
            raise RuntimeError("row is locked")
        original_delete(photo)

    deleter.delete_photo = flaky_delete
    coordinator = BatchMutationCoordinator(db, AccessResolver(db), deleter, MagicMock())

    result = coordinator.batch_delete(Principal.from_user(creator), [bad_id, good_id])

    assert result["deleted"] == [good_id]
    assert result["errors"] == [{"photo_id": bad_id, "error": "row is locked"}]
    assert result["success"] == 1
    assert result["failed"] == 1
    assert count_rows(db, Photo, Photo.id == bad_id) == 1


def test_batch_delete_requires_write_role(client, db, creator, viewer, make_gallery, make_photo, assign):
    gallery = make_gallery(creator)
    assign(gallery, viewer)
    photo = make_photo(gallery)

    response = client.request(
        "DELETE", "/api/photos/batch", json={"photo_ids": [photo.id]}, headers=auth_headers(viewer)
    )

    assert response.status_code == 403
    assert count_rows(db, Photo, Photo.id == photo.id) == 1


def test_batch_delete_empty_ids_is_rejected(client, creator):
    response = client.request(
        "DELETE", "/api/photos/batch", json={"photo_ids": []}, headers=auth_headers(creator)
    )
    assert response.status_code == 400


def test_batch_delete_unauthenticated(client):
    response = client.request("DELETE", "/api/photos/batch", json={"photo_ids": [1]})
    assert response.status_code in (401, 403)


def test_batch_delete_does_not_notify(client, db, creator, make_gallery, make_photo):
    gallery = make_gallery(creator)
    photo = make_photo(gallery)

    client.request("DELETE", "/api/photos/batch", json={"photo_ids": [photo.id]}, headers=auth_headers(creator))

    assert count_rows(db, Notification) == 0


# ========================
# 単体の削除
# ========================

def test_delete_single_photo(client, db, storage, creator, make_gallery, make_photo):
    gallery = make_gallery(creator)
    photo = make_photo(gallery)
    photo_id = photo.id
    paths = [storage.resolve(p) for p in (photo.file_path, photo.medium_path, photo.thumbnail_path)]

    response = client.delete(f"/api/photos/{photo_id}", headers=auth_headers(creator))

    assert response.status_code == 204
    assert count_rows(db, Photo, Photo.id == photo_id) == 0
    assert not any(path.exists() for path in paths)


def test_delete_single_photo_not_found(client, creator):
    response = client.delete("/api/photos/99999", headers=auth_headers(creator))
    assert response.status_code == 404


def test_delete_single_photo_requires_write_role(client, db, creator, viewer, make_gallery, make_photo, assign):
    gallery = make_gallery(creator)
    assign(gallery, viewer)
    photo = make_photo(gallery)

    response = client.delete(f"/api/photos/{photo.id}", headers=auth_headers(viewer))

    assert response.status_code == 403
