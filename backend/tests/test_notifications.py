"""
NotificationEmitter / 通知API のテスト

テスト観点:
1. 書き込みの失敗は握りつぶされ、呼び出し元の操作に影響しない
2. 読み取りは最新50件まで、新しい順
3. 既読化（1件・全件）は自分宛ての通知のみ
4. メッセージの組み立て
"""

from unittest.mock import MagicMock

from conftest import auth_headers, count_rows
from models import Notification, Photo, ROLE_USER
from services.notifications import (
    NotificationEmitter, get_notification_emitter, list_for_user,
    rating_message, like_message, comment_message, download_message,
)
from main import app


def _add_notifications(db, user, count):
    for i in range(count):
        db.add(Notification(user_id=user.id, type="like", message=f"message {i}", actor_name="Guest"))
    db.commit()


def test_emit_swallows_database_errors():
    """DBエラーは送出されず、ロールバックしてセッションを閉じる"""
    session = MagicMock()
    session.commit.side_effect = RuntimeError("database is locked")
    emitter = NotificationEmitter(session_factory=lambda: session)

    emitter.emit(user_id=1, gallery_id=1, photo_id=None, type="rating", message="m")

    session.rollback.assert_called_once()
    session.close.assert_called_once()


def test_emit_swallows_session_factory_errors():
    def broken_factory():
        raise RuntimeError("cannot connect")

    NotificationEmitter(session_factory=broken_factory).emit(
        user_id=1, gallery_id=None, photo_id=None, type="like", message="m"
    )


def test_submit_registers_background_task():
    emitter = NotificationEmitter(session_factory=MagicMock())
    background_tasks = MagicMock()

    emitter.submit(background_tasks, user_id=1, gallery_id=2, photo_id=3, type="like", message="m")

    background_tasks.add_task.assert_called_once_with(
        emitter.emit, user_id=1, gallery_id=2, photo_id=3, type="like", message="m"
    )


def test_failing_emitter_does_not_fail_batch_rating(client, db, creator, make_gallery, make_photo):
    """通知の失敗は評価の結果に影響しない"""
    photo = make_photo(make_gallery(creator))

    def broken_factory():
        raise RuntimeError("notifications table is gone")

    app.dependency_overrides[get_notification_emitter] = lambda: NotificationEmitter(session_factory=broken_factory)

    response = client.post(
        "/api/photos/batch/rating",
        json={"photo_ids": [photo.id], "rating": 5},
        headers=auth_headers(creator)
    )

    assert response.status_code == 200
    assert response.json()["photos"] == [{"id": photo.id, "rating": 5}]
    db.expire_all()
    assert db.query(Photo).filter(Photo.id == photo.id).first().rating == 5
    assert count_rows(db, Notification) == 0


def test_list_for_user_caps_at_fifty_newest_first(db, creator):
    _add_notifications(db, creator, 55)

    notifications = list_for_user(db, creator.id)

    assert len(notifications) == 50
    assert notifications[0].message == "message 54"
    assert notifications[-1].message == "message 5"


def test_notifications_api_returns_only_own(client, db, creator, make_user):
    other = make_user(ROLE_USER)
    _add_notifications(db, creator, 2)
    _add_notifications(db, other, 3)

    response = client.get("/api/notifications", headers=auth_headers(creator))

    assert response.status_code == 200
    assert [n["message"] for n in response.json()] == ["message 1", "message 0"]


def test_notifications_api_cap(client, db, creator):
    _add_notifications(db, creator, 60)
    response = client.get("/api/notifications", headers=auth_headers(creator))
    assert len(response.json()) == 50


def test_mark_notification_read(client, db, creator, make_user):
    other = make_user(ROLE_USER)
    _add_notifications(db, creator, 1)
    _add_notifications(db, other, 1)
    own = db.query(Notification).filter(Notification.user_id == creator.id).one()
    foreign = db.query(Notification).filter(Notification.user_id == other.id).one()

    assert client.patch(f"/api/notifications/{own.id}/read", headers=auth_headers(creator)).json()["is_read"] is True
    assert client.patch(f"/api/notifications/{foreign.id}/read", headers=auth_headers(creator)).status_code == 404


def test_mark_all_notifications_read(client, db, creator):
    _add_notifications(db, creator, 3)

    response = client.patch("/api/notifications/read-all", headers=auth_headers(creator))

    assert response.status_code == 200
    assert count_rows(db, Notification, Notification.is_read.is_(False)) == 0


def test_message_builders():
    assert rating_message("Ann", "Cake", "Wedding", 5) == 'Ann rated photo "Cake" in gallery "Wedding" with 5 stars'
    assert rating_message(None, "Cake", "Wedding", 3, [1, 2]) == \
        'Someone rated photo "Cake" and 1 others in gallery "Wedding" with 3 stars'
    assert like_message("Ann", "Cake", "Wedding", False) == 'Ann unliked photo "Cake" in gallery "Wedding"'
    assert comment_message("Ann", "Cake", "Wedding") == 'Ann commented on photo "Cake" in gallery "Wedding"'
    assert download_message("Ann", 1, "Wedding") == 'Ann downloaded 1 photo from gallery "Wedding"'
