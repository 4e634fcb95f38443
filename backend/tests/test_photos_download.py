"""
POST /api/photos/download のテスト

テスト観点:
1. 読み取れる写真のオリジナルをZIPで返す
2. ギャラリーごとにダウンロード通知が1件作られる
3. 読み取れる写真が1枚もない場合は 404
"""

import zipfile
from io import BytesIO

from conftest import auth_headers
from models import Notification


def test_download_zip_and_notification(client, db, creator, viewer, make_gallery, make_photo, assign):
    gallery = make_gallery(creator, name="Wedding")
    assign(gallery, viewer)
    photos = [make_photo(gallery) for _ in range(2)]

    response = client.post(
        "/api/photos/download",
        json={"photo_ids": [p.id for p in photos] + [99999]},
        headers=auth_headers(viewer)
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    with zipfile.ZipFile(BytesIO(response.content)) as archive:
        assert sorted(archive.namelist()) == sorted(p.original_name for p in photos)

    db.expire_all()
    notification = db.query(Notification).one()
    assert notification.type == "download"
    assert notification.user_id == creator.id
    assert notification.message == 'viewer downloaded 2 photos from gallery "Wedding"'


def test_download_nothing_readable(client, creator, viewer, make_gallery, make_photo):
    photo = make_photo(make_gallery(creator))
    response = client.post("/api/photos/download", json={"photo_ids": [photo.id]}, headers=auth_headers(viewer))
    assert response.status_code == 404
