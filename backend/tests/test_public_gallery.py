"""
公開ギャラリーAPI (/api/gallery/:id/public) のテスト

テスト観点:
1. サブギャラリーはルートのパスワードを継承する
   - パスワード未指定は 403、誤りは 401、正しければ 200
2. パスワードのないギャラリーは GET でも閲覧できる
3. 存在しないギャラリーは 404
4. レスポンスにパスワードハッシュを含まない
"""

import pytest


@pytest.fixture
def wedding(creator, make_gallery, make_photo):
    """Wedding(abc123) > Day1（写真2枚）"""
    root = make_gallery(creator, name="Wedding", password="abc123")
    day1 = make_gallery(creator, name="Day1", parent=root)
    make_photo(day1, alt="Cake")
    make_photo(day1, alt="Dance")
    return root, day1


def test_sub_gallery_without_password_is_forbidden(client, wedding):
    _, day1 = wedding
    response = client.post(f"/api/gallery/{day1.id}/public", json={})
    assert response.status_code == 403
    assert response.json()["detail"] == "Gallery is password protected"


def test_sub_gallery_with_root_password(client, wedding):
    """サブギャラリーにはルートのパスワードでアクセスできる"""
    _, day1 = wedding

    response = client.post(f"/api/gallery/{day1.id}/public", json={"password": "abc123"})

    assert response.status_code == 200
    data = response.json()
    assert data["gallery"]["id"] == day1.id
    assert data["gallery"]["name"] == "Day1"
    assert [p["alt"] for p in data["photos"]] == ["Cake", "Dance"]
    assert "password" not in data["gallery"]


def test_wrong_password_is_unauthorized(client, wedding):
    root, day1 = wedding
    for gallery in (root, day1):
        response = client.post(f"/api/gallery/{gallery.id}/public", json={"password": "wrong"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Wrong password"


def test_post_without_body(client, wedding):
    _, day1 = wedding
    assert client.post(f"/api/gallery/{day1.id}/public").status_code == 403


def test_get_protected_gallery_is_forbidden(client, wedding):
    root, _ = wedding
    assert client.get(f"/api/gallery/{root.id}/public").status_code == 403


def test_get_unprotected_gallery(client, creator, make_gallery, make_photo):
    root = make_gallery(creator, name="Open")
    child = make_gallery(creator, name="Child", parent=root)
    make_photo(child, alt="Beach")

    response = client.get(f"/api/gallery/{child.id}/public")

    assert response.status_code == 200
    photo = response.json()["photos"][0]
    assert photo["alt"] == "Beach"
    assert photo["src"].startswith(f"/api/files/thumbnail/{photo['id']}?")


def test_missing_gallery_is_not_found(client):
    assert client.post("/api/gallery/99999/public", json={"password": "abc123"}).status_code == 404
    assert client.get("/api/gallery/99999/public").status_code == 404
