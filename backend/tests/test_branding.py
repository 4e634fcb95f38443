"""
ブランディング設定 (/api/branding) のテスト

テスト観点:
1. 未設定の場合は既定の名前を返す（ログイン不要）
2. Admin のみ更新でき、2回目以降は同じ行を更新する
3. 空の名前は 422
"""

from conftest import auth_headers, count_rows
from models import BrandingSettings


def test_default_branding(client, db):
    response = client.get("/api/branding")

    assert response.status_code == 200
    assert response.json() == {"company_name": "PhotoGallery"}


def test_admin_updates_branding(client, db, admin):
    first = client.post("/api/branding", json={"company_name": "  Studio Sakura  "}, headers=auth_headers(admin))
    second = client.post("/api/branding", json={"company_name": "Studio Momo"}, headers=auth_headers(admin))

    assert first.status_code == 200
    assert first.json() == {"company_name": "Studio Sakura"}
    assert second.json() == {"company_name": "Studio Momo"}
    assert client.get("/api/branding").json() == {"company_name": "Studio Momo"}
    assert count_rows(db, BrandingSettings) == 1


def test_non_admin_cannot_update_branding(client, db, creator):
    response = client.post("/api/branding", json={"company_name": "Mine"}, headers=auth_headers(creator))

    assert response.status_code == 403
    assert count_rows(db, BrandingSettings) == 0


def test_empty_company_name_rejected(client, admin):
    response = client.post("/api/branding", json={"company_name": "   "}, headers=auth_headers(admin))
    assert response.status_code == 422
