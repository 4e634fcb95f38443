import os
import tempfile

# アプリのimport前にテスト用の環境変数を設定する
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("UPLOADS_PATH", tempfile.mkdtemp(prefix="gallery_album_uploads_"))

import pytest
from datetime import timedelta
from fastapi.testclient import TestClient

from main import app
from auth import hash_password, create_access_token
from config.storage import StorageConfig, get_storage_config
from database import Base, engine, SessionLocal
from models import User, Gallery, Photo, GalleryAssignment, ROLE_ADMIN, ROLE_CREATOR, ROLE_USER

# bcrypt は遅いので、テストユーザーのパスワードハッシュは1回だけ計算する
TEST_PASSWORD = "password123"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        app.dependency_overrides.clear()


@pytest.fixture
def storage(tmp_path):
    storage = StorageConfig(uploads_path=tmp_path / "uploads")
    app.dependency_overrides[get_storage_config] = lambda: storage
    return storage


@pytest.fixture
def client(db, storage):
    return TestClient(app)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role=ROLE_USER, user_name=None, email=None):
        counter["n"] += 1
        user = User(
            user_name=user_name or f"user{counter['n']}",
            email=email or f"user{counter['n']}@example.com",
            password=TEST_PASSWORD_HASH,
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user(ROLE_ADMIN, user_name="admin", email="admin@example.com")


@pytest.fixture
def creator(make_user):
    return make_user(ROLE_CREATOR, user_name="creator", email="creator@example.com")


@pytest.fixture
def viewer(make_user):
    return make_user(ROLE_USER, user_name="viewer", email="viewer@example.com")


def auth_headers(user):
    token = create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role},
        expires_delta=timedelta(minutes=30)
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_gallery(db):
    def _make_gallery(owner, name="Gallery", parent=None, password=None):
        gallery = Gallery(
            name=name,
            owner_id=owner.id,
            parent_id=parent.id if parent is not None else None,
            password=hash_password(password) if password else None,
        )
        db.add(gallery)
        db.commit()
        db.refresh(gallery)
        return gallery

    return _make_gallery


@pytest.fixture
def make_photo(db, storage):
    """ダミーのファイル3つと写真行を作成する"""
    counter = {"n": 0}

    def _make_photo(gallery, alt=None, rating=0):
        counter["n"] += 1
        filename = f"photo{counter['n']}.jpg"
        paths = storage.get_derived_paths(filename, gallery.id)
        storage.get_gallery_dir(gallery.id, create=True)
        storage.get_thumbnail_dir(gallery.id, create=True)
        for relative_path in paths.values():
            storage.resolve(relative_path).write_bytes(b"fake image data")

        photo = Photo(
            gallery_id=gallery.id,
            filename=filename,
            original_name=filename,
            alt=alt or f"Photo {counter['n']}",
            rating=rating,
            file_path=paths["original"],
            medium_path=paths["medium"],
            thumbnail_path=paths["thumbnail"],
        )
        db.add(photo)
        db.commit()
        db.refresh(photo)
        return photo

    return _make_photo


@pytest.fixture
def assign(db):
    def _assign(gallery, user):
        assignment = GalleryAssignment(gallery_id=gallery.id, user_id=user.id)
        db.add(assignment)
        db.commit()
        return assignment

    return _assign


def count_rows(db, model, *criteria):
    db.expire_all()
    return db.query(model).filter(*criteria).count()


