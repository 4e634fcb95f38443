from sqlalchemy import Column, String, SmallInteger, Boolean, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.dialects.mysql import INTEGER
from database import Base

# ユーザーロール
ROLE_ADMIN = "Admin"
ROLE_CREATOR = "Creator"
ROLE_USER = "User"
ROLES = (ROLE_ADMIN, ROLE_CREATOR, ROLE_USER)
WRITE_ROLES = (ROLE_ADMIN, ROLE_CREATOR)

# 通知タイプ
NOTIFICATION_TYPES = ("rating", "like", "download", "comment")

# ブランディング設定が未登録の場合の表示名
DEFAULT_COMPANY_NAME = "PhotoGallery"


class User(Base):
    __tablename__ = 'users'

    id = Column(INTEGER(unsigned=True), primary_key=True, autoincrement=True)
    user_name = Column(String(64), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default=ROLE_USER)
    create_date = Column(DateTime, nullable=False, server_default=func.now())
    update_date = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())


class Gallery(Base):
    __tablename__ = 'galleries'

    id = Column(INTEGER(unsigned=True), primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    owner_id = Column(INTEGER(unsigned=True), ForeignKey('users.id'), nullable=False)
    # NULLの場合はルートギャラリー
    parent_id = Column(INTEGER(unsigned=True), ForeignKey('galleries.id'), nullable=True)
    # ルートギャラリーのみ有効（サブギャラリーは常にNULL）
    password = Column(String(255), nullable=True)
    create_date = Column(DateTime, nullable=False, server_default=func.now())


class Photo(Base):
    __tablename__ = 'photos'

    id = Column(INTEGER(unsigned=True), primary_key=True, autoincrement=True)
    gallery_id = Column(INTEGER(unsigned=True), ForeignKey('galleries.id'), nullable=False)
    filename = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    alt = Column(String(500), nullable=False)
    rating = Column(SmallInteger, nullable=False, default=0)
    file_path = Column(String(500), nullable=False)
    medium_path = Column(String(500))
    thumbnail_path = Column(String(500))
    create_date = Column(DateTime, nullable=False, server_default=func.now())


class PhotoLike(Base):
    __tablename__ = 'photo_likes'

    id = Column(INTEGER(unsigned=True), primary_key=True, autoincrement=True)
    photo_id = Column(INTEGER(unsigned=True), ForeignKey('photos.id'), nullable=False)
    is_liked = Column(Boolean, nullable=False, default=False)
    create_date = Column(DateTime, nullable=False, server_default=func.now())


class Comment(Base):
    __tablename__ = 'comments'

    id = Column(INTEGER(unsigned=True), primary_key=True, autoincrement=True)
    photo_id = Column(INTEGER(unsigned=True), ForeignKey('photos.id'), nullable=False)
    commenter_name = Column(String(100), nullable=False)
    text = Column(String(1000), nullable=False)
    create_date = Column(DateTime, nullable=False, server_default=func.now())


class GalleryAssignment(Base):
    __tablename__ = 'gallery_assignments'
    __table_args__ = (UniqueConstraint('gallery_id', 'user_id', name='uq_gallery_assignment'),)

    id = Column(INTEGER(unsigned=True), primary_key=True, autoincrement=True)
    gallery_id = Column(INTEGER(unsigned=True), ForeignKey('galleries.id'), nullable=False, index=True)
    user_id = Column(INTEGER(unsigned=True), ForeignKey('users.id'), nullable=False, index=True)
    create_date = Column(DateTime, nullable=False, server_default=func.now())


class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(INTEGER(unsigned=True), primary_key=True, autoincrement=True)
    user_id = Column(INTEGER(unsigned=True), ForeignKey('users.id'), nullable=False, index=True)
    gallery_id = Column(INTEGER(unsigned=True), ForeignKey('galleries.id'), nullable=True)
    photo_id = Column(INTEGER(unsigned=True), ForeignKey('photos.id'), nullable=True)
    type = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)
    actor_name = Column(String(100))
    is_read = Column(Boolean, nullable=False, default=False)
    create_date = Column(DateTime, nullable=False, server_default=func.now())


class BrandingSettings(Base):
    __tablename__ = 'branding_settings'

    id = Column(INTEGER(unsigned=True), primary_key=True, autoincrement=True)
    company_name = Column(String(255), nullable=False, default=DEFAULT_COMPANY_NAME)
    update_date = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
